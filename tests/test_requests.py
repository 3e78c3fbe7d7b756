"""Tests for request body validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from tubemap_server.errors import InvalidRequest
from tubemap_server.pipelines.catalog import PathNamesRequest
from tubemap_server.pipelines.vg_chunk import ExtractionRequest, RegionRequest


def _payload(**overrides) -> dict:
    payload = {
        "nodeID": "10",
        "distance": "5",
        "xgFile": "chr22_v4.xg",
        "gamIndex": "none",
        "anchorTrackName": "chr1",
        "useMountedPath": "true",
        "byNode": "true",
    }
    payload.update(overrides)
    return payload


def test_string_fields_are_coerced() -> None:
    request = ExtractionRequest.from_payload(_payload(nodeID=" 42 ", gamIndex="reads.gam.index"))

    assert request == ExtractionRequest(
        node_id=42,
        distance=5,
        xg_file="chr22_v4.xg",
        gam_index="reads.gam.index",
        anchor_track_name="chr1",
        use_mounted_path=True,
        by_node=True,
    )
    assert request.with_alignment


def test_flags_only_accept_true() -> None:
    request = ExtractionRequest.from_payload(_payload(byNode="TRUE", useMountedPath="yes"))

    assert request.by_node is True
    assert request.use_mounted_path is False


def test_none_alignment_index_disables_alignment() -> None:
    for value in ("none", "", None):
        assert ExtractionRequest.from_payload(_payload(gamIndex=value)).gam_index is None


def test_blank_anchor_is_dropped_in_node_mode() -> None:
    assert ExtractionRequest.from_payload(_payload(anchorTrackName="  ")).anchor_track_name is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"nodeID": "abc"},
        {"distance": "-1"},
        {"xgFile": ".."},
        {"xgFile": "dir\\chr22.xg"},
        {"gamIndex": "../reads.gam.index"},
        {"byNode": "false", "anchorTrackName": ""},
        {"anchorTrackName": "chr\t1"},
    ],
)
def test_invalid_payloads_raise_invalid_request(overrides: dict) -> None:
    with pytest.raises(InvalidRequest):
        ExtractionRequest.from_payload(_payload(**overrides))


def test_missing_field_is_reported_by_name() -> None:
    payload = _payload()
    del payload["xgFile"]

    with pytest.raises(InvalidRequest) as excinfo:
        ExtractionRequest.from_payload(payload)

    assert excinfo.value.message.startswith("xgFile:")


def test_region_request_model_rejects_coordinates_without_anchor() -> None:
    with pytest.raises(ValidationError):
        RegionRequest.model_validate(_payload(byNode=False, anchorTrackName=None))


def test_path_names_request_defaults_to_mounted_data() -> None:
    assert PathNamesRequest(xgFile="chr22_v4.xg").useMountedPath is True
    assert PathNamesRequest(xgFile="chr22_v4.xg", useMountedPath="false").useMountedPath is False

    with pytest.raises(ValidationError):
        PathNamesRequest(xgFile="../chr22_v4.xg")
