"""Helper routines to extract graph regions and alignments via ``vg``."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from tubemap_server.config import ALIGNMENT_JSON_NAME, REGION_TABLE_NAME, ServerConfig
from tubemap_server.errors import AlignmentConversionFailed, ExtractionFailed, InvalidRequest
from tubemap_server.io.vg_interface import (
    build_alignment_view_command,
    build_chunk_command,
    build_view_command,
    run_pipe_to_file,
    run_to_file,
)

NO_ALIGNMENT_INDEX = "none"


def parse_flag(value: Any) -> bool:
    """The front-end sends flags as the strings ``"true"``/``"false"``; anything else is false."""

    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def bare_file_name(value: Any) -> str:
    name = str(value if value is not None else "").strip()
    if not name:
        raise ValueError("a file name is required")
    if name in {".", ".."} or "/" in name or "\\" in name:
        raise ValueError(f"must be a plain file name, got {name!r}")
    return name


def validate_file_name(value: object, field_name: str) -> str:
    try:
        return bare_file_name(value)
    except ValueError as exc:
        raise InvalidRequest(f"{field_name}: {exc}") from exc


@dataclass(slots=True)
class ExtractionRequest:
    node_id: int
    distance: int
    xg_file: str
    gam_index: str | None = None
    anchor_track_name: str | None = None
    use_mounted_path: bool = False
    by_node: bool = False

    @property
    def with_alignment(self) -> bool:
        return self.gam_index is not None

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "ExtractionRequest":
        """Validate a camelCase request body, raising :class:`InvalidRequest` on bad input."""

        try:
            return RegionRequest.model_validate(dict(payload)).to_request()
        except ValidationError as exc:
            raise InvalidRequest.from_validation_errors(exc.errors()) from exc


class RegionRequest(BaseModel):
    """Body of a region extraction request, as sent by the tube map front-end."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    nodeID: int = Field(description="Node id (byNode) or start coordinate on the anchor path")
    distance: int = Field(ge=0, description="Context steps (byNode) or number of bases to extract")
    xgFile: str
    gamIndex: Optional[str] = Field(default=None, description="Alignment index file name or 'none'")
    anchorTrackName: Optional[str] = None
    useMountedPath: bool = False
    byNode: bool = False

    @field_validator("nodeID", "distance", mode="before")
    @classmethod
    def _strip_number(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("xgFile", mode="before")
    @classmethod
    def _plain_graph_index(cls, value: Any) -> str:
        return bare_file_name(value)

    @field_validator("gamIndex", mode="before")
    @classmethod
    def _optional_alignment_index(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        name = str(value).strip()
        if name in {"", NO_ALIGNMENT_INDEX}:
            return None
        return bare_file_name(name)

    @field_validator("anchorTrackName", mode="before")
    @classmethod
    def _single_token_anchor(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        anchor = str(value).strip()
        # vg takes the anchor as part of a single region argument.
        if any(ch.isspace() for ch in anchor):
            raise ValueError(f"must not contain whitespace, got {anchor!r}")
        return anchor or None

    @field_validator("useMountedPath", "byNode", mode="before")
    @classmethod
    def _parse_flag(cls, value: Any) -> bool:
        return parse_flag(value)

    @model_validator(mode="after")
    def _anchor_for_coordinates(self) -> "RegionRequest":
        if not self.byNode and not self.anchorTrackName:
            raise ValueError("anchorTrackName is required unless byNode is 'true'")
        return self

    def to_request(self) -> ExtractionRequest:
        return ExtractionRequest(
            node_id=self.nodeID,
            distance=self.distance,
            xg_file=self.xgFile,
            gam_index=self.gamIndex,
            anchor_track_name=self.anchorTrackName,
            use_mounted_path=self.useMountedPath,
            by_node=self.byNode,
        )


@dataclass(slots=True)
class ExtractionArtifacts:
    graph_file: Path
    region_table: Path


async def extract_region(
    config: ServerConfig,
    request: ExtractionRequest,
    request_dir: Path,
    request_id: str,
) -> ExtractionArtifacts:
    """
    Run ``vg chunk | vg view -j -`` for one request inside its private directory.

    Raises :class:`ExtractionFailed` when either process fails or a declared output is missing.
    """

    data_dir = config.data_dir(request.use_mounted_path).resolve()
    graph_file = request_dir / f"{request_id}.json"
    region_table = request_dir / REGION_TABLE_NAME

    chunk = build_chunk_command(
        config.vg_path.resolve(),
        data_dir / request.xg_file,
        node_id=request.node_id,
        distance=request.distance,
        by_node=request.by_node,
        anchor_track_name=request.anchor_track_name,
        gam_index_path=data_dir / request.gam_index if request.gam_index else None,
        region_table=REGION_TABLE_NAME,
    )
    view = build_view_command(config.vg_path.resolve())

    try:
        chunk_run, view_run = await run_pipe_to_file(
            chunk, view, graph_file, cwd=request_dir, timeout=config.tool_timeout
        )
    except OSError as exc:
        raise ExtractionFailed(f"Unable to run vg: {exc}", request_id=request_id) from exc

    for run in (chunk_run, view_run):
        if not run.succeeded:
            raise ExtractionFailed(
                f"'vg {run.argv[1]}' exited with code {run.returncode}", request_id=request_id
            )

    for expected in (graph_file, region_table):
        if not expected.is_file():
            raise ExtractionFailed(f"vg did not produce {expected.name}", request_id=request_id)
    if graph_file.stat().st_size == 0:
        raise ExtractionFailed("vg produced an empty graph", request_id=request_id)

    return ExtractionArtifacts(graph_file=graph_file, region_table=region_table)


async def convert_alignment(
    config: ServerConfig,
    gam_file: Path,
    request_dir: Path,
    request_id: str,
) -> Path:
    """Convert a binary alignment chunk into line-delimited JSON next to it."""

    output = request_dir / ALIGNMENT_JSON_NAME
    argv = build_alignment_view_command(config.vg_path.resolve(), gam_file)
    try:
        run = await run_to_file(argv, output, cwd=request_dir, timeout=config.tool_timeout)
    except OSError as exc:
        raise AlignmentConversionFailed(f"Unable to run vg: {exc}", request_id=request_id) from exc

    if not run.succeeded:
        raise AlignmentConversionFailed(
            f"'vg view' exited with code {run.returncode} for {gam_file.name}", request_id=request_id
        )
    if not output.is_file():
        raise AlignmentConversionFailed(f"vg did not produce {output.name}", request_id=request_id)
    return output


__all__ = [
    "NO_ALIGNMENT_INDEX",
    "parse_flag",
    "bare_file_name",
    "validate_file_name",
    "ExtractionRequest",
    "RegionRequest",
    "ExtractionArtifacts",
    "extract_region",
    "convert_alignment",
]
