"""Tests for configuration loading and the command line interface."""

from __future__ import annotations

import copy
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import GRAPH, requires_posix
from tubemap_server.cli import app
from tubemap_server.config import ServerConfig

runner = CliRunner()


def test_config_from_env() -> None:
    config = ServerConfig.from_env(
        {
            "TUBEMAP_VG_PATH": "/opt/vg/vg",
            "TUBEMAP_MOUNTED_DATA_DIR": "/data/mounted",
            "TUBEMAP_TOOL_TIMEOUT": "0",
            "TUBEMAP_MAX_CONCURRENT_EXTRACTIONS": "2",
        }
    )

    assert config.vg_path == Path("/opt/vg/vg")
    assert config.mounted_data_dir == Path("/data/mounted")
    assert config.internal_data_dir == Path("internalData")
    assert config.tool_timeout is None
    assert config.max_concurrent_extractions == 2
    assert config.data_dir(True) == Path("/data/mounted")
    assert config.data_dir(False) == Path("internalData")


def test_config_rejects_zero_concurrency() -> None:
    with pytest.raises(ValueError):
        ServerConfig(max_concurrent_extractions=0)


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.stdout.strip()


def test_catalog_command(server_config: ServerConfig) -> None:
    result = runner.invoke(app, ["catalog", "--mounted-data", str(server_config.mounted_data_dir), "--json"])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"xgFiles": ["chr22_v4.xg"], "gamIndices": ["NA12878_mapped_v4.gam.index"]}


@requires_posix
def test_extract_command(server_config: ServerConfig, tmp_path: Path) -> None:
    output = tmp_path / "result.json"
    result = runner.invoke(
        app,
        [
            "extract",
            "--xg",
            "chr22_v4.xg",
            "--node",
            "7",
            "--distance",
            "2",
            "--by-node",
            "--vg",
            str(server_config.vg_path),
            "--mounted-data",
            str(server_config.mounted_data_dir),
            "--work-dir",
            str(server_config.work_dir),
            "--output",
            str(output),
        ],
    )

    assert result.exit_code == 0, result.stdout
    assert "Nodes: 3  Edges: 3  Paths: 2" in result.stdout
    assert json.loads(output.read_text())["graph"]["path"][1]["indexOfFirstBase"] == "7"


@requires_posix
def test_extract_command_reports_failures(server_config: ServerConfig, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FAKE_VG_FAIL", "chunk")
    result = runner.invoke(
        app,
        [
            "extract",
            "--xg",
            "chr22_v4.xg",
            "--node",
            "7",
            "--distance",
            "2",
            "--by-node",
            "--vg",
            str(server_config.vg_path),
            "--mounted-data",
            str(server_config.mounted_data_dir),
            "--work-dir",
            str(server_config.work_dir),
        ],
    )

    assert result.exit_code == 1


@requires_posix
def test_paths_command(server_config: ServerConfig) -> None:
    result = runner.invoke(
        app,
        [
            "paths",
            "chr22_v4.xg",
            "--vg",
            str(server_config.vg_path),
            "--mounted-data",
            str(server_config.mounted_data_dir),
            "--work-dir",
            str(server_config.work_dir),
        ],
    )

    assert result.exit_code == 0
    assert result.stdout.split() == ["chr1", "chr2", "chr3"]


def test_inspect_saved_result(tmp_path: Path) -> None:
    saved = tmp_path / "result.json"
    document = copy.deepcopy(GRAPH)
    document["path"][0].update({"freq": "0.5", "indexOfFirstBase": "100"})
    saved.write_text(json.dumps({"graph": document, "gam": []}), encoding="utf-8")
    graphml = tmp_path / "region.graphml"

    result = runner.invoke(app, ["inspect", str(saved), "--graphml", str(graphml)])

    assert result.exit_code == 0, result.stdout
    assert "Nodes: 3  Edges: 3  Paths: 2" in result.stdout
    assert "chr1: freq=0.5 first_base=100" in result.stdout
    assert graphml.exists()


def test_inspect_missing_file_exits_with_error(tmp_path: Path) -> None:
    result = runner.invoke(app, ["inspect", str(tmp_path / "absent.json")])

    assert result.exit_code == 1
