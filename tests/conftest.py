"""Shared fixtures: a scripted stand-in for vg and a throwaway data layout."""

from __future__ import annotations

import json
import stat
import sys
from pathlib import Path

import pytest

from tubemap_server.config import ServerConfig

GRAPH = {
    "node": [
        {"id": "1", "sequence": "ACGT"},
        {"id": "2", "sequence": "GG"},
        {"id": "3", "sequence": "T"},
    ],
    "edge": [
        {"from": "1", "to": "2"},
        {"from": "2", "to": "3"},
        {"from": "1", "to": "3", "from_start": True},
    ],
    "path": [
        {"name": "chr1", "mapping": [{"position": {"node_id": "1"}, "rank": "1"}, {"position": {"node_id": "2"}, "rank": "2"}]},
        {"name": "chr2", "mapping": [{"position": {"node_id": "1"}, "rank": "1"}, {"position": {"node_id": "3"}, "rank": "2"}]},
    ],
}

ALIGNMENTS = [
    {"name": "read1", "sequence": "ACG", "score": 3},
    {"name": "read2", "sequence": "GGT", "score": 2},
]

FAKE_VG = r"""#!/bin/sh
# Test double for vg: chunk, view and paths.
cmd="$1"
shift

mode="$cmd"
if [ "$cmd" = "view" ] && [ "$2" = "-a" ]; then
    mode="view-alignment"
fi

if [ -n "$FAKE_VG_NOISE" ]; then
    head -c 100000 /dev/zero | tr '\0' x >&2
fi

if [ "$FAKE_VG_FAIL" = "$mode" ]; then
    echo "fake vg: $mode failed" >&2
    exit 1
fi

case "$cmd" in
    chunk)
        region=""
        table=""
        gam=""
        while [ $# -gt 0 ]; do
            case "$1" in
                -r|-p) region="$2"; shift ;;
                -E) table="$2"; shift ;;
                -a) gam="$2"; shift ;;
            esac
            shift
        done
        if [ -n "$FAKE_VG_HANG" ]; then
            exec sleep 30
        fi
        echo "fake vg: chunking around $region" >&2
        case ",$FAKE_VG_SKIP," in *,regions,*) ;; *)
            printf 'chr1\t%s\t0\tchunk_0.vg\nchr2\t%s\t0\tchunk_0.vg\n' "$region" "$region" > "$table" ;;
        esac
        case ",$FAKE_VG_SKIP," in *,annotate,*) ;; *)
            printf 'chr1   %s\nchr2\t%s\n' "$region" "$region" > chunk_0_annotate.txt ;;
        esac
        if [ "$FAKE_VG_EXTRA" = "annotate" ]; then
            printf 'chr9 1\n' > chunk_1_annotate.txt
        fi
        if [ -n "$gam" ]; then
            case ",$FAKE_VG_SKIP," in *,gam,*) ;; *)
                printf 'GAM' > chunk_0.gam ;;
            esac
        fi
        if [ -n "$FAKE_VG_SLEEP" ]; then
            sleep "$FAKE_VG_SLEEP"
        fi
        exec cat "@GRAPH@"
        ;;
    view)
        if [ "$mode" = "view-alignment" ]; then
            if [ -n "$FAKE_VG_BAD_ALIGNMENT" ]; then
                echo "{not json"
                exit 0
            fi
            exec cat "@ALIGNMENTS@"
        fi
        exec cat
        ;;
    paths)
        if [ -n "$FAKE_VG_HANG" ]; then
            exec sleep 30
        fi
        printf 'chr1\nchr2\n\nchr3\n'
        ;;
    *)
        echo "fake vg: unknown command $cmd" >&2
        exit 2
        ;;
esac
"""

requires_posix = pytest.mark.skipif(sys.platform == "win32", reason="fake vg is a POSIX shell script")


@pytest.fixture
def fake_vg(tmp_path: Path) -> Path:
    fixtures = tmp_path / "fixtures"
    fixtures.mkdir()
    graph_file = fixtures / "graph.json"
    graph_file.write_text(json.dumps(GRAPH), encoding="utf-8")
    alignment_file = fixtures / "alignments.jsonl"
    alignment_file.write_text("\n".join(json.dumps(record) for record in ALIGNMENTS) + "\n\n", encoding="utf-8")

    script = tmp_path / "vg" / "vg"
    script.parent.mkdir()
    script.write_text(
        FAKE_VG.replace("@GRAPH@", str(graph_file)).replace("@ALIGNMENTS@", str(alignment_file)),
        encoding="utf-8",
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def server_config(tmp_path: Path, fake_vg: Path, monkeypatch: pytest.MonkeyPatch) -> ServerConfig:
    for variable in (
        "FAKE_VG_FAIL",
        "FAKE_VG_SKIP",
        "FAKE_VG_EXTRA",
        "FAKE_VG_SLEEP",
        "FAKE_VG_HANG",
        "FAKE_VG_BAD_ALIGNMENT",
        "FAKE_VG_NOISE",
    ):
        monkeypatch.delenv(variable, raising=False)

    mounted = tmp_path / "mountedData"
    internal = tmp_path / "internalData"
    for directory in (mounted, internal):
        directory.mkdir()
    (mounted / "chr22_v4.xg").write_bytes(b"XG")
    (mounted / "NA12878_mapped_v4.gam.index").mkdir()
    (internal / "internal.xg").write_bytes(b"XG")

    return ServerConfig(
        vg_path=fake_vg,
        mounted_data_dir=mounted,
        internal_data_dir=internal,
        work_dir=tmp_path / "work",
        tool_timeout=10.0,
    )


def leftover_files(config: ServerConfig) -> list[Path]:
    if not config.work_dir.exists():
        return []
    return sorted(config.work_dir.rglob("*"))
