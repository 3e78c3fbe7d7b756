"""Configuration primitives for the server."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

GRAPH_INDEX_SUFFIX = "xg"
ALIGNMENT_INDEX_SUFFIX = "gam.index"
ANNOTATION_SUFFIX = "annotate.txt"
ALIGNMENT_SUFFIX = "gam"
REGION_TABLE_NAME = "regions.tsv"
ALIGNMENT_JSON_NAME = "gam.json"
PATH_NAMES_NAME = "pathNames.txt"

ENV_PREFIX = "TUBEMAP_"


@dataclass(slots=True)
class ServerConfig:
    """Locations of the vg binary, the reference data and the transient artefacts."""

    vg_path: Path = Path("vg/vg")
    mounted_data_dir: Path = Path("mountedData")
    internal_data_dir: Path = Path("internalData")
    work_dir: Path = Path("tmp/requests")
    tool_timeout: float | None = 300.0
    max_concurrent_extractions: int = 4

    def __post_init__(self) -> None:
        self.vg_path = Path(self.vg_path).expanduser()
        self.mounted_data_dir = Path(self.mounted_data_dir).expanduser()
        self.internal_data_dir = Path(self.internal_data_dir).expanduser()
        self.work_dir = Path(self.work_dir).expanduser()
        if self.tool_timeout is not None and self.tool_timeout <= 0:
            self.tool_timeout = None
        if self.max_concurrent_extractions < 1:
            raise ValueError("max_concurrent_extractions must be at least 1")

    def data_dir(self, use_mounted: bool) -> Path:
        """Directory holding the index files for a request."""

        return self.mounted_data_dir if use_mounted else self.internal_data_dir

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServerConfig":
        """Build a configuration from ``TUBEMAP_*`` variables, falling back to defaults."""

        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}
        for field_name in ("vg_path", "mounted_data_dir", "internal_data_dir", "work_dir"):
            value = env.get(f"{ENV_PREFIX}{field_name.upper()}")
            if value:
                kwargs[field_name] = Path(value)

        timeout = env.get(f"{ENV_PREFIX}TOOL_TIMEOUT")
        if timeout:
            kwargs["tool_timeout"] = float(timeout)

        concurrency = env.get(f"{ENV_PREFIX}MAX_CONCURRENT_EXTRACTIONS")
        if concurrency:
            kwargs["max_concurrent_extractions"] = int(concurrency)

        return cls(**kwargs)
