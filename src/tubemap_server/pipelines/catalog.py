"""Read-only views over the reference data catalog."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List

from pydantic import BaseModel, field_validator

from tubemap_server.config import ALIGNMENT_INDEX_SUFFIX, GRAPH_INDEX_SUFFIX, PATH_NAMES_NAME, ServerConfig
from tubemap_server.errors import ExtractionFailed, IOFailure
from tubemap_server.io.line_reader import iter_lines
from tubemap_server.io.vg_interface import build_paths_command, run_to_file
from tubemap_server.pipelines.region_extraction import request_scope
from tubemap_server.pipelines.vg_chunk import bare_file_name, parse_flag, validate_file_name

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Catalog:
    xg_files: List[str] = field(default_factory=list)
    gam_indices: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"xgFiles": self.xg_files, "gamIndices": self.gam_indices}


def list_catalog(data_dir: Path) -> Catalog:
    """Report the graph indices and alignment indices available in ``data_dir``."""

    data_dir = Path(data_dir)
    try:
        names = sorted(entry.name for entry in data_dir.iterdir())
    except OSError as exc:
        raise IOFailure.from_os_error(data_dir, exc) from exc

    catalog = Catalog()
    for name in names:
        if name.endswith(GRAPH_INDEX_SUFFIX):
            catalog.xg_files.append(name)
        if name.endswith(ALIGNMENT_INDEX_SUFFIX):
            catalog.gam_indices.append(name)
    LOGGER.info("Catalog of %s: %d graphs, %d alignment indices", data_dir, len(catalog.xg_files), len(catalog.gam_indices))
    return catalog


class PathNamesRequest(BaseModel):
    xgFile: str
    useMountedPath: bool = True

    @field_validator("xgFile", mode="before")
    @classmethod
    def _plain_graph_index(cls, value: Any) -> str:
        return bare_file_name(value)

    @field_validator("useMountedPath", mode="before")
    @classmethod
    def _parse_flag(cls, value: Any) -> bool:
        return parse_flag(value)


def _read_names(path: Path) -> list[str]:
    return [line for line in iter_lines(path) if line.strip()]


async def list_path_names(config: ServerConfig, xg_file: str, *, use_mounted_path: bool = True) -> list[str]:
    """Ask ``vg paths`` for the path names stored in a graph index."""

    xg_file = validate_file_name(xg_file, "xgFile")
    xg_path = config.data_dir(use_mounted_path).resolve() / xg_file
    async with request_scope(config, with_alignment=False) as ctx:
        output = ctx.own(ctx.request_dir / PATH_NAMES_NAME)
        argv = build_paths_command(config.vg_path.resolve(), xg_path)
        try:
            run = await run_to_file(argv, output, cwd=ctx.request_dir, timeout=config.tool_timeout)
        except OSError as exc:
            raise ExtractionFailed(f"Unable to run vg: {exc}", request_id=ctx.request_id) from exc
        if not run.succeeded:
            raise ExtractionFailed(f"'vg paths' exited with code {run.returncode}", request_id=ctx.request_id)
        names = await asyncio.to_thread(_read_names, output)
    LOGGER.info("Listed %d paths of %s", len(names), xg_file)
    return names


__all__ = ["Catalog", "PathNamesRequest", "list_catalog", "list_path_names"]
