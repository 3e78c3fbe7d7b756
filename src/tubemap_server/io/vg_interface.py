"""Adapters for invoking the vg command line toolkit."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from tubemap_server.config import REGION_TABLE_NAME
from tubemap_server.errors import ExtractionTimeout

LOGGER = logging.getLogger(__name__)

# Context radius vg uses around a coordinate range.
COORDINATE_CONTEXT_STEPS = 5

STDERR_READ_SIZE = 65536
STDERR_LOG_LINE_LIMIT = 2000
# Characters of stderr kept on a ToolRun; the rest is only logged.
STDERR_KEEP_LIMIT = 16384

_LINE_BREAK = re.compile(r"[\r\n]")


@dataclass(slots=True)
class ToolRun:
    argv: list[str]
    returncode: int
    stderr: str

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


def build_chunk_command(
    vg_path: Path,
    xg_path: Path,
    *,
    node_id: int,
    distance: int,
    by_node: bool,
    anchor_track_name: str | None = None,
    gam_index_path: Path | None = None,
    region_table: str = REGION_TABLE_NAME,
) -> list[str]:
    """
    Arguments for ``vg chunk`` extracting either a node radius or a coordinate range.

    The graph goes to stdout; the region table is written to ``region_table`` relative to the
    working directory of the process. When an alignment index is attached, vg also writes the
    reads of the region and a per-path annotation file next to it.
    """

    cmd = [str(vg_path), "chunk", "-x", str(xg_path)]
    if gam_index_path is not None:
        cmd.extend(["-a", str(gam_index_path), "-g", "-A"])

    if by_node:
        cmd.extend(["-r", str(node_id), "-c", str(distance)])
    else:
        if not anchor_track_name:
            raise ValueError("Coordinate extraction requires an anchor path name.")
        cmd.extend(
            [
                "-c",
                str(COORDINATE_CONTEXT_STEPS),
                "-p",
                f"{anchor_track_name}:{node_id}-{node_id + distance}",
            ]
        )

    cmd.extend(["-T", "-E", region_table])
    return cmd


def build_view_command(vg_path: Path) -> list[str]:
    """Arguments for ``vg view`` converting a graph read from stdin to JSON."""

    return [str(vg_path), "view", "-j", "-"]


def build_alignment_view_command(vg_path: Path, gam_path: Path) -> list[str]:
    return [str(vg_path), "view", "-j", "-a", str(gam_path)]


def build_paths_command(vg_path: Path, xg_path: Path) -> list[str]:
    return [str(vg_path), "paths", "-X", str(xg_path)]


async def _spawn(argv: Sequence[str], *, cwd: Path, stdin=None, stdout=None) -> asyncio.subprocess.Process:
    LOGGER.debug("Spawning %s (cwd=%s)", " ".join(argv), cwd)
    return await asyncio.create_subprocess_exec(
        *argv,
        cwd=str(cwd),
        stdin=stdin if stdin is not None else asyncio.subprocess.DEVNULL,
        stdout=stdout,
        stderr=asyncio.subprocess.PIPE,
    )


async def _collect(process: asyncio.subprocess.Process, argv: Sequence[str]) -> ToolRun:
    name = Path(argv[0]).name
    subcommand = argv[1] if len(argv) > 1 else ""
    kept: list[str] = []
    kept_size = 0

    def record(text: str) -> None:
        nonlocal kept_size
        text = text.rstrip()
        if not text:
            return
        LOGGER.warning("%s %s: %s", name, subcommand, text[:STDERR_LOG_LINE_LIMIT])
        if kept_size < STDERR_KEEP_LIMIT:
            kept.append(text[: STDERR_KEEP_LIMIT - kept_size])
            kept_size += len(kept[-1])

    # Read in blocks; vg progress output can run far past StreamReader's line limit.
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    assert process.stderr is not None
    while True:
        block = await process.stderr.read(STDERR_READ_SIZE)
        pending += decoder.decode(block, final=not block)
        *complete, pending = _LINE_BREAK.split(pending)
        for line in complete:
            record(line)
        if not block:
            break
        if len(pending) > STDERR_READ_SIZE:
            record(pending)
            pending = ""
    record(pending)

    returncode = await process.wait()
    LOGGER.info("%s %s exited with code %s", name, subcommand, returncode)
    return ToolRun(argv=list(argv), returncode=returncode, stderr="\n".join(kept))


async def _kill(processes: Sequence[asyncio.subprocess.Process]) -> None:
    for process in processes:
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
    for process in processes:
        await process.wait()


async def _wait_all(
    processes: Sequence[asyncio.subprocess.Process],
    argvs: Sequence[Sequence[str]],
    timeout: float | None,
) -> list[ToolRun]:
    try:
        runs = await asyncio.wait_for(
            asyncio.gather(*(_collect(process, argv) for process, argv in zip(processes, argvs))),
            timeout,
        )
    except asyncio.TimeoutError as exc:
        await _kill(processes)
        command = " | ".join(" ".join(argv[:2]) for argv in argvs)
        raise ExtractionTimeout(f"'{command}' did not finish within {timeout} seconds") from exc
    return list(runs)


async def run_to_file(
    argv: Sequence[str],
    output: Path,
    *,
    cwd: Path,
    timeout: float | None = None,
) -> ToolRun:
    """Run one vg command with its stdout redirected to ``output``."""

    processes: list[asyncio.subprocess.Process] = []
    try:
        with Path(output).open("wb") as sink:
            processes.append(await _spawn(argv, cwd=cwd, stdout=sink))
            (run,) = await _wait_all(processes, [argv], timeout)
        return run
    except BaseException:
        await _kill(processes)
        raise


async def run_pipe_to_file(
    producer: Sequence[str],
    consumer: Sequence[str],
    output: Path,
    *,
    cwd: Path,
    timeout: float | None = None,
) -> tuple[ToolRun, ToolRun]:
    """
    Run ``producer | consumer > output`` without a shell.

    Both exit codes are reported, so a failing producer cannot hide behind a consumer that happily
    converted an empty stream.
    """

    processes: list[asyncio.subprocess.Process] = []
    read_fd, write_fd = os.pipe()
    try:
        with Path(output).open("wb") as sink:
            try:
                processes.append(await _spawn(producer, cwd=cwd, stdout=write_fd))
                processes.append(await _spawn(consumer, cwd=cwd, stdin=read_fd, stdout=sink))
            finally:
                os.close(write_fd)
                os.close(read_fd)
            first, second = await _wait_all(processes, [producer, consumer], timeout)
        return first, second
    except BaseException:
        await _kill(processes)
        raise


__all__ = [
    "ToolRun",
    "build_chunk_command",
    "build_view_command",
    "build_alignment_view_command",
    "build_paths_command",
    "run_to_file",
    "run_pipe_to_file",
]
