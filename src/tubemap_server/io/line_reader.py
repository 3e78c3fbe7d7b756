"""Line-oriented reading of the text artefacts written by vg."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

from tubemap_server.errors import IOFailure


def iter_lines(path: Path) -> Iterator[str]:
    """
    Yield the lines of ``path`` lazily with line terminators stripped.

    Any failure to open or read the file surfaces as :class:`IOFailure`, so every parser built on
    top of this shares one completion and error contract.
    """

    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            for line in handle:
                yield line.rstrip("\r\n")
    except OSError as exc:
        raise IOFailure.from_os_error(path, exc) from exc
    except UnicodeDecodeError as exc:
        raise IOFailure(f"Unable to decode {path}: {exc}") from exc


def split_fields(line: str) -> list[str]:
    """Collapse runs of whitespace and split a table row into its tokens."""

    return line.split()
