"""Merge the side outputs of ``vg chunk`` into the extracted graph document."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List

from tubemap_server.errors import IOFailure
from tubemap_server.io.line_reader import iter_lines, split_fields

LOGGER = logging.getLogger(__name__)

FREQ_FIELD = "freq"
OFFSET_FIELD = "indexOfFirstBase"


@dataclass
class NameMismatch:
    index: int
    path_name: str | None
    annotation_name: str


@dataclass
class AnnotationReport:
    assigned: int = 0
    mismatches: List[NameMismatch] = field(default_factory=list)
    surplus_lines: int = 0
    malformed_lines: int = 0


@dataclass
class RegionReport:
    assigned: int = 0
    unmatched_names: List[str] = field(default_factory=list)
    malformed_lines: int = 0


def graph_paths(document: dict) -> list[dict]:
    """Return the path list of a vg JSON document, creating an empty one if missing."""

    paths = document.get("path")
    if paths is None:
        paths = document["path"] = []
    if not isinstance(paths, list):
        raise IOFailure("Graph document has a non-list 'path' field.")
    return paths


def find_by_suffix(directory: Path, suffix: str) -> list[Path]:
    """Files directly under ``directory`` whose names end with ``suffix``, sorted by name."""

    try:
        return sorted(path for path in Path(directory).iterdir() if path.is_file() and path.name.endswith(suffix))
    except OSError as exc:
        raise IOFailure.from_os_error(Path(directory), exc) from exc


def merge_annotations(document: dict, lines: Iterable[str]) -> AnnotationReport:
    """
    Copy per-path frequencies into the graph by position.

    The Nth well-formed annotation line is assigned to the Nth path entry. A differing path name
    does not stop the assignment; it is reported so the caller can log it. Entries without a
    corresponding line keep ``freq`` unset and surplus lines are ignored.
    """

    paths = graph_paths(document)
    report = AnnotationReport()
    index = 0

    for line in lines:
        tokens = split_fields(line)
        if not tokens:
            continue
        if len(tokens) < 2:
            report.malformed_lines += 1
            continue
        name, frequency = tokens[0], tokens[1]
        if index >= len(paths):
            report.surplus_lines += 1
            index += 1
            continue

        entry = paths[index]
        if entry.get("name") != name:
            report.mismatches.append(NameMismatch(index=index, path_name=entry.get("name"), annotation_name=name))
        entry[FREQ_FIELD] = frequency
        report.assigned += 1
        index += 1

    for mismatch in report.mismatches:
        LOGGER.warning(
            "Annotation mismatch at index %d: path %r, annotation %r",
            mismatch.index,
            mismatch.path_name,
            mismatch.annotation_name,
        )
    if report.surplus_lines:
        LOGGER.warning("Ignored %d annotation lines beyond %d paths", report.surplus_lines, len(paths))
    return report


def merge_regions(document: dict, lines: Iterable[str]) -> RegionReport:
    """Set ``indexOfFirstBase`` on every path entry whose name appears in the region table."""

    paths = graph_paths(document)
    by_name: dict[str, list[dict]] = {}
    for entry in paths:
        by_name.setdefault(entry.get("name"), []).append(entry)

    report = RegionReport()
    for line in lines:
        tokens = split_fields(line)
        if not tokens:
            continue
        if len(tokens) < 2:
            report.malformed_lines += 1
            continue
        name, offset = tokens[0], tokens[1]
        entries = by_name.get(name)
        if not entries:
            report.unmatched_names.append(name)
            continue
        for entry in entries:
            entry[OFFSET_FIELD] = offset
        report.assigned += len(entries)

    if report.unmatched_names:
        LOGGER.debug("Region table names without a path entry: %s", ", ".join(report.unmatched_names))
    return report


def parse_alignment_records(lines: Iterable[str], *, source: Path | str = "<alignment>") -> list[Any]:
    """Decode one JSON value per non-empty line, preserving order."""

    records: list[Any] = []
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as exc:
            raise IOFailure(f"{source}:{number}: invalid alignment record ({exc.msg})") from exc
    return records


def load_graph_document(path: Path) -> dict:
    """Load the JSON graph written by ``vg view -j``."""

    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except OSError as exc:
        raise IOFailure.from_os_error(path, exc) from exc
    except json.JSONDecodeError as exc:
        raise IOFailure(f"{path} is not a valid graph document: {exc.msg}") from exc

    if not isinstance(payload, dict):
        raise IOFailure(f"{path} does not contain a JSON object.")
    graph_paths(payload)
    return payload


def merge_annotation_file(document: dict, path: Path) -> AnnotationReport:
    return merge_annotations(document, iter_lines(path))


def merge_region_file(document: dict, path: Path) -> RegionReport:
    return merge_regions(document, iter_lines(path))


def read_alignment_file(path: Path) -> list[Any]:
    return parse_alignment_records(iter_lines(path), source=path)


__all__ = [
    "AnnotationReport",
    "RegionReport",
    "NameMismatch",
    "find_by_suffix",
    "graph_paths",
    "load_graph_document",
    "merge_annotations",
    "merge_annotation_file",
    "merge_regions",
    "merge_region_file",
    "parse_alignment_records",
    "read_alignment_file",
]
