"""High-level orchestration of one region extraction request."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, List, Optional

from tubemap_server.analysis.merging import (
    find_by_suffix,
    load_graph_document,
    merge_annotation_file,
    merge_region_file,
    read_alignment_file,
)
from tubemap_server.config import ALIGNMENT_JSON_NAME, ALIGNMENT_SUFFIX, ANNOTATION_SUFFIX, ServerConfig
from tubemap_server.errors import AlignmentFileNotFound, AnnotationNotFound, PipelineError
from tubemap_server.pipelines.vg_chunk import ExtractionRequest, convert_alignment, extract_region

LOGGER = logging.getLogger(__name__)


class PipelineState(str, enum.Enum):
    PENDING = "pending"
    EXTRACTING = "extracting"
    ANNOTATING = "annotating"
    ALIGNING = "aligning"
    REGION_MERGING = "region_merging"
    CLEANING_UP = "cleaning_up"
    RESPONDED = "responded"
    FAILED = "failed"


@dataclass
class RequestContext:
    """Transient state owned by a single request for its whole lifetime."""

    request_id: str
    request_dir: Path
    with_alignment: bool
    artifacts: set[Path] = field(default_factory=set)
    graph: Optional[dict] = None
    region_table: Optional[Path] = None
    alignments: List[Any] = field(default_factory=list)
    state: PipelineState = PipelineState.PENDING

    def own(self, path: Path) -> Path:
        self.artifacts.add(path)
        return path

    def advance(self, state: PipelineState) -> None:
        LOGGER.info("[%s] %s -> %s", self.request_id, self.state.value, state.value)
        self.state = state


def new_request_id() -> str:
    return uuid.uuid4().hex


def _discover_one(ctx: RequestContext, suffix: str, error: type[PipelineError]) -> Path:
    matches = find_by_suffix(ctx.request_dir, suffix)
    # Everything vg writes here belongs to this request, found or not.
    ctx.artifacts.update(matches)
    if len(matches) != 1:
        found = ", ".join(path.name for path in matches) or "none"
        raise error(f"Expected one '*{suffix}' file, found {found}", request_id=ctx.request_id)
    return matches[0]


def cleanup(ctx: RequestContext) -> None:
    """Delete every artefact the request owns and its private directory."""

    for path in sorted(ctx.artifacts):
        try:
            path.unlink(missing_ok=True)
        except OSError:
            LOGGER.exception("[%s] Unable to delete %s", ctx.request_id, path)
    try:
        shutil.rmtree(ctx.request_dir)
    except FileNotFoundError:
        pass
    except OSError:
        LOGGER.exception("[%s] Unable to remove %s", ctx.request_id, ctx.request_dir)


@contextlib.asynccontextmanager
async def request_scope(config: ServerConfig, *, with_alignment: bool) -> AsyncIterator[RequestContext]:
    """Create a request directory and guarantee its removal on every exit path."""

    request_id = new_request_id()
    request_dir = config.work_dir.resolve() / request_id
    request_dir.mkdir(parents=True, exist_ok=False)
    ctx = RequestContext(request_id=request_id, request_dir=request_dir, with_alignment=with_alignment)
    try:
        yield ctx
    except BaseException:
        ctx.advance(PipelineState.CLEANING_UP)
        cleanup(ctx)
        ctx.advance(PipelineState.FAILED)
        raise
    else:
        ctx.advance(PipelineState.CLEANING_UP)
        cleanup(ctx)


class RegionExtractionPipeline:
    """Sequence extraction, annotation, alignment and region merges for each request."""

    def __init__(self, config: ServerConfig) -> None:
        self.config = config
        self._slots = asyncio.Semaphore(config.max_concurrent_extractions)

    async def run(self, request: ExtractionRequest) -> dict:
        """Return ``{"graph": ..., "gam": [...]}`` or raise a :class:`PipelineError`."""

        async with self._slots:
            async with request_scope(self.config, with_alignment=request.with_alignment) as ctx:
                LOGGER.info(
                    "[%s] extract %s node=%s distance=%s by_node=%s alignment=%s",
                    ctx.request_id,
                    request.xg_file,
                    request.node_id,
                    request.distance,
                    request.by_node,
                    request.gam_index or "none",
                )
                try:
                    await self._extract(ctx, request)
                    await self._annotate(ctx)
                    if ctx.with_alignment:
                        await self._align(ctx)
                    await self._merge_regions(ctx)
                except PipelineError as exc:
                    exc.request_id = exc.request_id or ctx.request_id
                    LOGGER.error("[%s] %s: %s", ctx.request_id, exc.kind, exc.message)
                    raise
                result = {"graph": ctx.graph, "gam": ctx.alignments if ctx.with_alignment else []}
            ctx.advance(PipelineState.RESPONDED)
            return result

    async def _extract(self, ctx: RequestContext, request: ExtractionRequest) -> None:
        ctx.advance(PipelineState.EXTRACTING)
        ctx.own(ctx.request_dir / f"{ctx.request_id}.json")
        artifacts = await extract_region(self.config, request, ctx.request_dir, ctx.request_id)
        ctx.own(artifacts.graph_file)
        ctx.own(artifacts.region_table)
        ctx.graph = await asyncio.to_thread(load_graph_document, artifacts.graph_file)
        ctx.region_table = artifacts.region_table

    async def _annotate(self, ctx: RequestContext) -> None:
        ctx.advance(PipelineState.ANNOTATING)
        annotation_file = _discover_one(ctx, ANNOTATION_SUFFIX, AnnotationNotFound)
        report = await asyncio.to_thread(merge_annotation_file, ctx.graph, annotation_file)
        LOGGER.info(
            "[%s] annotated %d paths (%d mismatches)", ctx.request_id, report.assigned, len(report.mismatches)
        )

    async def _align(self, ctx: RequestContext) -> None:
        ctx.advance(PipelineState.ALIGNING)
        gam_file = _discover_one(ctx, ALIGNMENT_SUFFIX, AlignmentFileNotFound)
        ctx.own(ctx.request_dir / ALIGNMENT_JSON_NAME)
        alignment_json = await convert_alignment(self.config, gam_file, ctx.request_dir, ctx.request_id)
        ctx.alignments = await asyncio.to_thread(read_alignment_file, alignment_json)
        LOGGER.info("[%s] loaded %d alignment records", ctx.request_id, len(ctx.alignments))

    async def _merge_regions(self, ctx: RequestContext) -> None:
        ctx.advance(PipelineState.REGION_MERGING)
        report = await asyncio.to_thread(merge_region_file, ctx.graph, ctx.region_table)
        LOGGER.info("[%s] set first-base offsets on %d paths", ctx.request_id, report.assigned)
