"""FastAPI application exposing region extraction and catalog endpoints."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tubemap_server import __version__
from tubemap_server.config import ServerConfig
from tubemap_server.errors import InvalidRequest, PipelineError
from tubemap_server.pipelines.catalog import PathNamesRequest, list_catalog, list_path_names
from tubemap_server.pipelines.region_extraction import RegionExtractionPipeline
from tubemap_server.pipelines.vg_chunk import RegionRequest

LOGGER = logging.getLogger(__name__)


class RegionResponse(BaseModel):
    graph: dict
    gam: List[Any]


class CatalogResponse(BaseModel):
    xgFiles: List[str]
    gamIndices: List[str]


class PathNamesResponse(BaseModel):
    pathNames: List[str]


class ErrorResponse(BaseModel):
    error: str
    detail: str
    requestId: Optional[str] = None


def create_app(config: ServerConfig | None = None) -> FastAPI:
    """Build the API around a single pipeline instance."""

    resolved = config or ServerConfig.from_env()
    resolved.work_dir.mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="tubemap-server", version=__version__)
    app.state.config = resolved
    app.state.pipeline = RegionExtractionPipeline(resolved)

    # The tube map front-end is frequently served from another origin during local use.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
    )

    @app.exception_handler(PipelineError)
    async def _pipeline_error(_: Request, exc: PipelineError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.as_dict())

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(_: Request, exc: RequestValidationError) -> JSONResponse:
        error = InvalidRequest.from_validation_errors(exc.errors())
        LOGGER.warning("Rejected request: %s", error.message)
        return JSONResponse(status_code=error.status_code, content=error.as_dict())

    error_responses = {code: {"model": ErrorResponse} for code in (400, 500, 502, 504)}

    @app.get("/health", tags=["system"], summary="Service health probe")
    async def health() -> dict:
        return {"status": "ok", "version": __version__}

    @app.post("/extractRegion", response_model=RegionResponse, responses=error_responses, tags=["graph"])
    @app.post("/chr22_v4", response_model=RegionResponse, include_in_schema=False)
    async def extract_region(body: RegionRequest) -> dict:
        """Extract a region around a node or coordinate range and merge its annotations."""

        return await app.state.pipeline.run(body.to_request())

    @app.post("/listCatalog", response_model=CatalogResponse, responses=error_responses, tags=["catalog"])
    @app.post("/getFilenames", response_model=CatalogResponse, include_in_schema=False)
    def catalog() -> dict:
        return list_catalog(resolved.mounted_data_dir).as_dict()

    @app.post("/listPathNames", response_model=PathNamesResponse, responses=error_responses, tags=["catalog"])
    @app.post("/getPathNames", response_model=PathNamesResponse, include_in_schema=False)
    async def path_names(body: PathNamesRequest) -> dict:
        names = await list_path_names(resolved, body.xgFile, use_mounted_path=body.useMountedPath)
        return {"pathNames": names}

    LOGGER.info("tubemap-server %s ready (data: %s, work: %s)", __version__, resolved.mounted_data_dir, resolved.work_dir)
    return app


__all__ = ["create_app"]
