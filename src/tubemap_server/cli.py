"""Command line entry points for the project."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import networkx as nx
import typer

from tubemap_server import __version__
from tubemap_server.analysis.graph_loader import export_graphml, load_region_graph, to_networkx
from tubemap_server.config import ServerConfig
from tubemap_server.errors import PipelineError
from tubemap_server.pipelines.catalog import list_catalog, list_path_names
from tubemap_server.pipelines.region_extraction import RegionExtractionPipeline
from tubemap_server.pipelines.vg_chunk import NO_ALIGNMENT_INDEX, ExtractionRequest

app = typer.Typer(help="Region extraction server for vg reference graphs.")


def _build_config(
    vg_path: Optional[Path],
    mounted_data: Optional[Path],
    internal_data: Optional[Path],
    work_dir: Optional[Path],
    timeout: Optional[float] = None,
) -> ServerConfig:
    config = ServerConfig.from_env()
    if vg_path is not None:
        config.vg_path = vg_path.expanduser()
    if mounted_data is not None:
        config.mounted_data_dir = mounted_data.expanduser()
    if internal_data is not None:
        config.internal_data_dir = internal_data.expanduser()
    if work_dir is not None:
        config.work_dir = work_dir.expanduser()
    if timeout is not None:
        config.tool_timeout = timeout if timeout > 0 else None
    return config


def _fail(exc: PipelineError) -> None:
    typer.secho(f"{exc.kind}: {exc.message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _print_summary(graph: nx.DiGraph) -> None:
    typer.echo(f"Nodes: {graph.number_of_nodes()}  Edges: {graph.number_of_edges()}  Paths: {graph.graph['path_count']}")
    for entry in graph.graph["paths"]:
        typer.echo(f"  {entry['name']}: freq={entry['freq']} first_base={entry['indexOfFirstBase']}")


VG_OPTION = typer.Option(None, "--vg", help="Path to the vg binary (default: vg/vg or $TUBEMAP_VG_PATH).")
MOUNTED_OPTION = typer.Option(None, help="Mounted reference data directory.")
INTERNAL_OPTION = typer.Option(None, help="Internal reference data directory.")
WORK_OPTION = typer.Option(None, help="Directory holding per-request transient files.")


@app.callback(invoke_without_command=True)
def version(
    ctx: typer.Context,
    display_version: bool = typer.Option(False, "--version", "-V", help="Show version and exit."),
) -> None:
    """Print the package version when requested."""

    if display_version:
        typer.echo(__version__)
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Host interface for the HTTP server."),
    port: int = typer.Option(3000, help="Port for the HTTP server."),
    vg_path: Optional[Path] = VG_OPTION,
    mounted_data: Optional[Path] = MOUNTED_OPTION,
    internal_data: Optional[Path] = INTERNAL_OPTION,
    work_dir: Optional[Path] = WORK_OPTION,
    timeout: Optional[float] = typer.Option(None, help="Seconds before a vg invocation is killed (0 disables)."),
    max_concurrent: Optional[int] = typer.Option(None, help="Maximum number of extractions running at once."),
    log_level: str = typer.Option("info", help="Logging level: debug, info, warning or error."),
) -> None:
    """Launch the HTTP API."""

    import uvicorn

    from tubemap_server.server.app import create_app

    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unsupported log level: {log_level}")
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = _build_config(vg_path, mounted_data, internal_data, work_dir, timeout)
    if max_concurrent is not None:
        if max_concurrent < 1:
            raise typer.BadParameter("--max-concurrent must be at least 1")
        config.max_concurrent_extractions = max_concurrent

    if not config.vg_path.exists():
        typer.secho(f"Warning: vg binary {config.vg_path} not found; extraction requests will fail.", fg=typer.colors.YELLOW)

    uvicorn.run(create_app(config), host=host, port=port, log_level=log_level.lower())


@app.command("extract")
def extract(
    xg_file: str = typer.Option(..., "--xg", help="Graph index file name inside the data directory."),
    node_id: int = typer.Option(..., "--node", "-n", help="Node id (with --by-node) or start coordinate."),
    distance: int = typer.Option(..., "--distance", "-d", help="Context steps or number of bases."),
    anchor: Optional[str] = typer.Option(None, help="Anchor path for coordinate extraction."),
    by_node: bool = typer.Option(False, help="Extract a radius around a node instead of a coordinate range."),
    gam_index: str = typer.Option(NO_ALIGNMENT_INDEX, help="Alignment index file name, or 'none'."),
    mounted: bool = typer.Option(True, help="Read index files from the mounted data directory."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the merged result JSON here."),
    graphml: Optional[Path] = typer.Option(None, help="Also export the extracted region as GraphML."),
    vg_path: Optional[Path] = VG_OPTION,
    mounted_data: Optional[Path] = MOUNTED_OPTION,
    internal_data: Optional[Path] = INTERNAL_OPTION,
    work_dir: Optional[Path] = WORK_OPTION,
) -> None:
    """Run one region extraction locally and summarise the merged graph."""

    config = _build_config(vg_path, mounted_data, internal_data, work_dir)
    config.work_dir.mkdir(parents=True, exist_ok=True)
    payload = {
        "nodeID": node_id,
        "distance": distance,
        "xgFile": xg_file,
        "gamIndex": gam_index,
        "anchorTrackName": anchor,
        "useMountedPath": mounted,
        "byNode": by_node,
    }

    try:
        request = ExtractionRequest.from_payload(payload)
        result = asyncio.run(RegionExtractionPipeline(config).run(request))
    except PipelineError as exc:
        _fail(exc)

    graph = to_networkx(result["graph"])
    _print_summary(graph)
    if request.with_alignment:
        typer.echo(f"Alignment records: {len(result['gam'])}")

    if output:
        destination = output.expanduser().resolve()
        destination.parent.mkdir(parents=True, exist_ok=True)
        with destination.open("w", encoding="utf-8") as handle:
            json.dump(result, handle)
        typer.echo(f"Result written to {destination}")

    if graphml:
        destination = export_graphml(graph, graphml.expanduser().resolve())
        typer.echo(f"GraphML written to {destination}")


@app.command("inspect")
def inspect(
    result_file: Path = typer.Argument(..., help="Saved extraction result (--output) or raw vg JSON graph."),
    graphml: Optional[Path] = typer.Option(None, help="Export the region as GraphML."),
) -> None:
    """Summarise a previously saved extraction result."""

    try:
        graph = load_region_graph(result_file.expanduser())
    except PipelineError as exc:
        _fail(exc)

    _print_summary(graph)
    if graphml:
        destination = export_graphml(graph, graphml.expanduser().resolve())
        typer.echo(f"GraphML written to {destination}")


@app.command("catalog")
def catalog(
    mounted_data: Optional[Path] = MOUNTED_OPTION,
    as_json: bool = typer.Option(False, "--json", help="Print the catalog as JSON."),
) -> None:
    """List the graph and alignment indices available for extraction."""

    config = _build_config(None, mounted_data, None, None)
    try:
        entries = list_catalog(config.mounted_data_dir)
    except PipelineError as exc:
        _fail(exc)

    if as_json:
        typer.echo(json.dumps(entries.as_dict(), indent=2))
        return
    typer.echo(f"Graph indices ({len(entries.xg_files)}):")
    for name in entries.xg_files:
        typer.echo(f"  - {name}")
    typer.echo(f"Alignment indices ({len(entries.gam_indices)}):")
    for name in entries.gam_indices:
        typer.echo(f"  - {name}")


@app.command("paths")
def paths(
    xg_file: str = typer.Argument(..., help="Graph index file name inside the data directory."),
    mounted: bool = typer.Option(True, help="Read the index from the mounted data directory."),
    vg_path: Optional[Path] = VG_OPTION,
    mounted_data: Optional[Path] = MOUNTED_OPTION,
    internal_data: Optional[Path] = INTERNAL_OPTION,
    work_dir: Optional[Path] = WORK_OPTION,
) -> None:
    """Print the path names stored in a graph index."""

    config = _build_config(vg_path, mounted_data, internal_data, work_dir)
    config.work_dir.mkdir(parents=True, exist_ok=True)
    try:
        names = asyncio.run(list_path_names(config, xg_file, use_mounted_path=mounted))
    except PipelineError as exc:
        _fail(exc)

    for name in names:
        typer.echo(name)


def run() -> None:
    """Entry point used by ``python -m tubemap_server.cli``."""

    app()


if __name__ == "__main__":
    run()
