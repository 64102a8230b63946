# mapoverlay/cli/__main__.py
from pathlib import Path
from typing import Optional
from datetime import datetime

import typer

from mapoverlay.globals.logutil import Logger, info, warn, error, success, process_step, setting_config
from mapoverlay.globals import directories, configs
from mapoverlay.globals.config_models import read_config_file, GeorefConfig, ProjectConfig
from mapoverlay.globals.exporters import export_gdf
from mapoverlay.features.georeferencing.models import GeoreferenceResult, StrategyKind
from mapoverlay.features.georeferencing.session import GeoreferencingSession

# --- Typer app (root has no options) ---
app = typer.Typer(no_args_is_help=True)

# DEFAULT_CONFIG_FILE_PATH
DEFAULT_CONFIG_FILE_PATH = directories.CONFIG_DIR / configs.GEOREF_DEFAULTS_FILENAME


def _resolve_log_path(cfg: GeorefConfig) -> Path:
    '''
    Resolve the log file path from the config or defaults.
    '''
    base = directories.LOGS_DIR
    base.mkdir(parents=True, exist_ok=True)
    name = (cfg.log_file_name or "georef").replace(" ", "_")
    return base / f"{name}_{datetime.now():%Y%m%d_%H%M%S}.log"

def _print_settings(cfg: GeorefConfig, project: ProjectConfig):
    info("Resolved configuration:")
    for k, v in vars(cfg).items():
        setting_config(f"  {k}: {v}")
    setting_config(f"  project: {project.source}")
    setting_config(f"  image: {project.image_width:g} x {project.image_height:g}")
    setting_config(f"  map_view: {project.map_view}")
    setting_config(f"  control_points: {len(project.control_points)}, geo_points: {len(project.geo_points)}")
    setting_config(f"  entities: {project.entity_count}")

def _print_result(result: GeoreferenceResult):
    match = result.match
    info(f"Matched {match.matched_count}/{match.total_control_points} control points "
         f"({match.total_geo_points} geo points)")
    if match.unmatched_control_point_ids:
        warn(f"Unmatched: {', '.join(match.unmatched_control_point_ids)}")
    if result.excluded_ids:
        warn(f"Excluded (non-finite): {', '.join(result.excluded_ids)}")

    state = result.state
    info(f"Strategy: {state.kind.value}")
    if state.transform is not None:
        t = state.transform
        info(f"Transform: a={t.a:.6f} b={t.b:.6f} c={t.c:.3f} d={t.d:.6f} e={t.e:.6f} f={t.f:.3f}")
    if state.kind is StrategyKind.SOLVED:
        acc = state.accuracy
        info(f"Accuracy: mean={acc.mean_error_m:.4f} m, max={acc.max_error_m:.4f} m, min={acc.min_error_m:.4f} m")

    if result.event is not None:
        p = result.event.placement
        b = p.bounds
        info(f"Placement: center=({p.center_lat:.6f}, {p.center_lon:.6f}) scale={p.scale:.6f} zoom={p.zoom}")
        info(f"Bounds: S={b.south:.6f} W={b.west:.6f} N={b.north:.6f} E={b.east:.6f}")

# --- SUBCOMMAND ---
@app.command("solve")
def solve(
    project_file: Path = typer.Argument(..., help="Project YAML (image size, control points, geo points, entities)."),
    # I/O
    config: Optional[Path] = typer.Option(
        DEFAULT_CONFIG_FILE_PATH, "--config", "-c",
        help="YAML file with engine defaults.",
        rich_help_panel="I/O"
    ),
    out: Optional[Path] = typer.Option(
        None, "--out", "-o",
        help="Write the synchronized entities to this file (.geojson/.json/.shp).",
        rich_help_panel="I/O"
    ),
    # Utility
    dry_run: bool = typer.Option(False, "--dry-run", help="Print resolved config and exit", rich_help_panel="Utility"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose logging", rich_help_panel="Utility"),
):
    '''
    Georeference an image from a project file and reposition its entities.
    The main processing steps include:
    1. Loading the engine defaults and the project
    2. Placing the image and matching control points
    3. Installing the best available transform
    4. Synchronizing entity positions (and exporting them)
    '''
    try:
        cfg = read_config_file(config, kind="georef")
        if verbose:
            cfg.verbose = True
        project = read_config_file(project_file, kind="project", defaults=cfg)
    except ValueError as exc:
        error(str(exc))
        raise typer.Exit(code=2)

    if dry_run:
        _print_settings(cfg, project)
        raise typer.Exit()

    # Set up the logging configuration
    with Logger(logfile_path=_resolve_log_path(cfg)):
        _print_settings(cfg, project)
        session = GeoreferencingSession.from_project(project, cfg)

        loaded, _ = session.load_image(project.image_width, project.image_height, project.map_view)
        if not loaded.success:
            error(f"Could not load image: {loaded.error}")
            raise typer.Exit(code=1)

        process_step("Georeferencing")
        result, report = session.georeference(project.control_points, project.geo_points, project.map_view)
        _print_result(result)
        if report is not None:
            info(f"Entities: {report.summary}")

        if out is not None:
            path = export_gdf(session.store.to_gdf(verbose=cfg.verbose), out, verbose=cfg.verbose)
            success(f"Entities written to {path}")

        if not result.success:
            error(f"Georeferencing failed: {result.error}")
            raise typer.Exit(code=1)
        success("Georeferencing completed successfully!")

@app.command("test")
def test():
    success("Test command executed successfully!")

def main():
    app()

if __name__ == "__main__":
    main()
