import os
import sys

import click
from osgeo import gdal
from rich.panel import Panel

from hydroroute import (
    __version__,
    accumulation,
    depth_in_sink,
    downslope_distance,
    fill,
    flow_direction,
)
from hydroroute._util.cli_progress import RichProgressDisplay
from hydroroute._util.timer import console, resource_stats, timer
from hydroroute.codes import OutputType

# set gdal configuration
gdal.UseExceptions()
gdal.SetConfigOption("AWS_ACCESS_KEY_ID", os.getenv("AWS_ACCESS_KEY_ID", ""))
gdal.SetConfigOption("AWS_SECRET_ACCESS_KEY", os.getenv("AWS_SECRET_ACCESS_KEY", ""))
gdal.SetConfigOption("CPL_VSIL_USE_TEMP_FILE_FOR_RANDOM_WRITE", "YES")

INTERIOR_PIT_WARNING = (
    "Interior pits were found in the DEM. Flow routing stops at these cells. "
    "Fill or breach the DEM first if continuous flow paths are needed."
)

OUT_TYPE_CHOICES = [out_type.value for out_type in OutputType] + ["sca"]


def print_banner():
    """Display the hydroroute banner and version."""
    if sys.stdout.isatty():
        banner = f"""[bold cyan]  ╦ ╦╦ ╦╔╦╗╦═╗╔═╗╦═╗╔═╗╦ ╦╔╦╗╔═╗
[dim]░[/dim][cyan]▒[/cyan][bold blue]▓[/bold blue]╠═╣╚╦╝ ║║╠╦╝║ ║╠╦╝║ ║║ ║ ║ ║╣ [bold blue]▓[/bold blue][cyan]▒[/cyan][dim]░[/dim]
  ╩ ╩ ╩ ═╩╝╩╚═╚═╝╩╚═╚═╝╚═╝ ╩ ╚═╝[/bold cyan]
        [dim]Version {__version__}[/dim]
"""
        console.print(banner)
    else:
        print(f"HYDROROUTE v{__version__}\n")


def print_interior_pit_warning():
    resource_stats.add_warning(INTERIOR_PIT_WARNING)
    console.print(
        Panel(
            INTERIOR_PIT_WARNING,
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
        )
    )


def fail(command: str, exc: Exception, success: bool):
    console.print(
        f"[bold red]Error:[/bold red] {command} failed with the following exception: {str(exc)}"
    )
    if not success:
        console.print(resource_stats.get_summary_panel(success=False))
    raise click.Abort()


@click.group(invoke_without_command=True)
@click.pass_context
def main(ctx):
    """The main entry point for the command line interface."""
    print_banner()
    resource_stats.reset()

    # If no subcommand was provided, show help
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command(name="flow-direction")
@click.option(
    "--input_file",
    help="path to the GDAL supported raster dataset for the DEM",
    required=True,
)
@click.option(
    "--output_file",
    help="path to the output file (must be GeoTiff)",
    required=True,
)
@click.option(
    "--num_workers",
    help="number of parallel row workers (defaults to all available threads)",
    type=int,
    default=None,
)
def flow_direction_cli(input_file: str, output_file: str, num_workers: int | None):
    """
    Compute D8 flow directions from a DEM.

    Codes are 0=NE, 1=E, 2=SE, 3=S, 4=SW, 5=W, 6=NW, 7=N, -1 for pits and
    -2 for nodata.
    """
    success = False
    try:
        progress_display = RichProgressDisplay()
        with timer("Flow direction"):
            with progress_display.progress_context("Computing flow direction"):
                interior_pit_found = flow_direction(
                    input_file,
                    output_file,
                    num_workers,
                    progress_display.callback,
                )
                resource_stats.add_output_file("Flow Direction", output_file)
                success = True

        if interior_pit_found:
            print_interior_pit_warning()
        console.print(resource_stats.get_summary_panel(success=success))
    except Exception as exc:
        fail("flow-direction", exc, success)


@main.command(name="accumulation")
@click.option(
    "--input_file",
    help="path to the GDAL supported raster dataset for the DEM",
    required=True,
)
@click.option(
    "--output_file",
    help="path to the output file (must be GeoTiff)",
    required=True,
)
@click.option(
    "--out_type",
    help="output units",
    type=click.Choice(OUT_TYPE_CHOICES, case_sensitive=False),
    default=OutputType.CELLS.value,
)
@click.option(
    "--log",
    "log_transform",
    help="If set, writes the natural log of the accumulation",
    is_flag=True,
)
@click.option(
    "--clip",
    help="If set, records a display maximum that clips the upper 1% tail",
    is_flag=True,
)
@click.option(
    "--num_workers",
    help="number of parallel row workers (defaults to all available threads)",
    type=int,
    default=None,
)
def accumulation_cli(
    input_file: str,
    output_file: str,
    out_type: str,
    log_transform: bool,
    clip: bool,
    num_workers: int | None,
):
    """
    Calculate D8 flow accumulation from a depressionless DEM.

    The output is the number of upslope cells, the catchment area or the
    specific contributing area of each cell, including the cell itself.
    """
    success = False
    try:
        progress_display = RichProgressDisplay()
        with timer("Accumulation"):
            with progress_display.progress_context("Flow Accumulation"):
                interior_pit_found = accumulation(
                    input_file,
                    output_file,
                    out_type,
                    log_transform,
                    clip,
                    num_workers,
                    progress_display.callback,
                )
                resource_stats.add_output_file("Flow Accumulation", output_file)
                success = True

        if interior_pit_found:
            print_interior_pit_warning()
        console.print(resource_stats.get_summary_panel(success=success))
    except Exception as exc:
        fail("accumulation", exc, success)


@main.command(name="fill")
@click.option(
    "--input_file",
    help="path to the GDAL supported raster dataset for the DEM",
    required=True,
)
@click.option(
    "--output_file",
    help="path to the output file (must be GeoTiff)",
    required=True,
)
def fill_cli(input_file: str, output_file: str):
    """
    Fill depressions in a DEM using priority flood algorithm.

    Nodata regions connected to the raster edge act as outlets. Interior
    nodata holes are left as they are.
    """
    success = False
    try:
        progress_display = RichProgressDisplay()
        with timer("Fill"):
            with progress_display.progress_context("Filling depressions"):
                fill(input_file, output_file, progress_display.callback)
                resource_stats.add_output_file("Filled DEM", output_file)
                success = True

        console.print(resource_stats.get_summary_panel(success=success))
    except Exception as exc:
        fail("fill", exc, success)


@main.command(name="depth-in-sink")
@click.option(
    "--input_file",
    help="path to the GDAL supported raster dataset for the DEM",
    required=True,
)
@click.option(
    "--output_file",
    help="path to the output file (must be GeoTiff)",
    required=True,
)
@click.option(
    "--zero_background",
    help="If set, cells outside of depressions are 0 instead of nodata",
    is_flag=True,
)
def depth_in_sink_cli(input_file: str, output_file: str, zero_background: bool):
    """
    Measure the depth of each cell below the spill level of its depression.
    """
    success = False
    try:
        progress_display = RichProgressDisplay()
        with timer("Depth in sink"):
            with progress_display.progress_context("Measuring depth in sink"):
                depth_in_sink(
                    input_file,
                    output_file,
                    zero_background,
                    progress_display.callback,
                )
                resource_stats.add_output_file("Depth in Sink", output_file)
                success = True

        console.print(resource_stats.get_summary_panel(success=success))
    except Exception as exc:
        fail("depth-in-sink", exc, success)


@main.command(name="downslope-distance")
@click.option(
    "--dem_file",
    help="path to the GDAL supported raster dataset for the DEM",
    required=True,
)
@click.option(
    "--streams_file",
    help="path to the streams raster, cells greater than 0 are streams",
    required=True,
)
@click.option(
    "--output_file",
    help="path to the output file (must be GeoTiff)",
    required=True,
)
@click.option(
    "--num_workers",
    help="number of parallel row workers (defaults to all available threads)",
    type=int,
    default=None,
)
def downslope_distance_cli(
    dem_file: str,
    streams_file: str,
    output_file: str,
    num_workers: int | None,
):
    """
    Calculate the distance to the nearest stream along the D8 flow path.

    Cells that reach a pit or the raster edge before a stream are nodata.
    """
    success = False
    try:
        progress_display = RichProgressDisplay()
        with timer("Downslope distance"):
            with progress_display.progress_context("Downslope distance to stream"):
                interior_pit_found = downslope_distance(
                    dem_file,
                    streams_file,
                    output_file,
                    num_workers,
                    progress_display.callback,
                )
                resource_stats.add_output_file("Downslope Distance", output_file)
                success = True

        if interior_pit_found:
            print_interior_pit_warning()
        console.print(resource_stats.get_summary_panel(success=success))
    except Exception as exc:
        fail("downslope-distance", exc, success)


@main.command(name="pipeline")
@click.option(
    "--dem_file",
    help="path to the GDAL supported raster dataset for the DEM",
    required=True,
)
@click.option(
    "--output_dir",
    help="path to the output directory",
    required=True,
)
@click.option(
    "--out_type",
    help="output units of the flow accumulation",
    type=click.Choice(OUT_TYPE_CHOICES, case_sensitive=False),
    default=OutputType.CELLS.value,
)
@click.option(
    "--num_workers",
    help="number of parallel row workers (defaults to all available threads)",
    type=int,
    default=None,
)
def pipeline_cli(
    dem_file: str,
    output_dir: str,
    out_type: str,
    num_workers: int | None,
):
    """
    Run the complete workflow on a raw DEM.

    1. Fill depressions
    2. Measure depth in sink against the raw DEM
    3. Compute flow direction of the filled DEM
    4. Calculate flow accumulation of the filled DEM

    The filled DEM has no gradient across filled depressions, so each of
    them becomes a flat of interior pits where flow accumulation stops. A
    warning is printed when this happens.
    """
    success = False
    try:
        progress_display = RichProgressDisplay()
        os.makedirs(output_dir, exist_ok=True)
        filled_path = f"{output_dir}/dem_filled.tif"

        with timer("Total processing", silent=True):
            with timer("Filling"):
                with progress_display.progress_context("Filling depressions"):
                    fill(dem_file, filled_path, progress_display.callback)
            resource_stats.add_output_file("Filled DEM", filled_path)

            with timer("Depth in sink"):
                with progress_display.progress_context("Measuring depth in sink"):
                    depth_in_sink(
                        dem_file,
                        f"{output_dir}/depth_in_sink.tif",
                        progress_callback=progress_display.callback,
                    )
            resource_stats.add_output_file(
                "Depth in Sink", f"{output_dir}/depth_in_sink.tif"
            )

            with timer("Flow direction"):
                with progress_display.progress_context("Computing flow direction"):
                    interior_pit_found = flow_direction(
                        filled_path,
                        f"{output_dir}/fdr.tif",
                        num_workers,
                        progress_display.callback,
                    )
            resource_stats.add_output_file("Flow Direction", f"{output_dir}/fdr.tif")

            with timer("Flow accumulation"):
                with progress_display.progress_context("Flow Accumulation"):
                    accumulation(
                        filled_path,
                        f"{output_dir}/accum.tif",
                        out_type,
                        num_workers=num_workers,
                        progress_callback=progress_display.callback,
                    )
            resource_stats.add_output_file(
                "Flow Accumulation", f"{output_dir}/accum.tif"
            )
            success = True

        if interior_pit_found:
            print_interior_pit_warning()
        console.print(resource_stats.get_summary_panel(success=success))
    except Exception as exc:
        fail("pipeline", exc, success)


if __name__ == "__main__":
    main()
