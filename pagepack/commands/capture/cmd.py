"""CLI command: capture a single page into a WACZ (or WARC) file."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from pagepack.helpers.console import console, err_console, human_size


@click.command()
@click.argument("url")
@click.option("-o", "--output", required=True, help="Output file path (.wacz or .warc)")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["wacz", "warc"]),
    default="wacz",
    show_default=True,
    help="Archive format to write",
)
@click.option(
    "--include-raw/--no-include-raw",
    default=False,
    envvar="PAGEPACK_INCLUDE_RAW",
    help="Also store raw exchange bytes under raw/ in the WACZ",
)
@click.option(
    "--max-size",
    type=int,
    default=200 * 1024 * 1024,
    show_default=True,
    envvar="PAGEPACK_MAX_SIZE",
    help="Stop capturing once this many bytes were intercepted",
)
@click.option(
    "--screenshot/--no-screenshot",
    default=True,
    help="Store a full-page screenshot as an extra entry point",
)
@click.option(
    "--auto-scroll/--no-auto-scroll",
    default=True,
    help="Scroll the page to trigger lazy loading",
)
@click.option(
    "--behaviors-script",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    envvar="PAGEPACK_BEHAVIORS_SCRIPT",
    help="Browser behaviors script injected in every frame",
)
@click.option(
    "--proxy-port",
    type=int,
    default=9000,
    show_default=True,
    envvar="PAGEPACK_PROXY_PORT",
    help="Port the intercepting proxy listens on",
)
@click.option("--headed", is_flag=True, help="Show the browser window")
@click.option("-v", "--verbose", is_flag=True, envvar="PAGEPACK_VERBOSE", help="Print capture logs")
def capture(
    url: str,
    output: str,
    output_format: str,
    include_raw: bool,
    max_size: int,
    screenshot: bool,
    auto_scroll: bool,
    behaviors_script: Path | None,
    proxy_port: int,
    headed: bool,
    verbose: bool,
) -> None:
    """Capture URL through a recording proxy and archive it."""
    from pagepack.commands.archive.encoder import encode, to_warc
    from pagepack.commands.archive.loader import write_container
    from pagepack.commands.capture.config import CaptureOptions, ConfigurationError
    from pagepack.commands.capture.controller import SetupError, capture_url

    options_data = {
        "verbose": verbose,
        "headless": not headed,
        "proxy_port": proxy_port,
        "max_size": max_size,
        "screenshot": screenshot,
        "auto_scroll": auto_scroll,
        "include_raw": include_raw,
    }
    if behaviors_script is None:
        # Without a behaviors script there is nothing to run in the page.
        options_data.update(
            grab_secondary_resources=False,
            auto_play_media=False,
            run_site_specific_behaviors=False,
        )
    else:
        options_data["behaviors_script"] = behaviors_script

    try:
        options = CaptureOptions.from_mapping(options_data)
        console.print(f"[bold]Capturing:[/bold] {url}")
        result = asyncio.run(capture_url(url, options))
    except (ConfigurationError, SetupError) as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1) from e

    warnings = [log for log in result.logs if log.is_warning]
    for log in warnings:
        console.print(f"  [yellow]{log.message}[/yellow]")
    console.print(
        f"  {len(result.exchanges)} exchanges, "
        f"{len(result.generated_exchanges)} generated, "
        f"{human_size(result.total_size)} ({result.state.value})"
    )

    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if output_format == "warc":
        output_path.write_bytes(to_warc(result, gzip=output_path.suffix == ".gz"))
    else:
        write_container(encode(result, include_raw=options.include_raw), output_path)
    console.print(f"[green]Archive written to {output_path}[/green]")
