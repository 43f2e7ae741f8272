"""CLI command: inspect a WACZ archive."""

from __future__ import annotations

import click
from rich.table import Table

from pagepack.commands.capture.types import Capture, Exchange
from pagepack.helpers.console import console, err_console, human_size, truncate


@click.command()
@click.argument("archive_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--exchange", "exchange_index", type=int, default=None,
    help="Show the heads of one exchange (index from the summary table)",
)
def inspect(archive_path: str, exchange_index: int | None) -> None:
    """Inspect a WACZ archive."""
    from pagepack.commands.archive.decoder import DecodeError, load_capture

    try:
        result = load_capture(archive_path)
    except DecodeError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1) from e

    if exchange_index is None:
        inspect_summary(result)
        return
    if not 0 <= exchange_index < len(result.exchanges):
        err_console.print(f"[red]Exchange {exchange_index} not found[/red]")
        raise SystemExit(1)
    inspect_exchange(result.exchanges[exchange_index])


def inspect_summary(result: Capture) -> None:
    console.print("[bold]Archive Summary[/bold]")
    console.print(f"  URL: {result.url}", markup=False)
    info = result.provenance_info or {}
    if info:
        console.print(f"  Captured: {info.get('captureStart', '?')} -> {info.get('captureEnd', '?')}", markup=False)
        if "browser" in info:
            console.print(f"  Browser: {info['browser']} {info.get('browserVersion', '')}", markup=False)
        if info.get("maxSizeReached"):
            console.print("  [yellow]Size budget was reached, capture is partial[/yellow]")
    console.print(f"  Size: {human_size(result.total_size)}")
    console.print()

    table = Table(title="Exchanges")
    table.add_column("#", justify="right")
    table.add_column("Method")
    table.add_column("URL", style="cyan")
    table.add_column("Status", justify="right")
    table.add_column("Size", justify="right")
    for index, exchange in enumerate(result.exchanges):
        request = exchange.request
        response = exchange.response
        table.add_row(
            str(index),
            request.method if request else "-",
            truncate(exchange.url or "-", 60),
            str(response.status) if response else "-",
            human_size(len(exchange.request_bytes) + len(exchange.response_bytes)),
        )
    console.print(table)

    if result.generated_exchanges:
        console.print()
        generated = Table(title="Generated")
        generated.add_column("URL", style="cyan")
        generated.add_column("Description")
        generated.add_column("Entry point")
        for exchange in result.generated_exchanges:
            generated.add_row(
                exchange.url, exchange.description, "yes" if exchange.is_entry_point else ""
            )
        console.print(generated)


def inspect_exchange(exchange: Exchange) -> None:
    console.print(f"[bold]Exchange: {exchange.id}[/bold]")
    console.print(f"  Timestamp: {exchange.timestamp.isoformat()}")
    console.print()

    request = exchange.request
    console.print("[bold]Request[/bold]")
    if request is None:
        console.print("  <none>")
    else:
        console.print(f"  {request.method} {request.target} {request.version}", markup=False)
        for name, value in request.headers:
            console.print(f"  {name}: {value}", markup=False)
        console.print(f"  Body: {len(request.body)} bytes")
    console.print()

    response = exchange.response
    console.print("[bold]Response[/bold]")
    if response is None:
        console.print("  <none>")
    else:
        console.print(f"  {response.version} {response.status} {response.reason}", markup=False)
        for name, value in response.headers:
            console.print(f"  {name}: {value}", markup=False)
        console.print(f"  Body: {len(response.body)} bytes")
