"""Typer CLI: run a single port check from the command line."""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from portcheck import __version__

app = typer.Typer(
    name="portcheck",
    help="portcheck: application-level port monitoring checks",
    no_args_is_help=True,
)
console = Console()


def _setup_logging(verbose: bool = False, config_level: str | None = None) -> None:
    if verbose:
        level = logging.DEBUG
    elif config_level:
        level = getattr(logging, config_level.upper(), logging.INFO)
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _parse_params(values: list[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"expected NAME=VALUE, got {item!r}", param_hint="--param")
        params[name] = value
    return params


@app.command()
def check(
    address: str = typer.Argument(help="IP address or host name to check"),
    port: int = typer.Argument(help="Port number"),
    udp: bool = typer.Option(False, "--udp", help="Check a UDP port instead of TCP"),
    protocol: str | None = typer.Option(
        None, "--protocol", "-P", help="Application protocol, e.g.: SMTP, IMAP2, PostgreSQL",
    ),
    param: list[str] = typer.Option(  # noqa: B008
        [], "--param", "-p", help="Monitoring parameter NAME=VALUE, repeatable",
    ),
    timeout: float | None = typer.Option(None, help="Cancel the check after this many seconds"),
    config: str | None = typer.Option(None, help="Path to config YAML"),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    verbose: bool = typer.Option(False, "-v", "--verbose"),
):
    """Run one check and report the outcome. Exits 1 on failure."""
    from portcheck.config import Settings
    from portcheck.core.registry import get_port_check
    from portcheck.core.runner import run_check
    from portcheck.models.types import AppProtocol, CheckParameters, Endpoint

    settings = Settings.load(config)
    _setup_logging(verbose, config_level=settings.log_level)

    app_protocol = AppProtocol.lookup(protocol)
    if protocol and app_protocol is None:
        console.print(f"[yellow]Unknown protocol {protocol!r}, using a plain connect check[/]")

    try:
        endpoint = Endpoint.udp(address, port) if udp else Endpoint.tcp(address, port)
    except ValueError as exc:
        console.print(f"[red]Invalid endpoint: {exc}[/]")
        raise typer.Exit(1) from None

    port_check = get_port_check(
        endpoint, app_protocol, CheckParameters(_parse_params(param)), settings,
    )
    result = run_check(port_check, timeout=timeout)

    if json_output:
        console.print_json(result.model_dump_json())
    elif result.ok:
        console.print(
            f"[bold green]OK[/] {result.endpoint} [cyan]{result.check}[/]: {escape(result.message)}"
        )
    else:
        console.print(
            f"[bold red]{result.status.upper()}[/] {result.endpoint} "
            f"[cyan]{result.check}[/] ({result.error_type}): {escape(result.message)}"
        )
    if not result.ok:
        raise typer.Exit(1)


@app.command(name="protocols")
def list_protocols():
    """List recognised application protocols and the check each maps to."""
    from portcheck.core.registry import default_registry

    registry = default_registry()
    table = Table(title="portcheck protocols")
    table.add_column("Protocol", style="cyan")
    table.add_column("Check", style="green")
    table.add_column("TLS", style="yellow")
    table.add_column("Description")
    table.add_column("Notes", style="dim")

    for app_protocol, check_cls in registry.protocols().items():
        meta = check_cls.meta
        if app_protocol in meta.implicit_tls:
            tls = "implicit"
        elif getattr(check_cls, "supports_starttls", False):
            tls = "STARTTLS"
        else:
            tls = ""
        notes = "plain connect on loopback" if app_protocol in meta.loopback_excluded else ""
        table.add_row(
            app_protocol.value, meta.name, tls, meta.description or meta.display_name, notes,
        )

    console.print(table)


@app.command()
def version():
    """Show version."""
    console.print(f"portcheck v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
