"""
VuXprog CLI

Serial programmer for the universal and extensible AVR serial bootloader
VuXboot. Not affiliated with Atmel in any way.
"""

import sys
import logging
from pathlib import Path
from typing import Callable, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.logging import RichHandler
from rich.progress import Progress, BarColumn, TextColumn

from vuxprog import __version__
from vuxprog.config import ProgrammerConfig
from vuxprog.core import actions
from vuxprog.core.parsing import (
    parse_file_format as _parse_file_format_core,
    parse_init_sequence as _parse_init_sequence_core,
    parse_write_protocol as _parse_write_protocol_core,
)
from vuxprog.core.results import OperationResult

logger = logging.getLogger("vuxprog")

# Setup Rich console
console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="VuXprog - serial programmer for the VuXboot AVR bootloader",
    no_args_is_help=True,
)


def setup_logging(verbose: bool) -> None:
    """Route vuxprog logs through Rich; --verbose shows wire traffic."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
        force=True,
    )


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    """Print success message."""
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    """Print warning message."""
    err_console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    """Print error message."""
    err_console.print(f"❌ {text}", style="red")


# Shared options ------------------------------------------------------------

PORT_OPTION = typer.Option(None, "--port", "-s", help="Serial port device (default /dev/ttyUSB0)")
FORMAT_OPTION = typer.Option(None, "--format", "-f", help="File format: ihex (default) or binary")
INIT_OPTION = typer.Option(None, "--init", "-i", help="Start bootloader by sending SEQ to port")
RESET_OPTION = typer.Option(False, "--reset", "-r", help="Reset device after successful programming")
BAUD_OPTION = typer.Option(None, "--baud", "-b", help="Serial baud rate (default 9600)")
TIMEOUT_OPTION = typer.Option(None, "--timeout", help="Per-read timeout in seconds (default 5)")
PROTOCOL_OPTION = typer.Option(
    None, "--write-protocol", help="Flash write handshake: single (default) or double"
)
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Log serial traffic")


def build_config(
    port: Optional[str] = None,
    file_format: Optional[str] = None,
    init: Optional[str] = None,
    reset: bool = False,
    baud: Optional[int] = None,
    timeout: Optional[float] = None,
    write_protocol: Optional[str] = None,
    include_bootloader: bool = False,
    force: bool = False,
) -> ProgrammerConfig:
    """
    Merge CLI options over environment and default settings.

    Option values are validated here so that errors surface as
    typer.BadParameter before the port is touched.
    """
    try:
        base = ProgrammerConfig.from_env()
        if file_format is not None:
            file_format = _parse_file_format_core(file_format).value
        if write_protocol is not None:
            write_protocol = _parse_write_protocol_core(write_protocol).value
        init_sequence = _parse_init_sequence_core(init)
    except ValueError as e:
        raise typer.BadParameter(str(e))

    return base.with_overrides(
        port=port,
        file_format=file_format,
        init_sequence=init_sequence,
        reset_after=reset or None,
        baudrate=baud,
        timeout=timeout,
        write_protocol=write_protocol,
        include_bootloader=include_bootloader or None,
        force=force or None,
    )


def describe_profile(profile: dict) -> None:
    """Print the device geometry table."""
    table = Table(title="Device capabilities")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    if profile["has_eeprom"]:
        table.add_row("EEPROM", f"{profile['eeprom_bytes']} bytes")
    else:
        table.add_row("EEPROM", "none")
    table.add_row("Page size", f"{profile['page_words']} words")
    table.add_row(
        "Flash size", f"{profile['flash_pages']} pages ({profile['flash_bytes']} bytes)"
    )
    table.add_row("Reserved area", f"{profile['boot_pages']} pages (at end)")

    console.print(table)


def report(result: OperationResult, success_text: str) -> None:
    """Print the outcome of an action and exit non-zero on failure."""
    profile = result.metadata.get("profile")
    if profile:
        describe_profile(profile)

    for warning in result.warnings:
        print_warning(warning)

    if not result.ok:
        for error in result.errors:
            print_error(error)
        raise typer.Exit(code=1)

    print_success(success_text)


def run_with_progress(
    description: str,
    action: Callable[[Callable[[int, int], None]], OperationResult],
) -> OperationResult:
    """Run an action that reports (done, total) progress."""
    with Progress(
        TextColumn("[{task.description}]"),
        BarColumn(),
        TextColumn("[{task.percentage:.0f}%]"),
        console=console,
    ) as progress:
        task = progress.add_task(description, total=None)

        def progress_cb(done: int, total: int) -> None:
            progress.update(task, completed=done, total=total)

        return action(progress_cb)


# Commands ------------------------------------------------------------------

@app.command()
def ports() -> None:
    """List available serial ports."""
    print_header("Available Serial Ports")

    import serial.tools.list_ports

    ports_list = list(serial.tools.list_ports.comports())

    if not ports_list:
        print_warning("No serial ports found")
        return

    table = Table(title="Serial Ports")
    table.add_column("Port", style="cyan")
    table.add_column("Device", style="magenta")
    table.add_column("Description", style="green")

    for port in ports_list:
        table.add_row(port.device, port.name or "-", port.description or "-")

    console.print(table)


@app.command()
def info(
    port: Optional[str] = PORT_OPTION,
    init: Optional[str] = INIT_OPTION,
    baud: Optional[int] = BAUD_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Identify the bootloader and show device geometry."""
    setup_logging(verbose)
    config = build_config(port=port, init=init, baud=baud, timeout=timeout)
    print_header(f"Identify device on {config.port}")

    result = actions.identify_device(config)
    report(result, "Device identified")


def flash_read(
    filename: Path = typer.Argument(..., help="Output file"),
    port: Optional[str] = PORT_OPTION,
    file_format: Optional[str] = FORMAT_OPTION,
    init: Optional[str] = INIT_OPTION,
    reset: bool = RESET_OPTION,
    all_pages: bool = typer.Option(
        False, "--all", "-a", help="Dump full flash including bootloader code"
    ),
    baud: Optional[int] = BAUD_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """
    Read flash into FILENAME.

    By default only application code is dumped. To include bootloader code,
    use -a.
    """
    setup_logging(verbose)
    config = build_config(
        port=port, file_format=file_format, init=init, reset=reset,
        baud=baud, timeout=timeout, include_bootloader=all_pages,
    )
    print_header(f"Read flash from {config.port}")

    result = run_with_progress(
        "Reading flash",
        lambda cb: actions.flash_read(config, filename, progress_cb=cb),
    )
    report(result, f"Flash ({result.bytes_len:,} bytes) saved to {filename}")


def flash_write(
    filename: Path = typer.Argument(..., help="Flash image to write"),
    port: Optional[str] = PORT_OPTION,
    file_format: Optional[str] = FORMAT_OPTION,
    init: Optional[str] = INIT_OPTION,
    reset: bool = RESET_OPTION,
    force: bool = typer.Option(
        False, "--force", "-F", help="Allow writing over the bootloader pages"
    ),
    baud: Optional[int] = BAUD_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    write_protocol: Optional[str] = PROTOCOL_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Write FILENAME to flash, skipping unchanged pages and verifying each write."""
    setup_logging(verbose)
    config = build_config(
        port=port, file_format=file_format, init=init, reset=reset,
        baud=baud, timeout=timeout, write_protocol=write_protocol, force=force,
    )
    print_header(f"Write flash on {config.port}")

    result = run_with_progress(
        "Writing flash",
        lambda cb: actions.flash_write(config, filename, progress_cb=cb),
    )
    if result.metadata.get("refused") == actions.BOOTLOADER_OVERWRITE:
        print_warning(
            "Writing this image would overwrite the bootloader and probably "
            "brick the device. Pass -F if you really know what you are doing."
        )
    report(result, f"Flash written: {result.changed or 0} pages changed")


def eeprom_read(
    filename: Path = typer.Argument(..., help="Output file"),
    port: Optional[str] = PORT_OPTION,
    file_format: Optional[str] = FORMAT_OPTION,
    init: Optional[str] = INIT_OPTION,
    reset: bool = RESET_OPTION,
    baud: Optional[int] = BAUD_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Read EEPROM into FILENAME."""
    setup_logging(verbose)
    config = build_config(
        port=port, file_format=file_format, init=init, reset=reset,
        baud=baud, timeout=timeout,
    )
    print_header(f"Read EEPROM from {config.port}")

    result = actions.eeprom_read(config, filename)
    report(result, f"EEPROM ({result.bytes_len:,} bytes) saved to {filename}")


def eeprom_write(
    filename: Path = typer.Argument(..., help="EEPROM image to write"),
    port: Optional[str] = PORT_OPTION,
    file_format: Optional[str] = FORMAT_OPTION,
    init: Optional[str] = INIT_OPTION,
    reset: bool = RESET_OPTION,
    baud: Optional[int] = BAUD_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Write FILENAME to EEPROM, changing only differing bytes."""
    setup_logging(verbose)
    config = build_config(
        port=port, file_format=file_format, init=init, reset=reset,
        baud=baud, timeout=timeout,
    )
    print_header(f"Write EEPROM on {config.port}")

    result = run_with_progress(
        "Writing EEPROM",
        lambda cb: actions.eeprom_write(config, filename, progress_cb=cb),
    )
    report(result, f"EEPROM written: {result.changed or 0} bytes changed")


def reset(
    port: Optional[str] = PORT_OPTION,
    init: Optional[str] = INIT_OPTION,
    baud: Optional[int] = BAUD_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Identify the device and start the application."""
    setup_logging(verbose)
    config = build_config(port=port, init=init, baud=baud, timeout=timeout)
    print_header(f"Reset device on {config.port}")

    result = actions.reset_device(config)
    report(result, "Resetting device...")


# Full command names plus hidden short aliases
for _names, _func in (
    (("flash-read", "fr"), flash_read),
    (("flash-write", "fw"), flash_write),
    (("eeprom-read", "er"), eeprom_read),
    (("eeprom-write", "ew"), eeprom_write),
    (("reset", "r"), reset),
):
    app.command(_names[0])(_func)
    app.command(_names[1], hidden=True)(_func)


@app.command()
def version() -> None:
    """Show version."""
    console.print(f"vuxprog {__version__}")


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(0)


if __name__ == "__main__":
    main()
