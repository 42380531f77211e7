"""Thin CLI wrapper for bake_filling.

This module provides the command-line interface using Typer.
All business logic is delegated to the card service.
"""

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from sqlalchemy.exc import SQLAlchemyError

from bake_filling import __version__
from bake_filling.config import Settings, get_settings, print_settings_json
from bake_filling.errors import BakeFillingError
from bake_filling.types import STAGE_MESSAGES, ExitCode, FlashStage, FlashStatus

if TYPE_CHECKING:
    from bake_filling.card.service import FlashPlan

PROGRAM = "bake-filling"

app = typer.Typer(
    name=PROGRAM,
    help="Bake a Raspberry Pi SD card from Buildroot output",
    no_args_is_help=True,
)
console = Console()


def print_message(message: str) -> None:
    """Print a status banner."""
    console.print("-")
    console.print("-----")
    console.print(f"- {escape(message)}")
    console.print("-----")
    console.print("-")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_settings(**overrides: object) -> Settings:
    try:
        return get_settings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {escape(str(e))}")
        raise typer.Exit(code=ExitCode.FAILURE) from None


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"{PROGRAM} version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log every command that is run"),
    ] = False,
) -> None:
    """Bake a Raspberry Pi SD card from Buildroot output."""
    level = "DEBUG" if verbose else _load_settings().log_level
    _configure_logging(level)


def _print_plan(plan: "FlashPlan") -> None:
    console.print("[bold]Flash plan (dry run, nothing written):[/bold]")
    console.print(f"  Device:          {plan.device.path}")
    if plan.device.size_bytes is not None:
        console.print(f"  Device size:     {plan.device.size_bytes} bytes")
    if plan.device.mounted_sources:
        console.print(
            f"  Will unmount:    {', '.join(plan.device.mounted_sources)}"
        )
    console.print(f"  Images:          {plan.artifacts.images_dir}")
    console.print(f"  Kernel:          {plan.artifacts.kernel.name}")
    console.print(f"  Rootfs archive:  {plan.artifacts.rootfs_archive.name}")
    console.print(f"  Firmware files:  {len(plan.artifacts.firmware_files)}")
    console.print(f"  Wipe:            first {plan.layout.wipe_mib} MiB")
    console.print(
        f"  Boot partition:  {plan.layout.boot_size} FAT32 "
        f"(label {plan.layout.boot_label})"
    )
    console.print(
        f"  Rootfs partition: rest of card, ext4 (label {plan.layout.rootfs_label})"
    )
    console.print(f"  Mount directory: {plan.mount_dir}")
    console.print()
    console.print("[bold]fdisk input:[/bold]")
    for line in plan.fdisk_script.splitlines():
        console.print(f"  {line!r}")


@app.command()
def flash(
    device: Annotated[
        str | None,
        typer.Argument(help="SD card block device (e.g. /dev/sdb, /dev/mmcblk0)"),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt"),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Run all checks and show the plan only"),
    ] = False,
    build_dir: Annotated[
        Path | None,
        typer.Option("--build-dir", "-b", help="Buildroot directory with the images"),
    ] = None,
    boot_size: Annotated[
        str | None,
        typer.Option("--boot-size", help="Boot partition size, e.g. +60M"),
    ] = None,
    no_history: Annotated[
        bool,
        typer.Option("--no-history", help="Don't record this flash in the history"),
    ] = False,
) -> None:
    """Wipe, partition and populate an SD card.

    The card gets a FAT32 boot partition with the firmware and kernel and
    an ext4 partition with the unpacked root filesystem.
    """
    from bake_filling.card.service import (
        FlashAbortedError,
        flash_card,
        is_confirmed,
        plan_flash,
    )

    if not device:
        print_message("Enter the SD Card Device")
        raise typer.Exit(code=ExitCode.SUCCESS)

    settings = _load_settings(build_dir=build_dir, boot_size=boot_size)

    try:
        plan = plan_flash(device, settings=settings, program=PROGRAM)
    except BakeFillingError as e:
        console.print(f"[red]{escape(e.message)}[/red]")
        if e.error_code == "MISSING_TOOL":
            console.print(f"[red]{PROGRAM} FAILED.[/red]")
        raise typer.Exit(code=e.exit_code) from None

    if dry_run:
        _print_plan(plan)
        raise typer.Exit(code=ExitCode.SUCCESS)

    if not yes:
        console.print("You are about to delete all contents of the SD Card")
        console.print(f"for the following device node: {plan.device.path}")
        console.print()
        answer = typer.prompt(
            "If you are sure you want to continue [y/N]?",
            default="",
            show_default=False,
        )
        if not is_confirmed(answer):
            aborted = FlashAbortedError()
            console.print(f"[yellow]{aborted.message}[/yellow]")
            raise typer.Exit(code=aborted.exit_code)

    def show_stage(stage: FlashStage, sources: list[str]) -> None:
        if stage is FlashStage.UNMOUNT:
            for source in sources:
                print_message(f"Unmounting {source}")
            return
        print_message(STAGE_MESSAGES[stage])

    if settings.record_history and not no_history:
        from bake_filling.db import (
            create_all_tables,
            get_engine,
            get_session,
            get_session_factory,
        )

        try:
            engine = get_engine(settings.db_url)
            create_all_tables(engine)
        except (SQLAlchemyError, OSError) as e:
            console.print(f"[red]Cannot open flash history database: {escape(str(e))}[/red]")
            console.print("Use --no-history to flash without recording it.")
            raise typer.Exit(code=ExitCode.FAILURE) from None

        with get_session(get_session_factory(engine)) as session:
            result = flash_card(
                plan, session=session, settings=settings, progress=show_stage
            )
    else:
        result = flash_card(plan, settings=settings, progress=show_stage)

    if not result.success:
        stage = result.stage.value if result.stage else "start"
        console.print(f"[red]✗ Flash failed during {stage}[/red]")
        if result.error_message:
            console.print(f"  Error: {escape(result.error_message)}")
        raise typer.Exit(code=result.exit_code)


@app.command()
def history(
    device_path: Annotated[
        str | None,
        typer.Option("--device", "-d", help="Filter by device path"),
    ] = None,
    status: Annotated[
        str | None,
        typer.Option(
            "--status", "-s", help="Filter by status (pending/running/succeeded/failed)"
        ),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum number of records to return"),
    ] = 100,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List previous flash operations, newest first."""
    from bake_filling.card.service import get_flash_records
    from bake_filling.db import create_all_tables, get_engine, get_session_factory

    status_filter: FlashStatus | None = None
    if status:
        try:
            status_filter = FlashStatus(status)
        except ValueError:
            console.print(f"[red]Invalid status: {status}[/red]")
            console.print("Valid values: pending, running, succeeded, failed")
            raise typer.Exit(code=ExitCode.FAILURE) from None

    settings = _load_settings()
    try:
        engine = get_engine(settings.db_url)
        create_all_tables(engine)
    except (SQLAlchemyError, OSError) as e:
        console.print(f"[red]Cannot open flash history database: {escape(str(e))}[/red]")
        raise typer.Exit(code=ExitCode.FAILURE) from None
    factory = get_session_factory(engine)

    with factory() as session:
        records = get_flash_records(
            session, device_path=device_path, status=status_filter, limit=limit
        )

        if not records:
            if json_output:
                console.print("[]")
            else:
                console.print("[yellow]No flash records found[/yellow]")
            return

        if json_output:
            output = [
                {
                    "id": r.id,
                    "device_path": r.device_path,
                    "device_size": r.device_size,
                    "images_dir": r.images_dir,
                    "kernel_sha256": r.kernel_sha256,
                    "boot_size": r.boot_size,
                    "status": r.status,
                    "stage": r.stage,
                    "requested_at": r.requested_at.isoformat()
                    if r.requested_at
                    else None,
                    "started_at": r.started_at.isoformat() if r.started_at else None,
                    "finished_at": r.finished_at.isoformat() if r.finished_at else None,
                    "error_code": r.error_code,
                    "error_message": r.error_message,
                }
                for r in records
            ]
            console.print(json.dumps(output, indent=2))
        else:
            console.print(f"[bold]Found {len(records)} flash record(s):[/bold]")
            console.print()
            for r in records:
                status_color = {
                    "succeeded": "green",
                    "failed": "red",
                    "running": "blue",
                    "pending": "yellow",
                }.get(r.status, "white")
                console.print(f"  [{status_color}]Flash #{r.id}[/{status_color}]")
                console.print(f"    Device: {r.device_path}")
                console.print(f"    Images: {r.images_dir}")
                console.print(f"    Status: {r.status}")
                console.print(f"    Stage: {r.stage or 'N/A'}")
                console.print(
                    f"    Requested: {r.requested_at.isoformat() if r.requested_at else 'N/A'}"
                )
                if r.error_message:
                    console.print(f"    Error: {escape(r.error_message)}")
                console.print()


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = _load_settings()
    if json_output:
        console.print(print_settings_json(settings))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Build directory:     {settings.build_dir}")
        console.print(f"  Mount directory:     {settings.mount_dir_name}")
        console.print(f"  Database URL:        {settings.db_url}")
        console.print(f"  Tool PATH:           {settings.tool_path}")
        console.print()
        console.print("[bold]Card layout:[/bold]")
        console.print(f"  Boot size:           {settings.boot_size}")
        console.print(f"  Boot label:          {settings.boot_label}")
        console.print(f"  Rootfs label:        {settings.rootfs_label}")
        console.print(f"  Wipe (MiB):          {settings.wipe_mib}")
        console.print(f"  Settle delay (s):    {settings.settle_seconds}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Refuse system disk:  {settings.check_system_device}")
        console.print(f"  Record history:      {settings.record_history}")
        console.print(f"  Log level:           {settings.log_level}")


if __name__ == "__main__":
    app()
