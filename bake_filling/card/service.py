"""Flash service layer for baking SD cards.

This module provides the high-level operations:
- plan_flash: run every precondition check without touching the card
- flash_card: unmount, wipe, partition, format and populate the card
- is_confirmed: interpret the answer to the confirmation prompt
- get_flash_records: query the flash history

Each stage is a hard precondition for the next. The first failure stops
the flash; nothing is retried and nothing is rolled back.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import Session

from bake_filling.card.artifacts import (
    BuildArtifacts,
    compute_file_hash,
    locate_artifacts,
)
from bake_filling.card.device import (
    DeviceInfo,
    get_mounted_sources,
    require_root,
    validate_device,
)
from bake_filling.card.models import FlashRecord
from bake_filling.card.mount import (
    check_mount_directory,
    mount_directory,
    mounted,
    unmount_sources,
)
from bake_filling.card.partition import (
    CardLayout,
    build_fdisk_script,
    format_partitions,
    partition_device,
    zero_device,
)
from bake_filling.card.populate import populate_boot, populate_rootfs
from bake_filling.card.tools import ToolPaths, locate_tools
from bake_filling.config import Settings, get_settings
from bake_filling.errors import BakeFillingError
from bake_filling.types import ExitCode, FlashStage, FlashStatus

logger = logging.getLogger(__name__)

# Called with each stage and the device nodes it acts on (unmount only)
ProgressCallback = Callable[[FlashStage, list[str]], None]

# Literal answers that confirm the flash
CONFIRM_ANSWERS = ("y", "Y")


class FlashAbortedError(BakeFillingError):
    """The user did not confirm the flash."""

    def __init__(self, message: str = "Aborted, no damage done!") -> None:
        super().__init__(message, error_code="FLASH_ABORTED")


@dataclass
class FlashPlan:
    """Everything needed to bake a card, checked up front.

    Attributes:
        device: Validated target device.
        tools: Resolved external tools.
        artifacts: Located build output.
        layout: Partition layout to write.
        mount_dir: Temporary mount point to create.
        tool_path: PATH used for the external tools.
    """

    device: DeviceInfo
    tools: ToolPaths
    artifacts: BuildArtifacts
    layout: CardLayout
    mount_dir: Path
    tool_path: str

    @property
    def fdisk_script(self) -> str:
        """Keystrokes fed to fdisk."""
        return build_fdisk_script(self.layout.boot_size)


@dataclass
class FlashResult:
    """Result of a flash operation.

    Attributes:
        success: Whether the card was baked completely.
        device_path: Path to the target device.
        stage: Last stage reached.
        flash_record_id: ID of the FlashRecord (if persisted).
        boot_files: Entries written to the boot partition.
        error_message: Error message if flash failed.
        error_code: Error code if flash failed.
        exit_code: Process exit code for this result.
    """

    success: bool
    device_path: str
    stage: FlashStage | None
    flash_record_id: int | None = None
    boot_files: list[str] = field(default_factory=list)
    error_message: str | None = None
    error_code: str | None = None
    exit_code: ExitCode = ExitCode.SUCCESS


def is_confirmed(answer: str | None) -> bool:
    """Whether a prompt answer confirms the flash.

    Only a literal 'y' or 'Y' does; anything else, including 'yes',
    aborts.
    """
    return answer is not None and answer.strip() in CONFIRM_ANSWERS


def plan_flash(
    device_path: str,
    *,
    settings: Settings | None = None,
    program: str = "bake-filling",
) -> FlashPlan:
    """Check every precondition and describe the flash.

    The card is not touched. Checks run in this order:
    1. Caller is root
    2. Device is a whole block device (and not the system disk)
    3. Required tools are installed
    4. Build output exists under images/ or output/images/
    5. The mount directory can be created or reused

    Args:
        device_path: Path to the target device.
        settings: Application settings (optional).
        program: Program name used in the privilege message.

    Returns:
        FlashPlan with operation details.

    Raises:
        PrivilegeError: Caller is not root.
        DeviceValidationError: Device validation failed.
        MissingToolError: A required tool is not installed.
        ArtifactsNotFoundError: No complete build output.
        MountError: The mount directory is in use or not empty.
    """
    if settings is None:
        settings = get_settings()

    require_root(program)

    device = validate_device(
        device_path, check_system_device=settings.check_system_device
    )
    tools = locate_tools(settings.tool_path)
    artifacts = locate_artifacts(settings.build_dir)
    mount_dir = Path.cwd() / settings.mount_dir_name
    check_mount_directory(mount_dir)

    return FlashPlan(
        device=device,
        tools=tools,
        artifacts=artifacts,
        layout=CardLayout(
            boot_size=settings.boot_size,
            boot_label=settings.boot_label,
            rootfs_label=settings.rootfs_label,
            wipe_mib=settings.wipe_mib,
        ),
        mount_dir=mount_dir,
        tool_path=settings.tool_path,
    )


def _run_stages(
    plan: FlashPlan,
    enter: Callable[..., None],
    settle_seconds: float,
) -> list[str]:
    """Run every stage that modifies the card, in order."""
    tools = plan.tools
    device_path = plan.device.path
    layout = plan.layout

    # Re-read: the card may have been automounted since validation
    sources = get_mounted_sources(device_path)
    enter(FlashStage.UNMOUNT, sources)
    unmount_sources(sources, tools, tool_path=plan.tool_path)

    enter(FlashStage.WIPE)
    zero_device(
        device_path, tools, wipe_mib=layout.wipe_mib, tool_path=plan.tool_path
    )

    enter(FlashStage.PARTITION)
    boot_partition, rootfs_partition = partition_device(
        device_path,
        tools,
        boot_size=layout.boot_size,
        settle_seconds=settle_seconds,
        tool_path=plan.tool_path,
    )

    enter(FlashStage.FORMAT)
    format_partitions(
        boot_partition,
        rootfs_partition,
        tools,
        boot_label=layout.boot_label,
        rootfs_label=layout.rootfs_label,
        tool_path=plan.tool_path,
    )

    with mount_directory(plan.mount_dir) as mount_dir:
        enter(FlashStage.POPULATE_BOOT)
        with mounted(boot_partition, mount_dir, tools, tool_path=plan.tool_path):
            copied = populate_boot(plan.artifacts, mount_dir)

        enter(FlashStage.POPULATE_ROOTFS)
        with mounted(rootfs_partition, mount_dir, tools, tool_path=plan.tool_path):
            populate_rootfs(plan.artifacts, mount_dir, tools, tool_path=plan.tool_path)

        enter(FlashStage.CLEANUP)

    return [p.name for p in copied]


def flash_card(
    plan: FlashPlan,
    *,
    session: Session | None = None,
    settings: Settings | None = None,
    progress: ProgressCallback | None = None,
) -> FlashResult:
    """Bake the card described by a plan.

    The caller is responsible for having obtained confirmation.

    Args:
        plan: Checked plan from plan_flash.
        session: Database session (optional, for FlashRecord tracking).
        settings: Application settings (optional).
        progress: Called with each stage as it starts, and with
            FlashStage.DONE on success. The unmount stage passes the
            device nodes being unmounted.

    Returns:
        FlashResult with operation details. Failures are reported in the
        result, not raised.
    """
    if settings is None:
        settings = get_settings()

    device_path = plan.device.path
    logger.info(
        "Flash started: device=%s, images=%s", device_path, plan.artifacts.images_dir
    )

    flash_record: FlashRecord | None = None
    if session is not None:
        flash_record = FlashRecord(
            device_path=device_path,
            device_size=plan.device.size_bytes,
            images_dir=str(plan.artifacts.images_dir),
            kernel_sha256=compute_file_hash(plan.artifacts.kernel),
            boot_size=plan.layout.boot_size,
            status=FlashStatus.PENDING.value,
            requested_at=datetime.now(),
        )
        session.add(flash_record)
        session.flush()
        logger.debug("Created FlashRecord id=%d", flash_record.id)
        flash_record.mark_running()

    current: FlashStage | None = None

    def enter(stage: FlashStage, sources: list[str] | None = None) -> None:
        nonlocal current
        current = stage
        logger.info("Stage: %s", stage.value)
        if flash_record is not None:
            flash_record.mark_stage(stage)
        if progress is not None:
            progress(stage, sources or [])

    try:
        boot_files = _run_stages(plan, enter, settings.settle_seconds)
    except (BakeFillingError, OSError) as e:
        if isinstance(e, BakeFillingError):
            error = e
        else:
            error = BakeFillingError(
                f"I/O error during {current.value if current else 'flash'}: {e}",
                error_code="IO_ERROR",
            )
        logger.error("Flash failed at stage %s: %s", current, error.message)

        if flash_record is not None:
            flash_record.mark_failed(error_code=error.error_code, message=error.message)
            session.flush()  # type: ignore[union-attr]

        return FlashResult(
            success=False,
            device_path=device_path,
            stage=current,
            flash_record_id=flash_record.id if flash_record else None,
            error_message=error.message,
            error_code=error.error_code,
            exit_code=error.exit_code,
        )

    if flash_record is not None:
        flash_record.mark_succeeded()
        session.flush()  # type: ignore[union-attr]

    logger.info("Flash succeeded: %s", device_path)
    if progress is not None:
        progress(FlashStage.DONE, [])

    return FlashResult(
        success=True,
        device_path=device_path,
        stage=FlashStage.DONE,
        flash_record_id=flash_record.id if flash_record else None,
        boot_files=boot_files,
    )


def get_flash_records(
    session: Session,
    *,
    device_path: str | None = None,
    status: FlashStatus | None = None,
    limit: int = 100,
) -> list[FlashRecord]:
    """Query flash records with optional filters, newest first.

    Args:
        session: Database session.
        device_path: Filter by device path.
        status: Filter by status.
        limit: Maximum number of records to return.

    Returns:
        List of FlashRecord objects.
    """
    stmt = select(FlashRecord)

    if device_path is not None:
        stmt = stmt.where(FlashRecord.device_path == device_path)
    if status is not None:
        stmt = stmt.where(FlashRecord.status == status.value)

    stmt = stmt.order_by(FlashRecord.requested_at.desc(), FlashRecord.id.desc()).limit(
        limit
    )

    return list(session.execute(stmt).scalars().all())


__all__ = [
    "CONFIRM_ANSWERS",
    "FlashAbortedError",
    "FlashPlan",
    "FlashResult",
    "ProgressCallback",
    "flash_card",
    "get_flash_records",
    "is_confirmed",
    "plan_flash",
]
