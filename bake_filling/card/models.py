"""Flash history ORM model.

A FlashRecord tracks one confirmed attempt to bake a card: which device,
which build output, how far it got and why it stopped.
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from bake_filling.db import Base
from bake_filling.types import FlashStage, FlashStatus


class FlashRecord(Base):
    """ORM model for SD card flash operations.

    Attributes:
        id: Primary key.
        device_path: Block device path (e.g., '/dev/sdb').
        device_size: Device size in bytes, if known.
        images_dir: Directory the images were taken from.
        kernel_sha256: SHA-256 of the kernel image written.
        boot_size: Boot partition size (fdisk syntax).
        requested_at: Timestamp when flash was requested.
        started_at: Timestamp when the device was first touched.
        finished_at: Timestamp when flash finished.
        status: Flash status (pending, running, succeeded, failed).
        stage: Last stage reached.
        error_code: Stable error code if flash failed.
        error_message: Error message if flash failed.
    """

    __tablename__ = "flash_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Device identification
    device_path: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    device_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # What was written
    images_dir: Mapped[str] = mapped_column(String(500), nullable=False)
    kernel_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)
    boot_size: Mapped[str] = mapped_column(String(20), nullable=False)

    # Timing
    requested_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FlashStatus.PENDING.value, index=True
    )
    stage: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Errors
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_flash_records_device_status", "device_path", "status"),
    )

    def __repr__(self) -> str:
        """Return string representation of FlashRecord."""
        return (
            f"<FlashRecord(id={self.id}, device_path='{self.device_path}', "
            f"status='{self.status}', stage='{self.stage}')>"
        )

    def mark_running(self) -> None:
        """Mark this flash as running."""
        self.status = FlashStatus.RUNNING.value
        self.started_at = datetime.now()

    def mark_stage(self, stage: FlashStage) -> None:
        """Record the stage the flash has reached."""
        self.stage = stage.value

    def mark_succeeded(self) -> None:
        """Mark this flash as succeeded."""
        self.status = FlashStatus.SUCCEEDED.value
        self.stage = FlashStage.DONE.value
        self.finished_at = datetime.now()

    def mark_failed(
        self, error_code: str | None = None, message: str | None = None
    ) -> None:
        """Mark this flash as failed.

        Args:
            error_code: Stable error code.
            message: Error message details.
        """
        self.status = FlashStatus.FAILED.value
        self.finished_at = datetime.now()
        if error_code:
            self.error_code = error_code
        if message:
            self.error_message = message

    def is_succeeded(self) -> bool:
        """Check if this flash succeeded."""
        return self.status == FlashStatus.SUCCEEDED.value


__all__ = ["FlashRecord"]
