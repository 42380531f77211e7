"""Base error type for bake_filling.

Every failure carries a stable error code for programmatic handling and
the process exit code the CLI terminates with.
"""

from bake_filling.types import ExitCode


class BakeFillingError(Exception):
    """Base exception for all bake_filling errors.

    Attributes:
        message: Human-readable error message.
        error_code: Stable error code (e.g. 'NOT_BLOCK_DEVICE').
        exit_code: Process exit code for this failure.
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        exit_code: ExitCode = ExitCode.FAILURE,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.exit_code = exit_code


class PrivilegeError(BakeFillingError):
    """Caller is not root."""

    def __init__(self, program: str = "bake-filling") -> None:
        # Reported as a benign abort, like a missing device argument
        super().__init__(
            f"{program} requires root privileges in order to work.",
            error_code="NOT_ROOT",
            exit_code=ExitCode.SUCCESS,
        )


__all__ = ["BakeFillingError", "PrivilegeError"]
