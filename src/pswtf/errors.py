"""Exception types raised by pswtf operations."""


class PswtfError(Exception):
    """Base class for all pswtf errors."""


class ValidationError(PswtfError):
    """Caller input was rejected before touching the OS."""


class NotFoundError(PswtfError):
    """The requested PID is not present in a fresh process scan."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"Process {pid} was not found")
        self.pid = pid


class ExternalToolError(PswtfError):
    """An external inspection utility could not be run or failed."""


class ClockError(PswtfError):
    """The system clock could not be read as time since the epoch."""
