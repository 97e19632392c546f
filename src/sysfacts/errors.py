"""Exceptions raised by sysfacts sources."""


class SysfactsError(Exception):
    """Base class for sysfacts errors."""


class ProcessLookupFailed(SysfactsError):
    """A per-process lookup failed."""

    def __init__(self, pid: int, msg: str = "") -> None:
        self.pid = pid
        super().__init__(msg or f"process lookup failed (pid={pid})")


class ProcessGone(ProcessLookupFailed):
    """The process no longer exists (or became a zombie)."""

    def __init__(self, pid: int) -> None:
        super().__init__(pid, f"process no longer exists (pid={pid})")


class ProcessAccessDenied(ProcessLookupFailed):
    """The caller lacks permission to inspect the process."""

    def __init__(self, pid: int) -> None:
        super().__init__(pid, f"access denied (pid={pid})")
