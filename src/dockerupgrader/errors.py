"""Domain errors for dockerupgrader."""


class UpgraderError(RuntimeError):
    """Raised when the upgrade cannot continue safely."""


class OperatorAbort(UpgraderError):
    """Raised when the operator declines to continue at a gated step."""
