"""Exception types raised while provisioning a board.

Every failure that ends a run carries a human-readable reason and the
logical location where it happened; both are copied into the audit record.
"""

from typing import List, Optional


class ProvisioningError(Exception):
    """Base class for failures that terminate a provisioning run."""

    def __init__(self, reason: str, location: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.location = location


class PreconditionError(ProvisioningError):
    """Missing hardware, tool, files or keys, detected before the board is touched."""


class MissingKeysError(PreconditionError):
    """One or more key files are absent from the working directory."""

    def __init__(self, missing: List[str]):
        super().__init__("Missing key files", "precondition:key_files")
        self.missing = list(missing)


class StepFailed(ProvisioningError):
    """A gateway call for a workflow step returned failure."""

    def __init__(self, step, reason: str, location: Optional[str] = None):
        super().__init__(reason, location or f"step:{step.key}")
        self.step = step


class SecurityViolation(StepFailed):
    """A call succeeded where success means the device is not protected."""


class InvalidTransition(ValueError):
    """A step status change the status model does not allow."""
