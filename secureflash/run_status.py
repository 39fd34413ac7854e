"""Run Status Module - status definitions and the per-run record.

This module consolidates:
- Step enum (the nine provisioning steps, in execution order)
- StepStatus and OverallResult enums
- Run, the single record of one provisioning attempt
- Status symbol mapping for the transcript summary

Used by: executor.py, workflow.py, ledger.py, cli.py
"""

import getpass
import socket
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from .errors import InvalidTransition


# =============================================================================
# Status Enums
# =============================================================================

class Step(Enum):
    """Provisioning steps in execution order; value is the ledger column."""
    UNLOCK = "Unlock"
    MASS_ERASE = "Mass Erase"
    FLASH_KEYS = "Flash Keys"
    TOKEN_DUMP_PRE = "Token Dump (pre)"
    FLASH_FIRMWARE = "Flash Firmware"
    QR_READ = "QR Read"
    LOCK_DEBUG = "Lock Debug"
    TOKEN_DUMP_POST = "Token Dump (post)"
    BUILD_GBL = "Build GBL"

    @property
    def key(self) -> str:
        return self.name.lower()

    @property
    def label(self) -> str:
        """Label used in the human-readable log."""
        return STEP_LABELS[self]

    @property
    def failure_reason(self) -> str:
        return FAILURE_REASONS[self]


class StepStatus(Enum):
    """Outcome of a single step. ERROR doubles as the initial value."""
    OK = "OK"
    ERROR = "ERROR"
    SKIPPED = "SKIPPED"


class OverallResult(Enum):
    """Outcome of the whole run."""
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


STEP_LABELS = {
    Step.UNLOCK: "Unlock",
    Step.MASS_ERASE: "Mass erase",
    Step.FLASH_KEYS: "Flash keys",
    Step.TOKEN_DUMP_PRE: "Tokendump (pre)",
    Step.FLASH_FIRMWARE: "Flash firmware",
    Step.QR_READ: "QR read",
    Step.LOCK_DEBUG: "Lock debug",
    Step.TOKEN_DUMP_POST: "Tokendump (post)",
    Step.BUILD_GBL: "Build GBL",
}

FAILURE_REASONS = {
    Step.UNLOCK: "Unlocking debug failed",
    Step.MASS_ERASE: "Mass erase failed",
    Step.FLASH_KEYS: "Flashing keys failed",
    Step.TOKEN_DUMP_PRE: "Token dump (pre) failed",
    Step.FLASH_FIRMWARE: "Flashing firmware failed",
    Step.QR_READ: "QR read failed or code not found",
    Step.LOCK_DEBUG: "Locking debug failed",
    Step.TOKEN_DUMP_POST: "Post-lock token access accessible (expected blocked)",
    Step.BUILD_GBL: "GBL creation failed",
}

# Only the debug re-lock may be skipped (service no-lock mode)
SKIPPABLE_STEPS = frozenset([Step.LOCK_DEBUG])

# Statuses that let a run finish as COMPLETE
PASSING_STATUSES = frozenset([StepStatus.OK, StepStatus.SKIPPED])

DEFAULT_NOTE = "(none entered)"


# =============================================================================
# Status Visual Mappings
# =============================================================================

DOT_PASS = "☑"
DOT_FAIL = "☒"
DOT_SKIPPED = "·"


def status_to_dot(status: StepStatus) -> str:
    """Convert a step status to a summary symbol."""
    if status == StepStatus.OK:
        return DOT_PASS
    elif status == StepStatus.SKIPPED:
        return DOT_SKIPPED
    return DOT_FAIL


# =============================================================================
# Data Classes
# =============================================================================

def _timestamp() -> str:
    """Local time, ISO-8601 with seconds and UTC offset."""
    return datetime.now().astimezone().isoformat(timespec='seconds')


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ''


def _initial_statuses() -> Dict[Step, StepStatus]:
    return {step: StepStatus.ERROR for step in Step}


@dataclass
class Run:
    """One provisioning attempt.

    Created once the board label is known, filled in field by field as the
    workflow advances, and written to the ledger exactly once.
    """
    timestamp: str = field(default_factory=_timestamp)
    host: str = field(default_factory=socket.gethostname)
    user: str = field(default_factory=_current_user)
    board_label: str = ''
    programmer_serial: str = ''
    version: str = ''
    variant: str = ''
    update_version: str = ''
    qr_code: str = ''
    dsk: str = ''
    note: str = ''
    result: Optional[OverallResult] = None  # Undecided until completion or failure
    statuses: Dict[Step, StepStatus] = field(default_factory=_initial_statuses)
    error_reason: Optional[str] = None
    error_location: Optional[str] = None
    csv_written: bool = False   # Ledger row appended
    text_written: bool = False  # Text block appended

    def status(self, step: Step) -> StepStatus:
        return self.statuses[step]

    def mark(self, step: Step, status: StepStatus) -> None:
        """Record a step outcome.

        Raises:
            InvalidTransition: if the step already left ERROR, or SKIPPED is
                requested for a step that cannot be skipped
        """
        current = self.statuses[step]
        if current == status == StepStatus.ERROR:
            return
        if current != StepStatus.ERROR:
            raise InvalidTransition(f"{step.name}: {current.value} -> {status.value}")
        if status == StepStatus.SKIPPED and step not in SKIPPABLE_STEPS:
            raise InvalidTransition(f"{step.name} cannot be skipped")
        self.statuses[step] = status

    def fail(self, reason: str, location: Optional[str] = None) -> None:
        """Mark the run as failed. The first recorded reason is kept."""
        self.result = OverallResult.ERROR
        if self.error_reason is None:
            self.error_reason = reason
            self.error_location = location

    def complete(self) -> None:
        """Mark the run COMPLETE once every step passed or was skipped."""
        if self.result == OverallResult.ERROR:
            raise InvalidTransition("run already failed")
        pending = [s.name for s, st in self.statuses.items() if st not in PASSING_STATUSES]
        if pending:
            raise InvalidTransition(f"steps not passed: {', '.join(pending)}")
        self.result = OverallResult.COMPLETE

    @property
    def result_text(self) -> str:
        """Result as recorded; an undecided run is reported as ERROR."""
        return (self.result or OverallResult.ERROR).value

    @property
    def note_text(self) -> str:
        return self.note or DEFAULT_NOTE

    @property
    def logs_written(self) -> bool:
        """Both the ledger row and the text block are on disk."""
        return self.csv_written and self.text_written

    def __repr__(self):
        return f"Run(board={self.board_label}, result={self.result_text})"
