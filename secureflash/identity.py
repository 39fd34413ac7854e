"""Board identity resolution.

Operators type a numeric board ID. If the ledger already holds rows for that
ID, the board gets an instance suffix (``7-2``) so every run stays traceable
to a unique label.
"""

from dataclasses import dataclass
from typing import Callable, Tuple

from .ledger import read_rows
from .logger import get_logger

log = get_logger(__name__)

BOARD_ID_PROMPT = "Enter numeric board number: "


@dataclass(frozen=True)
class BoardIdentity:
    board_id: str
    instance: int = 1
    duplicates: int = 0
    suffixed: bool = False

    @property
    def label(self) -> str:
        if self.suffixed:
            return f"{self.board_id}-{self.instance}"
        return self.board_id


def is_valid_board_id(text: str) -> bool:
    return bool(text) and text.isascii() and text.isdigit()


def scan_ledger(ledger_path, board_id: str) -> Tuple[int, int]:
    """Count ledger rows for a board ID and find the highest instance.

    Returns:
        Tuple of (match_count, max_instance); (0, 0) when nothing matches or
        the ledger is missing
    """
    count = 0
    max_instance = 0
    for row in read_rows(ledger_path):
        if row.board_id != board_id:
            continue
        count += 1
        max_instance = max(max_instance, row.instance)
    return count, max_instance


def _ask_numeric(ask: Callable[[str], str], warn: Callable[[str], None], value: str) -> str:
    # No retry limit: the operator keeps going until the ID is numeric
    while not is_valid_board_id(value):
        warn("Board ID must be numeric.")
        value = ask(BOARD_ID_PROMPT).strip()
    return value


def resolve_identity(
    ledger_path,
    candidate: str,
    ask: Callable[[str], str],
    warn: Callable[[str], None] = log.warning,
) -> BoardIdentity:
    """Turn an operator-supplied board ID into a unique board label.

    Args:
        ledger_path: CSV ledger to check for earlier uses of the ID
        candidate: Board ID as typed; re-prompted until numeric
        ask: Prompt function returning the operator's answer
        warn: Sink for validation and duplicate warnings

    Returns:
        BoardIdentity whose label is unique in the ledger at this moment
    """
    board_id = _ask_numeric(ask, warn, (candidate or '').strip())
    count, max_instance = scan_ledger(ledger_path, board_id)
    if count == 0:
        return BoardIdentity(board_id)

    suggested = max_instance + 1
    warn(f"WARNING: Board ID '{board_id}' already logged {count} time(s).")
    answer = ask(f"Enter a new device ID, or press Enter to use '{board_id}-{suggested}': ").strip()
    if not answer:
        return BoardIdentity(board_id, suggested, count, suffixed=True)

    # A substituted ID gets one more duplicate check, then an automatic suffix
    new_id = _ask_numeric(ask, warn, answer)
    count, max_instance = scan_ledger(ledger_path, new_id)
    if count == 0:
        return BoardIdentity(new_id)
    log.info(f"Board ID '{new_id}' already logged {count} time(s); using '{new_id}-{max_instance + 1}'")
    return BoardIdentity(new_id, max_instance + 1, count, suffixed=True)
