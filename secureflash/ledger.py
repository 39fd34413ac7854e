"""Audit ledger for provisioning runs.

This module provides:
- LEDGER_COLUMNS, the fixed column order of the CSV ledger
- AuditLedger, which appends one CSV row and one text block per run,
  exactly once, whichever way the run ends
- LedgerRow and read_rows(), a tolerant decoder for existing ledger files

The CSV file is append-only. Its header is written once, when the file is
created. Every field is written quoted, with carriage returns and newlines
stripped and embedded double quotes doubled.
"""

import atexit
import csv
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from .errors import ProvisioningError
from .logger import get_logger
from .run_status import Run, Step

log = get_logger(__name__)

CSV_FILE_NAME = 'flash_log.csv'
TEXT_FILE_NAME = 'flash_log.txt'

# Bumped whenever LEDGER_COLUMNS changes. v2 added the Build GBL column.
LEDGER_SCHEMA_VERSION = 2

RUN_COLUMNS = [
    'Date', 'Host', 'User', 'Board', 'Flasher Serial', 'Version', 'Variant',
    'Update Version', 'QR Code', 'DSK', 'Note', 'Result',
]
LEDGER_COLUMNS = RUN_COLUMNS + [step.value for step in Step]

TEXT_SEPARATOR = '-' * 40


# =============================================================================
# Encoding
# =============================================================================

def sanitize(value) -> str:
    """Strip CR/LF from a field value. Quotes are doubled by the csv writer."""
    if value is None:
        return ''
    return str(value).replace('\r', '').replace('\n', '')


def run_to_row(run: Run) -> List[str]:
    """Flatten a run into ledger column order.

    Unset statuses and results are rendered as ERROR, never left blank.
    """
    row = [
        run.timestamp,
        run.host,
        run.user,
        run.board_label,
        run.programmer_serial,
        run.version,
        run.variant,
        run.update_version,
        run.qr_code,
        run.dsk,
        run.note_text,
        run.result_text,
    ]
    row.extend(run.status(step).value for step in Step)
    return [sanitize(v) for v in row]


def format_text_block(run: Run) -> str:
    """Render the human-readable block for one run."""
    lines = [
        '',
        TEXT_SEPARATOR,
        f"Date:        {run.timestamp}",
        f"Host/User:   {run.host} / {run.user}",
        f"Board:       {run.board_label}",
        f"Note:        {run.note_text}",
        f"Flasher Serial: {run.programmer_serial}",
        f"Version:     {run.version}  (Update: {run.update_version})",
        f"Variant:     {run.variant}",
        f"Result:      {run.result_text}",
    ]
    if run.error_reason:
        where = f" (at {run.error_location})" if run.error_location else ""
        lines.append(f"Error:       {run.error_reason}{where}")
    lines.extend([
        f"QR Code:     {run.qr_code}",
        f"DSK:         {run.dsk}",
        "Steps:",
    ])
    for step in Step:
        lines.append(f"  - {step.label + ':':<19}{run.status(step).value}")
    return '\n'.join(lines) + '\n'


# =============================================================================
# Decoding
# =============================================================================

@dataclass
class LedgerRow:
    """One decoded ledger row. Missing trailing fields decode as ''."""
    date: str = ''
    host: str = ''
    user: str = ''
    board: str = ''
    serial: str = ''
    version: str = ''
    variant: str = ''
    update_version: str = ''
    qr_code: str = ''
    dsk: str = ''
    note: str = ''
    result: str = ''
    steps: Dict[str, str] = field(default_factory=dict)

    @property
    def board_id(self) -> str:
        """Board field before the first '-'."""
        return self.board.split('-')[0]

    @property
    def instance(self) -> int:
        """Numeric instance suffix; a missing or non-numeric suffix counts as 1."""
        parts = self.board.split('-')
        if len(parts) > 1 and parts[1].isdigit():
            return int(parts[1])
        return 1


_ROW_FIELDS = [
    ('date', 'Date'), ('host', 'Host'), ('user', 'User'), ('board', 'Board'),
    ('serial', 'Flasher Serial'), ('version', 'Version'), ('variant', 'Variant'),
    ('update_version', 'Update Version'), ('qr_code', 'QR Code'), ('dsk', 'DSK'),
    ('note', 'Note'), ('result', 'Result'),
]


def _decode(row: List[str], index: Dict[str, int]) -> LedgerRow:
    def cell(column, fallback):
        i = index.get(column, fallback)
        return row[i].strip() if i < len(row) else ''

    values = {name: cell(column, pos) for pos, (name, column) in enumerate(_ROW_FIELDS)}
    steps = {}
    for pos, step in enumerate(Step, start=len(RUN_COLUMNS)):
        steps[step.value] = cell(step.value, pos)
    return LedgerRow(steps=steps, **values)


def read_rows(path) -> Iterator[LedgerRow]:
    """Yield decoded rows from a ledger CSV.

    A missing file yields nothing. Rows too short to carry a board field are
    skipped; read or decode errors end the scan early without raising.
    """
    path = Path(path)
    if not path.exists():
        return
    try:
        with open(path, 'r', newline='', encoding='utf-8', errors='replace') as f:
            reader = csv.reader(f)
            header = next(reader, None)
            if header is None:
                return
            index = {name.strip(): i for i, name in enumerate(header)}
            for row in reader:
                if len(row) <= index.get('Board', 3):
                    log.debug(f"Skipping short ledger row {reader.line_num}")
                    continue
                yield _decode(row, index)
    except (OSError, csv.Error) as e:
        log.warning(f"Ledger {path} could not be fully read: {e}")


# =============================================================================
# Ledger
# =============================================================================

class AuditLedger:
    """Append-only CSV and text logs, one entry per run."""

    def __init__(self, log_dir):
        self.log_dir = Path(log_dir)
        self.csv_path = self.log_dir / CSV_FILE_NAME
        self.text_path = self.log_dir / TEXT_FILE_NAME

    def rows(self) -> Iterator[LedgerRow]:
        return read_rows(self.csv_path)

    def persist(self, run: Run) -> bool:
        """Write whatever part of the run is not on disk yet.

        The CSV row and the text block are tracked separately, so a retry
        after a failed text append never repeats the row.

        Returns:
            True if this call wrote anything, False if the run was already recorded

        Raises:
            OSError: if a log file cannot be written; parts already written stay recorded
        """
        if run.logs_written:
            log.debug(f"Ledger entry for {run.board_label} already written")
            return False
        self.log_dir.mkdir(parents=True, exist_ok=True)
        if not run.csv_written:
            self._append_csv(run)
            run.csv_written = True
            log.info(f"Recorded flash to: {self.csv_path}")
        if not run.text_written:
            self._append_text(run)
            run.text_written = True
            log.info(f"Recorded human-readable log to: {self.text_path}")
        return True

    def _append_csv(self, run: Run) -> None:
        is_new = not self.csv_path.exists() or self.csv_path.stat().st_size == 0
        if not is_new:
            self._check_header()
        with open(self.csv_path, 'a', newline='', encoding='utf-8') as f:
            if is_new:
                csv.writer(f, lineterminator='\n').writerow(LEDGER_COLUMNS)
            csv.writer(f, quoting=csv.QUOTE_ALL, lineterminator='\n').writerow(run_to_row(run))

    def _check_header(self) -> None:
        with open(self.csv_path, 'r', newline='', encoding='utf-8', errors='replace') as f:
            header = next(csv.reader(f), [])
        if [h.strip() for h in header] != LEDGER_COLUMNS:
            log.warning(
                f"Ledger header in {self.csv_path} does not match schema v{LEDGER_SCHEMA_VERSION}; "
                f"appending anyway"
            )

    def _append_text(self, run: Run) -> None:
        with open(self.text_path, 'a', encoding='utf-8') as f:
            f.write(format_text_block(run))

    @contextmanager
    def recording(self, run: Run):
        """Persist the run when the block exits, however it exits.

        Failures escaping the block mark the run ERROR before it is written.
        A block that ends without the run reaching a result is recorded as
        ERROR too.
        """
        try:
            yield run
        except ProvisioningError as e:
            run.fail(e.reason, e.location)
            raise
        except BaseException as e:
            detail = f": {e}" if str(e) else ""
            run.fail(f"Aborted by {type(e).__name__}{detail}", "interrupted")
            raise
        else:
            if run.result is None:
                run.fail("Run ended before completion", "end")
        finally:
            self.persist(run)

    def install_exit_guard(self, run: Run) -> None:
        """Fallback for exits that bypass recording(), e.g. sys.exit in a prompt."""
        atexit.register(self.persist_on_exit, run)

    def persist_on_exit(self, run: Run) -> Optional[bool]:
        if run.logs_written:
            return False
        if run.result is None:
            run.fail("Process exited before completion", "exit")
        try:
            return self.persist(run)
        except OSError as e:
            log.error(f"Could not write ledger entry on exit: {e}")
            return None
