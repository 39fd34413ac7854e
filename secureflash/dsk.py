"""Z-Wave QR payload parsing and DSK derivation."""

import re
from typing import Optional

# Manufacturing QR payloads are a single run of at least 60 digits
QR_CODE_PATTERN = re.compile(r'[0-9]{60,}')

DSK_OFFSET = 13
DSK_LENGTH = 40
DSK_GROUP = 5
DSK_SEPARATOR = '-'


def extract_qr_code(output: str) -> Optional[str]:
    """Return the first run of 60+ digits in the tool output, if any."""
    match = QR_CODE_PATTERN.search(output or '')
    return match.group(0) if match else None


def derive_dsk(qr_code: str) -> str:
    """Format the DSK window of a QR code as dash-separated 5-digit groups.

    >>> derive_dsk('0' * 13 + '1' * 40 + '9' * 7)
    '11111-11111-11111-11111-11111-11111-11111-11111'
    """
    window = qr_code[DSK_OFFSET:DSK_OFFSET + DSK_LENGTH]
    groups = [window[i:i + DSK_GROUP] for i in range(0, len(window), DSK_GROUP)]
    return DSK_SEPARATOR.join(groups)
