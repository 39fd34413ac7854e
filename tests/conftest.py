import asyncio
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from secureflash.firmware import FirmwareSet, KeySet
from secureflash.programmers import CommandResult, ProgrammerBase
from secureflash.run_status import Run

QR_OUTPUT = (
    "Reading Z-Wave QR code...\n"
    "QR code: 900132782003515253545541424344453132333435363738393031323334353637383940414243\n"
    "DONE\n"
)


class FakeProgrammer(ProgrammerBase):
    """In-memory gateway. Token reads succeed until debug is locked."""

    name = "Fake"

    def __init__(self, failing=(), qr_output=QR_OUTPUT, debug_modes=('MCU',), probes=('440123456',)):
        super().__init__('commander', 'EFR32ZG23B020F512IM48', serial='440123456')
        self.failing = set(failing)
        self.qr_output = qr_output
        self.debug_modes = list(debug_modes)
        self.probes = list(probes)
        self.locked = False
        self.calls: List[str] = []
        self.dump_quiet: List[bool] = []
        self.progress_lines = 3

    def _result(self, op: str, output: str = '') -> CommandResult:
        self.calls.append(op)
        code = 1 if op in self.failing else 0
        return CommandResult([op], code, output)

    async def list_probes(self) -> List[str]:
        self.calls.append('list_probes')
        return list(self.probes)

    async def read_debug_mode(self) -> Optional[str]:
        self.calls.append('read_debug_mode')
        if len(self.debug_modes) > 1:
            return self.debug_modes.pop(0)
        return self.debug_modes[0] if self.debug_modes else None

    async def set_debug_mode(self, mode):
        return self._result('set_debug_mode')

    async def unlock_debug(self):
        res = self._result('unlock_debug')
        if res.ok:
            self.locked = False
        return res

    async def mass_erase(self):
        return self._result('mass_erase')

    async def flash_tokens(self, token_files):
        return self._result('flash_tokens')

    async def token_dump(self, quiet=True):
        self.calls.append('token_dump')
        self.dump_quiet.append(quiet)
        if 'token_dump' in self.failing or self.locked:
            return CommandResult(['token_dump'], 1, 'ERROR: Debug access locked')
        return CommandResult(['token_dump'], 0, 'TOKEN_MFG_ZWAVE_AES: 00112233')

    async def flash_images(self, images, on_progress=None):
        if on_progress:
            for _ in range(self.progress_lines):
                on_progress()
        return self._result('flash_images')

    async def read_qr_code(self, timeout_ms):
        return self._result('read_qr_code', self.qr_output)

    async def lock_debug(self):
        res = self._result('lock_debug')
        if res.ok:
            self.locked = True
        return res

    async def create_gbl(self, output, app_image, sign_key, aes_key):
        return self._result('create_gbl')

    async def generate_signing_key(self, privkey, pubkey, tokenfile):
        res = self._result('generate_signing_key')
        if res.ok:
            for path in (privkey, pubkey, tokenfile):
                Path(path).write_text('key\n')
        return res

    async def generate_aes_key(self, outfile):
        res = self._result('generate_aes_key')
        if res.ok:
            Path(outfile).write_text('TOKEN_MFG_SECURE_BOOTLOADER_KEY: 00\n')
        return res

    async def reset_adapter(self):
        return self._result('reset_adapter')


def run_async(coro):
    return asyncio.run(coro)


@pytest.fixture
def fake_programmer():
    return FakeProgrammer()


@pytest.fixture
def run():
    return Run(
        timestamp='2026-10-19T10:00:00+00:00',
        host='bench-1',
        user='operator',
        board_label='42',
        programmer_serial='440123456',
        version='0.0.12',
        variant='test',
        update_version='0.0.14',
    )


@pytest.fixture
def workdir(tmp_path) -> Path:
    """Working directory with a complete binaries tree and key set."""
    bin_root = tmp_path / 'binaries'
    for version in ('0.0.9', '0.0.12'):
        update_dir = bin_root / version / 'test' / 'nextversiontest'
        update_dir.mkdir(parents=True)
        (bin_root / version / 'secureboot.s37').write_text('S0\n')
        (bin_root / version / 'test' / 'brd-xg23-20dbm.s37').write_text('S0\n')
        (update_dir / 'secureboot.s37').write_text('S0\n')
        (update_dir / 'brd-xg23-20dbm.s37').write_text('S0\n')
    keys = KeySet(tmp_path)
    for path in keys.all_files():
        path.write_text('key\n')
    return tmp_path


@pytest.fixture
def firmware(workdir) -> FirmwareSet:
    return FirmwareSet(workdir / 'binaries', '0.0.12', 'test')


@pytest.fixture
def keys(workdir) -> KeySet:
    return KeySet(workdir)


def write_ledger(path: Path, boards: List[str], extra_rows: Optional[List[str]] = None) -> Path:
    """Write a ledger CSV holding one row per board label."""
    from secureflash.ledger import LEDGER_COLUMNS

    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [','.join(LEDGER_COLUMNS)]
    for board in boards:
        fields = ['2026-01-01T00:00:00+00:00', 'host', 'user', board] + [''] * (len(LEDGER_COLUMNS) - 4)
        lines.append(','.join(f'"{f}"' for f in fields))
    lines.extend(extra_rows or [])
    path.write_text('\n'.join(lines) + '\n', encoding='utf-8')
    return path
