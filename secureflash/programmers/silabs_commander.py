"""Silicon Labs programmer plugin using Simplicity Commander.

Supports EFR32 Series 2 parts (e.g. EFR32ZG23) via the ``commander``
command-line tool shipped with Simplicity Studio.
"""

import re
from typing import Callable, List, Optional, Sequence

from .base import CommandResult, ProgrammerBase
from ..logger import get_logger

log = get_logger(__name__)

PROBE_SERIAL_PATTERN = re.compile(r'SN=([0-9]+)')
DEBUG_MODE_PATTERN = re.compile(r'^Debug Mode:\s*(.*)$', re.MULTILINE)
PROGRESS_PREFIX = 'Programming range'

# Host-side margin on top of the tool's own QR read timeout
QR_WAIT_MARGIN = 10.0


class SimplicityCommander(ProgrammerBase):
    """Programmer for Silicon Labs devices using Simplicity Commander."""

    name = "Silicon Labs (Simplicity Commander)"

    def __init__(self, executable: str, device: str, serial: Optional[str] = None,
                 timeout: float = 120.0, token_group: str = 'znet'):
        super().__init__(executable, device, serial, timeout)
        self.token_group = token_group

    def _target(self) -> List[str]:
        return ['--serialno', str(self.serial), '--device', self.device]

    async def list_probes(self) -> List[str]:
        res = await self.run_cmd_async('-v')
        return PROBE_SERIAL_PATTERN.findall(res.output)

    async def read_debug_mode(self) -> Optional[str]:
        res = await self.run_cmd_async('adapter', 'dbgmode', '--serialno', str(self.serial))
        match = DEBUG_MODE_PATTERN.search(res.output)
        if not match:
            return None
        return match.group(1).replace(' ', '').strip()

    async def set_debug_mode(self, mode: str) -> CommandResult:
        return await self.run_cmd_async('adapter', 'dbgmode', mode, '--serialno', str(self.serial))

    async def unlock_debug(self) -> CommandResult:
        return await self.run_cmd_async('device', 'lock', '--debug', 'disable', *self._target())

    async def mass_erase(self) -> CommandResult:
        return await self.run_cmd_async('device', 'masserase', *self._target())

    async def flash_tokens(self, token_files: Sequence[str]) -> CommandResult:
        args = ['flash', '--tokengroup', self.token_group]
        for path in token_files:
            args.extend(['--tokenfile', str(path)])
        return await self.run_cmd_async(*args, '--device', self.device, '--serialno', str(self.serial),
                                        quiet=True)

    async def token_dump(self, quiet: bool = True) -> CommandResult:
        return await self.run_cmd_async(
            'tokendump', '--tokengroup', self.token_group,
            '--device', self.device, '--serialno', str(self.serial),
            quiet=quiet,
        )

    async def flash_images(self, images: Sequence[str],
                           on_progress: Optional[Callable[[], None]] = None) -> CommandResult:
        def _on_line(line: str):
            if on_progress and line.startswith(PROGRESS_PREFIX):
                on_progress()

        return await self.run_cmd_async(
            'flash', '--device', self.device, '--serialno', str(self.serial),
            *[str(p) for p in images],
            on_line=_on_line,
        )

    async def read_qr_code(self, timeout_ms: int) -> CommandResult:
        return await self.run_cmd_async(
            'device', 'zwave-qrcode', *self._target(), '--timeout', str(timeout_ms),
            timeout=timeout_ms / 1000.0 + QR_WAIT_MARGIN,
        )

    async def lock_debug(self) -> CommandResult:
        return await self.run_cmd_async('device', 'lock', '--debug', 'enable', *self._target())

    async def create_gbl(self, output: str, app_image: str, sign_key: str,
                         aes_key: str) -> CommandResult:
        return await self.run_cmd_async(
            'gbl', 'create', str(output),
            '--app', str(app_image),
            '--sign', str(sign_key),
            '--encrypt', str(aes_key),
            '--compress', 'lzma',
            '--device', self.device,
        )

    async def generate_signing_key(self, privkey: str, pubkey: str, tokenfile: str) -> CommandResult:
        return await self.run_cmd_async(
            'util', 'genkey', '--type', 'ecc-p256',
            '--privkey', str(privkey), '--pubkey', str(pubkey), '--tokenfile', str(tokenfile),
            quiet=True,
        )

    async def generate_aes_key(self, outfile: str) -> CommandResult:
        return await self.run_cmd_async('util', 'genkey', '--type', 'aes-ccm', '--outfile', str(outfile),
                                        quiet=True)

    async def reset_adapter(self) -> CommandResult:
        return await self.run_cmd_async('adapter', 'reset', '--serialno', str(self.serial))
