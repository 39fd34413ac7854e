"""Base class for programmer plugins.

A programmer plugin is the gateway to the physical hardware: every method
runs one tool command against the selected probe and returns a
CommandResult. Plugins never decide whether a result is good or bad for the
workflow; that is left to the step executor.
"""

import asyncio
import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ..logger import get_logger

log = get_logger(__name__)

LineCallback = Callable[[str], None]


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one tool invocation."""
    argv: List[str]
    returncode: int
    output: str = ''  # stdout and stderr, interleaved
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProgrammerBase(ABC):
    """Abstract base class for programmer plugins.

    Subclasses must implement:
        - name (class attribute): Display name for the programmer
        - list_probes(): Serial numbers of attached debug probes
        - the device operations used by the provisioning workflow
    """

    name: str = "Unknown Programmer"

    def __init__(self, executable: str, device: str, serial: Optional[str] = None,
                 timeout: float = 120.0):
        """Initialize programmer.

        Args:
            executable: Path to the command-line tool
            device: Target part number passed with --device
            serial: Debug probe serial number, chosen after list_probes()
            timeout: Default seconds to wait for a single command
        """
        self.executable = executable
        self.device = device
        self.serial = serial
        self.timeout = timeout

    @abstractmethod
    async def list_probes(self) -> List[str]:
        """Return serial numbers of connected debug probes."""

    @abstractmethod
    async def read_debug_mode(self) -> Optional[str]:
        """Return the adapter debug mode, or None if it cannot be read."""

    @abstractmethod
    async def set_debug_mode(self, mode: str) -> CommandResult:
        pass

    @abstractmethod
    async def unlock_debug(self) -> CommandResult:
        pass

    @abstractmethod
    async def mass_erase(self) -> CommandResult:
        pass

    @abstractmethod
    async def flash_tokens(self, token_files: Sequence[str]) -> CommandResult:
        pass

    @abstractmethod
    async def token_dump(self, quiet: bool = True) -> CommandResult:
        """Read back the provisioned tokens. quiet keeps token contents out of the logs."""

    @abstractmethod
    async def flash_images(self, images: Sequence[str],
                           on_progress: Optional[Callable[[], None]] = None) -> CommandResult:
        pass

    @abstractmethod
    async def read_qr_code(self, timeout_ms: int) -> CommandResult:
        pass

    @abstractmethod
    async def lock_debug(self) -> CommandResult:
        pass

    @abstractmethod
    async def create_gbl(self, output: str, app_image: str, sign_key: str,
                         aes_key: str) -> CommandResult:
        pass

    @abstractmethod
    async def generate_signing_key(self, privkey: str, pubkey: str, tokenfile: str) -> CommandResult:
        pass

    @abstractmethod
    async def generate_aes_key(self, outfile: str) -> CommandResult:
        pass

    @abstractmethod
    async def reset_adapter(self) -> CommandResult:
        pass

    async def run_cmd_async(
        self,
        *args: str,
        on_line: Optional[LineCallback] = None,
        timeout: Optional[float] = None,
        quiet: bool = False,
    ) -> CommandResult:
        """Run the tool and wait for it to finish.

        Output lines are handed to on_line as they arrive, so long operations
        can report progress.

        Args:
            *args: Tool arguments (the executable is prepended)
            on_line: Called with each output line, without the newline
            timeout: Seconds before the process is killed (default: self.timeout)
            quiet: Keep the captured output out of the debug log

        Returns:
            CommandResult; a missing executable or a timeout gives a non-zero code
        """
        argv = [self.executable, *args]
        log.debug(f"Running command: {' '.join(shlex.quote(a) for a in argv)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            log.error(f"Error running {argv[0]}: {e}")
            return CommandResult(argv, 127, str(e))

        lines: List[str] = []

        async def _pump():
            while True:
                raw = await proc.stdout.readline()
                if not raw:
                    break
                line = raw.decode('utf-8', errors='ignore').rstrip('\r\n')
                lines.append(line)
                if on_line:
                    on_line(line)
            return await proc.wait()

        try:
            returncode = await asyncio.wait_for(_pump(), timeout or self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            log.error(f"Command timed out: {argv[1] if len(argv) > 1 else argv[0]}")
            return CommandResult(argv, 1, '\n'.join(lines), timed_out=True)

        output = '\n'.join(lines)
        if output and not quiet:
            log.debug(f"output: {output}")
        log.debug(f"Command finished with returncode: {returncode}")
        return CommandResult(argv, returncode, output)
