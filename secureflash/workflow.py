"""Provisioning workflow.

The ProvisioningWorkflow drives one board through the fixed step sequence:

    unlock > mass erase > keys > token dump (pre) > firmware > QR/DSK >
    lock > token dump (post) > update GBL

Preconditions (firmware images, key files, adapter debug mode) are checked
before the board is touched. The first failure ends the run; steps that were
never reached keep their initial ERROR status.
"""

from enum import Enum
from typing import Optional, Tuple

from pynnex import emitter, with_emitters

from .dsk import derive_dsk, extract_qr_code
from .errors import PreconditionError, ProvisioningError
from .executor import Expectation, StepExecutor
from .firmware import FirmwareSet, KeySet
from .logger import get_logger
from .programmers import ProgrammerBase
from .run_status import Run, Step, StepStatus

log = get_logger(__name__)

REQUIRED_DEBUG_MODE = 'MCU'


class ServiceMode(Enum):
    """Reduced-workflow submodes, chosen before any step runs."""
    NONE = "none"
    ERASE_ONLY = "erase_only"  # Unlock + mass erase, then stop
    NO_LOCK = "no_lock"        # Full flow, debug left unlocked


async def normalize_debug_mode(programmer: ProgrammerBase) -> Tuple[bool, Optional[str]]:
    """Force the adapter into MCU debug mode.

    Returns:
        Tuple of (success, last_mode_read)
    """
    mode = await programmer.read_debug_mode()
    if mode == REQUIRED_DEBUG_MODE:
        log.info(f"Adapter dbgmode: {REQUIRED_DEBUG_MODE} (OK)")
        return True, mode

    log.info(f"Adapter dbgmode was {mode}; setting to {REQUIRED_DEBUG_MODE}...")
    res = await programmer.set_debug_mode(REQUIRED_DEBUG_MODE)
    if res.ok:
        previous, mode = mode, await programmer.read_debug_mode()
        if mode == REQUIRED_DEBUG_MODE:
            log.info(f"Adapter dbgmode set to {REQUIRED_DEBUG_MODE} (was {previous}): OK")
            return True, mode
    return False, mode


async def unlock_and_erase(programmer: ProgrammerBase) -> bool:
    """Service routine: unlock debug and mass erase, nothing else.

    Reports on stdout only; no run record or syslog entry is produced.
    """
    print("Unlocking debug...")
    ok, mode = await normalize_debug_mode(programmer)
    if not ok:
        print(f"Failed to set adapter dbgmode {REQUIRED_DEBUG_MODE} (current: {mode or 'unknown'}).")
        return False
    if not (await programmer.unlock_debug()).ok:
        print("Failed to unlock debug.")
        return False
    print("Debug unlocked. Proceeding to mass erase...")
    if not (await programmer.mass_erase()).ok:
        print("Mass erase failed.")
        return False
    print("Mass erase complete.")
    return True


@with_emitters
class ProvisioningWorkflow:
    @emitter
    def step_started(self):
        """Emitted with the Step about to run."""
        pass

    @emitter
    def step_finished(self):
        """Emitted with (Step, StepStatus) once a step has an outcome."""
        pass

    @emitter
    def flash_progress(self):
        """Emitted for each programmed flash range."""
        pass

    @emitter
    def qr_read(self):
        """Emitted with (qr_code, dsk) after a successful QR read."""
        pass

    def __init__(self, programmer: ProgrammerBase, run: Run, firmware: FirmwareSet, keys: KeySet,
                 mode: ServiceMode = ServiceMode.NONE, qr_timeout_ms: int = 5000):
        if mode == ServiceMode.ERASE_ONLY:
            raise ValueError("ERASE_ONLY does not provision; use unlock_and_erase()")
        self.programmer = programmer
        self.run = run
        self.firmware = firmware
        self.keys = keys
        self.mode = mode
        self.qr_timeout_ms = qr_timeout_ms
        self.executor = StepExecutor(run)

    def _precondition_failed(self, reason: str, location: str):
        self.run.fail(reason, location)
        log.error(f"ERROR: {reason}")
        raise PreconditionError(reason, location)

    def check_files(self) -> None:
        """Validate firmware images and key files before any hardware access.

        Raises:
            PreconditionError: for missing images (recorded on the run)
            MissingKeysError: for missing keys; the caller may generate a
                temporary set and call again
        """
        try:
            self.firmware.validate()
        except PreconditionError as e:
            self._precondition_failed(e.reason, e.location)
        self.keys.validate()

    async def generate_temporary_keys(self) -> None:
        """Replace the key files with a freshly generated temporary set."""
        log.info("Deleting existing key files and generating temporary keys...")
        self.keys.remove_all()
        res = await self.programmer.generate_signing_key(
            self.keys.sign_key, self.keys.sign_pubkey, self.keys.sign_tokens
        )
        if not res.ok:
            self._precondition_failed("Temporary signing key generation failed", "precondition:genkey_sign")
        res = await self.programmer.generate_aes_key(self.keys.aes_key)
        if not res.ok:
            self._precondition_failed("Temporary AES key generation failed", "precondition:genkey_aes")
        log.info("Temporary key generation complete.")

    async def ensure_debug_mode(self) -> None:
        ok, mode = await normalize_debug_mode(self.programmer)
        if not ok:
            self._precondition_failed(
                f"Setting adapter dbgmode {REQUIRED_DEBUG_MODE} failed (current: {mode or 'unknown'})",
                "precondition:adapter_mode",
            )

    async def _step(self, step: Step, action, **kwargs):
        self.step_started.emit(step)
        try:
            result = await self.executor.execute(step, action, **kwargs)
        except ProvisioningError:
            self.step_finished.emit(step, StepStatus.ERROR)
            raise
        self.step_finished.emit(step, self.run.status(step))
        return result

    async def execute(self) -> Run:
        """Run every step in order and mark the run COMPLETE.

        Raises:
            ProvisioningError: on the first failing precondition or step
        """
        p = self.programmer
        fw = self.firmware
        keys = self.keys

        self.check_files()
        await self.ensure_debug_mode()

        await self._step(Step.UNLOCK, p.unlock_debug)
        # Erase even when the part was already unlocked: key injection needs a clean part
        await self._step(Step.MASS_ERASE, p.mass_erase)
        await self._step(Step.FLASH_KEYS, lambda: p.flash_tokens([keys.aes_key, keys.sign_tokens]))
        await self._step(Step.TOKEN_DUMP_PRE, lambda: p.token_dump(quiet=True))
        await self._step(
            Step.FLASH_FIRMWARE,
            lambda: p.flash_images([fw.bootloader, fw.app_image], on_progress=self.flash_progress.emit),
        )

        result = await self._step(
            Step.QR_READ,
            lambda: p.read_qr_code(self.qr_timeout_ms),
            verify=lambda r: extract_qr_code(r.output) is not None,
        )
        self.run.qr_code = extract_qr_code(result.output)
        self.run.dsk = derive_dsk(self.run.qr_code)
        self.qr_read.emit(self.run.qr_code, self.run.dsk)

        if self.mode == ServiceMode.NO_LOCK:
            self.executor.skip(Step.LOCK_DEBUG, "service mode")
            self.step_finished.emit(Step.LOCK_DEBUG, StepStatus.SKIPPED)
        else:
            await self._step(Step.LOCK_DEBUG, p.lock_debug)

        await self._step(Step.TOKEN_DUMP_POST, lambda: p.token_dump(quiet=True),
                         expect=Expectation.BLOCKED)
        await self._step(
            Step.BUILD_GBL,
            lambda: p.create_gbl(
                fw.gbl_path(self.run.update_version), fw.update_app_image, keys.sign_key, keys.aes_key
            ),
        )

        self.run.complete()
        log.info(f"Provisioning complete for board {self.run.board_label}")
        return self.run

    async def reset_board(self) -> None:
        """Reset the target through the adapter. Failures are ignored."""
        if not self.programmer.serial:
            return
        res = await self.programmer.reset_adapter()
        if not res.ok:
            log.debug("Adapter reset failed (ignored)")
