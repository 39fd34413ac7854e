#!/usr/bin/env python3
"""Secure Boot Flasher command-line entry point.

Usage:
    secureflash                     Provision one board interactively
    secureflash --board-id 42       Pre-seed the board ID (also: BOARD_ID env)
    secureflash -m                  Service menu (erase only / flash without lock)

Options:
    --settings FILE     Settings JSON (default: ./secureflash.json)
    --workdir DIR       Directory holding binaries/, key files and flash_logs/
    -v, --verbose       Show debug output on the console
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Callable, List, Optional

from .errors import MissingKeysError, ProvisioningError
from .firmware import FirmwareSet, KeySet, discover_versions
from .identity import resolve_identity
from .ledger import AuditLedger
from .logger import PACKAGE_LOGGER, get_logger, setup_logging, syslog_suppressed
from .programmers import ProgrammerBase, create_programmer, get_available_programmers
from .run_status import Run, Step, StepStatus, status_to_dot
from .settings import SETTINGS_FILE_NAME, Settings
from .workflow import ProvisioningWorkflow, ServiceMode, unlock_and_erase

log = get_logger(__name__)

Ask = Callable[[str], str]

BANNER_WIDTH = 75
INSTRUCTIONS = """
Instructions:
 - Enter a unique device ID (Board ID).
 - If this ID was used before, you'll be warned.
 - You can rename or accept an automatic '-N' suffix.
 - The ID appears in logs and labels for traceability.

What this program does:
 - Checks for duplicate Board ID and offers renaming.
 - Unlocks debug and performs a mass erase.
 - Flashes security keys (AES + signing tokens).
 - Dumps tokens (pre) to verify access.
 - Flashes firmware images for the device.
 - Reads Z-Wave QR and derives the DSK.
 - Locks debug and confirms tokens are blocked (post).
 - Creates a signed/encrypted GBL update file.
 - Writes CSV/text logs.
"""


# =============================================================================
# Terminal output
# =============================================================================

def print_banner(stream=None):
    stream = stream or sys.stdout
    if stream.isatty():
        border_color, reset = '\033[36m', '\033[0m'
    else:
        border_color, reset = '', ''
    content_width = BANNER_WIDTH - 3

    def line(text):
        stream.write(f"{border_color}#{reset} {text:<{content_width}}{border_color}#{reset}\n")

    border = f"{border_color}{'#' * BANNER_WIDTH}{reset}\n"
    stream.write(border)
    line("Secure Boot Flasher")
    line("Flow: unlock > mass erase > keys > flash > QR > lock > update test GBL")
    stream.write(border)


def print_qr_box(qr_code: str, dsk: str):
    rule = '+' + '-' * 58 + '+'
    print(rule)
    print(f"|{'Z-WAVE QR & DSK':^58}|")
    print(rule)
    print(f"| {'QR CODE':<57}|")
    print(rule)
    print(qr_code)
    print(rule)
    print(f"| {'DSK':<57}|")
    print(rule)
    print(dsk)
    print(rule)


def print_summary(run: Run):
    print(f"\nBoard {run.board_label}: {run.result_text}")
    if run.error_reason:
        print(f"  Error: {run.error_reason}")
    for step in Step:
        status = run.status(step)
        print(f"  {status_to_dot(status)} {step.label:<18} {status.value}")


def _on_flash_progress():
    print('.', end='', flush=True)


def _on_step_finished(step, status):
    if step == Step.FLASH_FIRMWARE:
        print("\nDONE" if status == StepStatus.OK else "")


# =============================================================================
# Operator choices
# =============================================================================

def select_probe(serials: List[str], ask: Ask) -> Optional[str]:
    """Pick a probe: none is an error, one is automatic, several need a choice."""
    if not serials:
        log.error("ERROR: No programmers detected")
        log.error("Please connect a programmer and try again")
        return None
    if len(serials) == 1:
        log.info(f"Found 1 programmer: {serials[0]}")
        return serials[0]

    log.info(f"Found {len(serials)} programmers:")
    for i, serial in enumerate(serials, start=1):
        print(f"  {i}) {serial}")
    while True:
        choice = ask(f"Select programmer by number [1-{len(serials)}]: ").strip()
        if not choice.isdigit():
            log.warning("Invalid input. Please enter a number.")
        elif 1 <= int(choice) <= len(serials):
            serial = serials[int(choice) - 1]
            log.info(f"Selected programmer: {serial}")
            return serial
        else:
            log.warning(f"Invalid number. Enter 1..{len(serials)}")


def select_version(versions: List[str], ask: Ask) -> str:
    """Pick a firmware version; Enter takes the latest."""
    print("\nAvailable firmware versions (latest first):")
    for i, version in enumerate(versions, start=1):
        print(f"  {i:2d}) {version}")
    print(f"Suggested latest: {versions[0]}")
    while True:
        choice = ask("Select version by number [1=latest, Enter=latest]: ").strip()
        if not choice:
            version = versions[0]
        elif choice.isdigit() and 1 <= int(choice) <= len(versions):
            version = versions[int(choice) - 1]
        elif choice.isdigit():
            log.warning(f"Invalid number. Enter 1..{len(versions)}")
            continue
        else:
            log.warning("Invalid input. Please enter a number or press Enter for latest.")
            continue
        log.info(f"Selected version: {version}")
        return version


def select_variant(variants: List[str], ask: Ask) -> str:
    """Pick a firmware variant by letter. There is no default."""
    letters = [chr(ord('A') + i) for i in range(len(variants))]
    print("\nSelect firmware variant (size):")
    for letter, variant in zip(letters, variants):
        print(f"  {letter}) {variant}")
    while True:
        choice = ask(f"Choose variant [{'/'.join(letters)}]: ").strip().upper()
        if choice in letters:
            variant = variants[letters.index(choice)]
            log.info(f"Selected variant: {variant}")
            return variant
        log.warning(f"Invalid choice. Please type {', '.join(letters[:-1])}, or {letters[-1]}.")


def service_menu(ask: Ask) -> Optional[ServiceMode]:
    """Show the service menu. Returns None when the operator quits.

    Raises:
        ValueError: for an unknown selection
    """
    rule = '=' * 47
    print(f"\n{rule}\n{'SERVICE MENU - HANDLE WITH CARE':^47}\n{rule}\n")
    print("  1) Unlock debug + Mass erase")
    print("  2) Flash without lock (debugging mode)")
    print("  q) Quit")
    print(f"\n{rule}\n")
    choice = ask("Select an option: ").strip()
    print()
    if choice in ('', 'q', 'Q'):
        return None
    if choice == '1':
        return ServiceMode.ERASE_ONLY
    if choice == '2':
        print("Flash without lock mode enabled.")
        print("Device will remain unlocked for debugging after flashing.")
        return ServiceMode.NO_LOCK
    raise ValueError(f"Unknown selection: {choice}")


# =============================================================================
# Provisioning
# =============================================================================

async def prepare_workflow(run: Run, programmer: ProgrammerBase, settings: Settings, workdir: Path,
                           mode: ServiceMode, ask: Ask) -> ProvisioningWorkflow:
    """Select firmware, check files and keys, and build the workflow."""
    bin_root = workdir / settings.get('bin_dir_name')
    versions = discover_versions(bin_root)
    run.version = select_version(versions, ask)
    run.variant = select_variant(settings.get('variants'), ask)

    firmware = FirmwareSet(bin_root, run.version, run.variant)
    log.info("Expected files:")
    log.info(f" - Base: {firmware.bootloader}")
    log.info(f" - Update (secureboot): {firmware.update_bootloader}")
    log.info(f" - Variant: {firmware.app_image}")
    log.info(f" - Update: {firmware.update_app_image}")

    workflow = ProvisioningWorkflow(
        programmer, run, firmware, KeySet(workdir), mode,
        qr_timeout_ms=int(settings.get('qr_timeout_ms')),
    )
    workflow.flash_progress.connect(_on_flash_progress)
    workflow.step_finished.connect(_on_step_finished)
    workflow.qr_read.connect(print_qr_box)

    try:
        workflow.check_files()
    except MissingKeysError as e:
        log.error("ERROR: Missing required key files in base directory:")
        for path in e.missing:
            log.error(f" - {path}")
        answer = ask(f"Generate temporary keys now? This will delete any existing key files in {workdir} [y/N]: ")
        if answer.strip().lower() != 'y':
            log.error("Missing keys were not generated. Exiting.")
            raise
        await workflow.generate_temporary_keys()
    else:
        log.info("using existing tokens")
    return workflow


async def provision(args, settings: Settings, workdir: Path, ask: Ask = input) -> int:
    """Run the interactive flow for one board. Returns the exit code."""
    commander = settings.get('commander_path')
    log.info(f"This is the commander path: {commander}")
    if not (os.path.isfile(commander) and os.access(commander, os.X_OK)):
        log.error(f"ERROR: Commander not found or not executable at: {commander}")
        log.error("Please install Simplicity Commander or update the path, then re-run.")
        return 1

    try:
        programmer = create_programmer(
            settings.get('programmer'),
            executable=commander,
            device=settings.get('device'),
            timeout=float(settings.get('command_timeout')),
            token_group=settings.get('token_group'),
        )
    except KeyError:
        log.error(f"Unknown programmer '{settings.get('programmer')}'; "
                  f"available: {', '.join(get_available_programmers())}")
        return 1

    log.info("Detecting connected programmers...")
    programmer.serial = select_probe(await programmer.list_probes(), ask)
    if programmer.serial is None:
        return 1

    mode = ServiceMode.NONE
    if args.menu:
        with syslog_suppressed():
            try:
                mode = service_menu(ask)
            except ValueError:
                print("Unknown selection.")
                return 1
            if mode is None:
                print("Exiting...")
                return 0
            if mode == ServiceMode.ERASE_ONLY:
                return 0 if await unlock_and_erase(programmer) else 1

    print_banner()
    board_id = args.board_id or os.environ.get('BOARD_ID')
    if not board_id:
        print(INSTRUCTIONS)
        board_id = ask("Enter board number: ")

    ledger = AuditLedger(workdir / settings.get('log_dir_name'))
    identity = resolve_identity(ledger.csv_path, board_id, ask, warn=log.warning)
    note = ask("Enter an optional note about this board (press Enter to skip): ").strip()

    run = Run(
        board_label=identity.label,
        programmer_serial=programmer.serial,
        update_version=settings.get('update_version'),
        note=note,
    )
    ledger.install_exit_guard(run)
    workflow = None
    try:
        with ledger.recording(run):
            workflow = await prepare_workflow(run, programmer, settings, workdir, mode, ask)
            await workflow.execute()
    except ProvisioningError:
        print_summary(run)
        return 1

    print_summary(run)
    print("Reset board now that all is done..")
    await workflow.reset_board()
    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog='secureflash', description='Secure Boot Flasher')
    parser.add_argument('-m', '--menu', action='store_true', help='Show the service menu')
    parser.add_argument('--board-id', help='Board ID (skips the first prompt)')
    parser.add_argument('--settings', help=f'Settings file (default: ./{SETTINGS_FILE_NAME})')
    parser.add_argument('--workdir', help='Working directory (default: current directory)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug output on the console')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    # Commander and the probe are set up per-user; running as root breaks both
    if hasattr(os, 'geteuid') and os.geteuid() == 0:
        print("Do not run this script as root.")
        return 1

    workdir = Path(args.workdir or os.getcwd()).resolve()
    settings = Settings(args.settings or str(workdir / SETTINGS_FILE_NAME))
    setup_logging(workdir / settings.get('log_dir_name'), settings.get('log_tag'))
    if args.verbose:
        for handler in logging.getLogger(PACKAGE_LOGGER).handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                handler.setLevel(logging.DEBUG)

    try:
        return asyncio.run(provision(args, settings, workdir))
    except (KeyboardInterrupt, EOFError):
        print("\nAborted.")
        return 130


if __name__ == '__main__':
    sys.exit(main())
