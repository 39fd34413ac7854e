"""Firmware image and key file locations.

Expected layout under the binaries root::

    <bin_root>/<version>/secureboot.s37
    <bin_root>/<version>/<variant>/brd-xg23-20dbm.s37
    <bin_root>/<version>/<variant>/nextversiontest/secureboot.s37
    <bin_root>/<version>/<variant>/nextversiontest/brd-xg23-20dbm.s37

Key files live in the working directory.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List

from .errors import MissingKeysError, PreconditionError
from .logger import get_logger

log = get_logger(__name__)

BOOTLOADER_NAME = 'secureboot.s37'
APP_IMAGE_NAME = 'brd-xg23-20dbm.s37'
UPDATE_DIR_NAME = 'nextversiontest'

AES_KEY_NAME = 'aes_key.txt'
SIGN_KEY_NAME = 'sign_key.pem'
SIGN_TOKENS_NAME = 'sign_key_tokens.txt'
SIGN_PUBKEY_NAME = 'sign_pubkey.pem'


def _version_key(name: str):
    # Natural sort: "0.0.12" sorts after "0.0.9"
    return [int(part) if part.isdigit() else part for part in re.split(r'(\d+)', name)]


def discover_versions(bin_root) -> List[str]:
    """List version folders under the binaries root, latest first.

    Raises:
        PreconditionError: if the root is missing or holds no version folders
    """
    bin_root = Path(bin_root)
    if not bin_root.is_dir():
        raise PreconditionError(f"Binaries root not found: {bin_root}", "precondition:bin_root")
    versions = [p.name for p in bin_root.iterdir() if p.is_dir()]
    if not versions:
        raise PreconditionError(f"No version folders found under {bin_root}", "precondition:bin_root")
    return sorted(versions, key=_version_key, reverse=True)


@dataclass(frozen=True)
class FirmwareSet:
    """Images for one version/variant selection."""
    bin_root: Path
    version: str
    variant: str

    @property
    def version_dir(self) -> Path:
        return Path(self.bin_root) / self.version

    @property
    def variant_dir(self) -> Path:
        return self.version_dir / self.variant

    @property
    def update_dir(self) -> Path:
        return self.variant_dir / UPDATE_DIR_NAME

    @property
    def bootloader(self) -> Path:
        return self.version_dir / BOOTLOADER_NAME

    @property
    def app_image(self) -> Path:
        return self.variant_dir / APP_IMAGE_NAME

    @property
    def update_bootloader(self) -> Path:
        return self.update_dir / BOOTLOADER_NAME

    @property
    def update_app_image(self) -> Path:
        return self.update_dir / APP_IMAGE_NAME

    def gbl_path(self, update_version: str) -> Path:
        return self.update_dir / f"update_{update_version}.gbl"

    def required_files(self) -> List[Path]:
        return [self.bootloader, self.update_bootloader, self.app_image, self.update_app_image]

    def validate(self) -> None:
        """Check the variant folder and every required image exist.

        Raises:
            PreconditionError: naming the first missing directory or file
        """
        if not self.variant_dir.is_dir():
            available = sorted(p.name for p in self.version_dir.iterdir() if p.is_dir()) \
                if self.version_dir.is_dir() else []
            if available:
                log.info(f"Available variant directories: {', '.join(available)}")
            raise PreconditionError(
                f"Firmware directory not found: {self.variant_dir}", "precondition:firmware_dir"
            )
        for path in self.required_files():
            if not path.is_file():
                raise PreconditionError(f"Required file missing: {path}", "precondition:firmware_files")


@dataclass(frozen=True)
class KeySet:
    """AES and signing key material expected in the working directory."""
    workdir: Path

    @property
    def aes_key(self) -> Path:
        return Path(self.workdir) / AES_KEY_NAME

    @property
    def sign_key(self) -> Path:
        return Path(self.workdir) / SIGN_KEY_NAME

    @property
    def sign_tokens(self) -> Path:
        return Path(self.workdir) / SIGN_TOKENS_NAME

    @property
    def sign_pubkey(self) -> Path:
        return Path(self.workdir) / SIGN_PUBKEY_NAME

    def all_files(self) -> List[Path]:
        return [self.aes_key, self.sign_key, self.sign_tokens, self.sign_pubkey]

    def missing(self) -> List[Path]:
        return [p for p in self.all_files() if not p.is_file()]

    def validate(self) -> None:
        missing = self.missing()
        if missing:
            raise MissingKeysError([str(p) for p in missing])

    def remove_all(self) -> None:
        """Delete every key file, ahead of generating a temporary set."""
        for path in self.all_files():
            path.unlink(missing_ok=True)
