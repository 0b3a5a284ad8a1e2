"""
Signer backed by an encrypted Web3 Secret Storage (v3) keystore file.
"""
import json
import logging
import os
import stat
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

import portalocker
from eth_account import Account
from eth_utils import to_checksum_address

from ..exceptions import ConfigurationError, SigningError
from .base import SignerKind
from .local import LocalSigner

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

LOCK_TIMEOUT = 10


def read_keystore_file(path: PathLike) -> Dict[str, Any]:
    """
    Read a keystore JSON file under a shared lock on the file itself.

    Nothing is created beside the file, so read-only keystore directories work.

    Raises:
        ConfigurationError: If the file is missing, unreadable, locked or not valid JSON
    """
    path = Path(path)
    try:
        with portalocker.Lock(
            str(path),
            mode="r",
            timeout=LOCK_TIMEOUT,
            flags=portalocker.LockFlags.SHARED | portalocker.LockFlags.NON_BLOCKING,
        ) as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Keystore file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Keystore file is not valid JSON: {path}") from e
    except portalocker.LockException as e:
        raise ConfigurationError(f"Keystore file is locked: {path}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read keystore file {path}: {e}") from e


def _keystore_address(data: Dict[str, Any]) -> Optional[str]:
    address = data.get("address")
    if not address:
        return None
    if not address.startswith("0x"):
        address = "0x" + address
    return to_checksum_address(address)


class KeystoreSigner(LocalSigner):
    """
    Signer whose key is decrypted from a keystore file.

    Has the same capabilities as ``LocalSigner``; the decrypted key only lives
    in memory for the lifetime of the signer.
    """

    kind = SignerKind.KEYSTORE

    def __init__(self, keystore: Dict[str, Any], password: str, source: Optional[str] = None):
        try:
            private_key = Account.decrypt(keystore, password)
        except (ValueError, KeyError, TypeError) as e:
            raise SigningError(f"Failed to decrypt keystore {source or ''}".strip()) from e
        super().__init__(private_key)
        self.source = source

        expected = _keystore_address(keystore)
        if expected and expected != self.address:
            raise ConfigurationError(
                f"Keystore address {expected} does not match decrypted key {self.address}"
            )
        logger.debug(f"Loaded keystore signer {self.address} from {source}")

    @classmethod
    def from_file(cls, path: PathLike, password: str, address: Optional[str] = None) -> "KeystoreSigner":
        """
        Load a signer from a single keystore file.

        Args:
            path: Keystore file path
            password: Decryption password
            address: Optional expected address
        """
        data = read_keystore_file(path)
        if address:
            found = _keystore_address(data)
            if found and found != to_checksum_address(address):
                raise ConfigurationError(f"Keystore {path} holds {found}, not {address}")
        return cls(data, password, source=str(path))

    @classmethod
    def from_directory(cls, directory: PathLike, address: str, password: str) -> "KeystoreSigner":
        """
        Load the keystore for ``address`` from a directory of keystore files.

        Raises:
            ConfigurationError: If no file in the directory holds that address
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise ConfigurationError(f"Keystore directory not found: {directory}")

        wanted = to_checksum_address(address)
        for candidate in sorted(directory.iterdir()):
            if not candidate.is_file():
                continue
            try:
                data = read_keystore_file(candidate)
            except ConfigurationError:
                logger.debug(f"Skipping unreadable keystore candidate {candidate}")
                continue
            if _keystore_address(data) == wanted:
                return cls(data, password, source=str(candidate))

        raise ConfigurationError(f"No keystore for {wanted} in {directory}")

    @classmethod
    def from_path(
        cls, path: PathLike, password: str, address: Optional[str] = None
    ) -> "KeystoreSigner":
        """Load from a keystore file, or from a directory when ``address`` is given."""
        path = Path(path).expanduser()
        if path.is_dir():
            if not address:
                raise ConfigurationError("An address is required to pick a key from a keystore directory")
            return cls.from_directory(path, address, password)
        return cls.from_file(path, password, address=address)


def create_keystore(
    directory: PathLike,
    private_key,
    password: str,
    scrypt_n: int = 262144,
) -> Path:
    """
    Encrypt a private key into a new geth-style keystore file.

    The directory is created with owner-only permissions and the file is
    written under an exclusive lock with mode 0600.

    Args:
        directory: Destination directory
        private_key: Key to encrypt
        password: Encryption password
        scrypt_n: scrypt work factor (power of two)

    Returns:
        Path of the written keystore file
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    if os.name == "posix":
        os.chmod(directory, stat.S_IRUSR | stat.S_IWUSR | stat.S_IXUSR)  # 0700

    keystore = Account.encrypt(private_key, password, kdf="scrypt", iterations=scrypt_n)
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S.%fZ")
    path = directory / f"UTC--{timestamp}--{keystore['address'].lower()}"

    with portalocker.Lock(
        str(path),
        mode="w",
        timeout=LOCK_TIMEOUT,
        flags=portalocker.LockFlags.EXCLUSIVE | portalocker.LockFlags.NON_BLOCKING,
    ) as f:
        json.dump(keystore, f)
    if os.name == "posix":
        os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)  # 0600

    logger.info(f"Wrote keystore for 0x{keystore['address']} to {path}")
    return path
