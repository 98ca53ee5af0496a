# region Docstring
"""
clippyd.crypto
Key management and authenticated encryption of clipboard history payloads.
Overview:
- The encryption key lives in a key vault so it survives restarts without being
    stored next to the history database in the clear.
- Payloads are encrypted with AES-256-GCM; every encryption draws a fresh random
    96-bit nonce, so identical plaintexts never produce identical ciphertexts.
Contents:
- Exceptions:
    - KeyVaultError: The vault could not store a key (fatal at startup).
    - DecryptionError: Authentication failed or the payload is malformed.
- Key vaults:
    - KeyVault: Protocol with load(service_id, account_id) and store(...).
    - FileKeyVault: Hex-encoded key files with owner-only permissions.
    - KeychainVault: macOS Keychain generic passwords through `security`.
    - create_key_vault(kind, keys_dir) -> KeyVault
- Key management:
    - KeyManager.get_or_create_key() -> bytes
- Functions:
    - encrypt(key, plaintext) -> EncryptedPayload
    - decrypt(key, ciphertext, nonce) -> str
Design notes:
- A stored key of the wrong size is treated as absent and replaced. Entries
    encrypted under the previous key then fail to decrypt and show up as
    undecryptable instead of breaking the history.
"""
# endregion
# region Imports
import os
import subprocess
import sys
from logging import Logger as T_Logger
from pathlib import Path
from typing import NamedTuple, Optional, Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

SERVICE_ID = "com.clippy.encryption"
ACCOUNT_ID = "clippy-aes-key"
KEY_SIZE = 32
NONCE_SIZE = 12


class KeyVaultError(Exception):
    """Raised when the key vault cannot persist a key."""

    pass


class DecryptionError(Exception):
    """Raised when a payload cannot be authenticated or decoded."""

    pass


# endregion
# region Key Vaults


class KeyVault(Protocol):
    def load(self, service_id: str, account_id: str) -> Optional[bytes]: ...

    def store(self, service_id: str, account_id: str, key: bytes) -> None: ...


class FileKeyVault:
    """
    Key vault backed by one hex-encoded file per (service, account) pair.

    Attributes:
        __directory (Path): Directory holding the key files.
    """

    __directory: Path

    def __init__(self, directory: Path) -> None:
        self.__directory = directory

    def _key_path(self, service_id: str, account_id: str) -> Path:
        return self.__directory / f"{service_id}.{account_id}.key"

    def load(self, service_id: str, account_id: str) -> Optional[bytes]:
        path = self._key_path(service_id, account_id)
        try:
            return bytes.fromhex(path.read_text(encoding="ascii").strip())
        except (OSError, ValueError):
            return None

    def store(self, service_id: str, account_id: str, key: bytes) -> None:
        path = self._key_path(service_id, account_id)
        try:
            self.__directory.mkdir(parents=True, exist_ok=True)
            os.chmod(self.__directory, 0o700)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="ascii") as f:
                f.write(key.hex())
            os.chmod(path, 0o600)
        except OSError as e:
            raise KeyVaultError(f"Failed to store key in {path}: {e}") from e


class KeychainVault:
    """Key vault backed by the macOS login Keychain."""

    def load(self, service_id: str, account_id: str) -> Optional[bytes]:
        try:
            result = subprocess.run(
                ["security", "find-generic-password", "-s", service_id, "-a", account_id, "-w"],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError:
            return None
        if result.returncode != 0:
            return None
        try:
            return bytes.fromhex(result.stdout.strip())
        except ValueError:
            return None

    def store(self, service_id: str, account_id: str, key: bytes) -> None:
        try:
            result = subprocess.run(
                [
                    "security",
                    "add-generic-password",
                    "-s",
                    service_id,
                    "-a",
                    account_id,
                    "-w",
                    key.hex(),
                    "-U",
                ],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise KeyVaultError(f"Failed to run security: {e}") from e
        if result.returncode != 0:
            raise KeyVaultError(f"Failed to store key in Keychain: {result.stderr.strip()}")


def create_key_vault(kind: str, keys_dir: Path) -> KeyVault:
    """Return the vault for a `key_vault` setting ("auto", "file" or "keychain")."""
    if kind == "keychain" or (kind == "auto" and sys.platform == "darwin"):
        return KeychainVault()
    return FileKeyVault(keys_dir)


# endregion
# region Key Management


class KeyManager:
    """
    Obtains the history encryption key once per process.

    Attributes:
        __vault (KeyVault): Where the key is persisted.
        __logger (Logger): The logger instance.
        __key (Optional[bytes]): Cached key after the first call.
    """

    __vault: KeyVault
    __logger: T_Logger
    __key: Optional[bytes]

    def __init__(
        self,
        vault: KeyVault,
        logger: T_Logger,
        service_id: str = SERVICE_ID,
        account_id: str = ACCOUNT_ID,
    ) -> None:
        self.__vault = vault
        self.__logger = logger.getChild(self.__class__.__name__)
        self.__service_id = service_id
        self.__account_id = account_id
        self.__key = None

    def get_or_create_key(self) -> bytes:
        """
        Return the encryption key, creating and storing one on first use.

        Raises:
            KeyVaultError: If a new key cannot be stored.
        """
        if self.__key is not None:
            return self.__key

        existing = self.__vault.load(self.__service_id, self.__account_id)
        if existing is not None and len(existing) == KEY_SIZE:
            self.__key = existing
            return existing
        if existing is not None:
            self.__logger.warning(
                "Stored key has %d bytes, expected %d; generating a new key.",
                len(existing),
                KEY_SIZE,
            )

        key = os.urandom(KEY_SIZE)
        self.__vault.store(self.__service_id, self.__account_id, key)
        self.__logger.info("Generated and stored a new encryption key.")
        self.__key = key
        return key


# endregion
# region Encryption


class EncryptedPayload(NamedTuple):
    ciphertext: bytes
    nonce: bytes


def encrypt(key: bytes, plaintext: str) -> EncryptedPayload:
    """Encrypt `plaintext` with AES-256-GCM under a fresh random nonce."""
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return EncryptedPayload(ciphertext=ciphertext, nonce=nonce)


def decrypt(key: bytes, ciphertext: bytes, nonce: bytes) -> str:
    """
    Decrypt and authenticate a payload.

    Raises:
        DecryptionError: Wrong key, corrupted or truncated data.
    """
    if len(nonce) != NONCE_SIZE:
        raise DecryptionError(f"Invalid nonce length {len(nonce)}")
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, ValueError) as e:
        raise DecryptionError("Payload failed authentication") from e


# endregion

__all__ = [
    "ACCOUNT_ID",
    "SERVICE_ID",
    "DecryptionError",
    "EncryptedPayload",
    "FileKeyVault",
    "KeyManager",
    "KeyVault",
    "KeyVaultError",
    "KeychainVault",
    "create_key_vault",
    "decrypt",
    "encrypt",
]
