"""Encrypted vault store with password-gated sessions.

This module owns the on-disk vault file. A vault is opened into a
VaultSession that holds the cross-process lock for its whole lifetime.
Every mutation is a full cycle: decrypt the current file, change the
payload in memory, re-encrypt under a fresh salt and nonce, write a
sibling temporary file and atomically rename it over the vault.

Classes:
    VaultSession: Open, locked vault exposing profile CRUD
    VaultStore: Creates and opens vault files
"""

import contextlib
import logging
import os
from collections.abc import Callable
from pathlib import Path
from types import TracebackType

from returns.result import Failure
from returns.result import Result
from returns.result import Success

from credvault.crypto import ProfileSecret
from credvault.crypto import VaultContainer
from credvault.crypto import VaultPayload
from credvault.crypto import decrypt_payload
from credvault.crypto import encrypt_payload
from credvault.errors import AlreadyExists
from credvault.errors import IncorrectPasswordOrCorrupted
from credvault.errors import IOFailure
from credvault.errors import NotFound
from credvault.errors import VaultError
from credvault.lock import LockHandle
from credvault.lock import LockManager


logger = logging.getLogger(__name__)

FILE_MODE = 0o600
DIR_MODE = 0o700
TEMP_SUFFIX = ".tmp"

PasswordSource = str | Callable[[], str]


def atomic_write(path: Path, data: bytes, mode: int = FILE_MODE) -> Result[None, VaultError]:
    """Write data to a sibling temporary file and rename it over path.

    The target is either left untouched or fully replaced; a failed rename
    removes the temporary file.
    """
    temp_path = path.with_name(path.name + TEMP_SUFFIX)
    try:
        fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        with os.fdopen(fd, "wb") as f:
            os.fchmod(f.fileno(), mode)
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        with contextlib.suppress(OSError):
            temp_path.unlink()
        return Failure(IOFailure("write vault file", temp_path, e))

    try:
        os.replace(temp_path, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            temp_path.unlink()
        return Failure(IOFailure("replace vault file", path, e))

    return Success(None)


def _read_container(path: Path) -> Result[VaultContainer, VaultError]:
    """Read and parse the container file at path."""
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return Failure(NotFound(f"vault not found at {path}"))
    except OSError as e:
        return Failure(IOFailure("read vault file", path, e))

    try:
        return Success(VaultContainer.from_json(raw))
    except ValueError:
        logger.debug("Vault file %s failed to parse", path)
        return Failure(IncorrectPasswordOrCorrupted())


class VaultSession:
    """An open vault holding the lock and the password for its lifetime.

    Obtained from VaultStore.open(). Use as a context manager, or call
    close() explicitly; close() zeroes the password buffer and releases
    the lock.

    Only the session's own password bytearray is wiped. Each load and save
    derives a key through argon2, which copies the password into immutable
    bytes, and the derived key and decrypted payload are ordinary Python
    objects left to the garbage collector.

    Example:
        >>> with store.open("pw").unwrap() as session:
        ...     session.put("prod", ProfileSecret("AKIA...", "secret"))
    """

    def __init__(self, path: Path, password: bytearray, lock: LockHandle, lock_manager: LockManager) -> None:
        """Initialize session. Use VaultStore.open() instead."""
        self._path = path
        self._password: bytearray | None = password
        self._lock: LockHandle | None = lock
        self._lock_manager = lock_manager

    @property
    def path(self) -> Path:
        """Vault file path."""
        return self._path

    @property
    def closed(self) -> bool:
        """Whether the session has been closed."""
        return self._password is None

    def __enter__(self) -> "VaultSession":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def get(self, name: str) -> Result[ProfileSecret, VaultError]:
        """Return the stored secret for a profile.

        Args:
            name: Profile name

        Returns:
            Success with the ProfileSecret, Failure with NotFound or a load error
        """
        loaded = self._load()
        if isinstance(loaded, Failure):
            return loaded

        secret = loaded.unwrap().get(name)
        if secret is None:
            return Failure(NotFound(f"profile '{name}' not found in vault"))
        return Success(secret)

    def put(self, name: str, secret: ProfileSecret) -> Result[None, VaultError]:
        """Insert or overwrite a profile and persist the vault.

        Args:
            name: Profile name
            secret: Long-term credentials

        Returns:
            Success if persisted, Failure otherwise
        """
        loaded = self._load()
        if isinstance(loaded, Failure):
            return loaded

        payload = loaded.unwrap()
        payload[name] = secret
        result = self._save(payload)
        if isinstance(result, Success):
            logger.info("Stored profile '%s' in vault %s", name, self._path)
        return result

    def remove(self, name: str) -> Result[None, VaultError]:
        """Delete a profile and persist the vault.

        Returns:
            Success if removed, Failure with NotFound if absent
        """
        loaded = self._load()
        if isinstance(loaded, Failure):
            return loaded

        payload = loaded.unwrap()
        if name not in payload:
            return Failure(NotFound(f"profile '{name}' not found"))

        del payload[name]
        result = self._save(payload)
        if isinstance(result, Success):
            logger.info("Removed profile '%s' from vault %s", name, self._path)
        return result

    def list(self) -> Result[frozenset[str], VaultError]:
        """Return the names of all stored profiles."""
        return self._load().map(frozenset)

    def close(self) -> None:
        """Zero the password buffer and release the lock. Idempotent."""
        if self._password is not None:
            for i in range(len(self._password)):
                self._password[i] = 0
            self._password = None

        if self._lock is not None:
            self._lock_manager.release(self._lock)
            self._lock = None

    def _load(self) -> Result[VaultPayload, VaultError]:
        """Read and decrypt the current vault file."""
        if self._password is None:
            return Failure(VaultError("vault session is closed"))

        container = _read_container(self._path)
        if isinstance(container, Failure):
            return container
        return decrypt_payload(self._password, container.unwrap())

    def _save(self, payload: VaultPayload) -> Result[None, VaultError]:
        """Encrypt payload under a fresh salt and nonce and replace the file."""
        if self._password is None:
            return Failure(VaultError("vault session is closed"))

        container = encrypt_payload(self._password, payload)
        return atomic_write(self._path, container.to_json().encode("utf-8"))


class VaultStore:
    """Creates and opens the encrypted vault at a fixed path.

    Example:
        >>> store = VaultStore(Path("~/.local/share/credvault/vault.enc").expanduser())
        >>> store.initialize("master password")
        >>> match store.open("master password"):
        ...     case Success(session):
        ...         with session:
        ...             print(session.list())
        ...     case Failure(error):
        ...         print(error)
    """

    def __init__(self, path: Path, lock_manager: LockManager | None = None) -> None:
        """Initialize store for a vault path."""
        self._path = path
        self._lock_manager = lock_manager or LockManager()

    @property
    def path(self) -> Path:
        """Vault file path."""
        return self._path

    def exists(self) -> bool:
        """Check whether a vault file exists."""
        return self._path.exists()

    def initialize(self, password: str) -> Result[None, VaultError]:
        """Create a new vault containing no profiles.

        Args:
            password: Master password for the new vault

        Returns:
            Success if created, Failure with AlreadyExists or IOFailure
        """
        if self.exists():
            return Failure(AlreadyExists(self._path))

        try:
            self._path.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        except OSError as e:
            return Failure(IOFailure("create vault directory", self._path.parent, e))

        acquired = self._lock_manager.acquire(self._path)
        if isinstance(acquired, Failure):
            return acquired
        handle = acquired.unwrap()

        try:
            # Re-check under the lock in case another process won the race
            if self.exists():
                return Failure(AlreadyExists(self._path))

            container = encrypt_payload(password, {})
            result = atomic_write(self._path, container.to_json().encode("utf-8"))
        finally:
            self._lock_manager.release(handle)

        if isinstance(result, Success):
            logger.info("Initialized vault at %s", self._path)
        return result

    def open(self, password: PasswordSource) -> Result[VaultSession, VaultError]:
        """Lock the vault, verify the password and return a session.

        The lock is acquired before a callable password source is invoked,
        so a contended vault fails without prompting.

        Args:
            password: Password string, or a callable returning one

        Returns:
            Success with an open VaultSession, Failure with NotFound,
            LockContended, IncorrectPasswordOrCorrupted or IOFailure
        """
        if not self.exists():
            return Failure(NotFound(f"vault not found at {self._path}"))

        acquired = self._lock_manager.acquire(self._path)
        if isinstance(acquired, Failure):
            return acquired
        handle = acquired.unwrap()

        try:
            text = password() if callable(password) else password
            secret = bytearray(text.encode("utf-8"))

            container = _read_container(self._path)
            verified = container.bind(lambda c: decrypt_payload(secret, c))
        except BaseException:
            self._lock_manager.release(handle)
            raise

        if isinstance(verified, Failure):
            secret[:] = bytes(len(secret))
            self._lock_manager.release(handle)
            logger.debug("Failed to open vault %s: %s", self._path, type(verified.failure()).__name__)
            return Failure(verified.failure())

        return Success(VaultSession(self._path, secret, handle, self._lock_manager))
