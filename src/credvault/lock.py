"""Cross-process exclusion for a vault file.

A vault is locked by exclusively creating a sibling ``<vault>.lock`` marker
that records the owner's PID. Acquisition never waits: a held marker fails
immediately. A marker whose recorded PID no longer runs is considered
orphaned and reclaimed once.

Classes:
    LockHandle: Immutable handle for a held lock
    LockManager: Acquires and releases vault lock markers
"""

import contextlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path

import psutil
from returns.result import Failure
from returns.result import Result
from returns.result import Success

from credvault.errors import IOFailure
from credvault.errors import LockContended
from credvault.errors import VaultError


logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"


def lock_path_for(vault_path: Path) -> Path:
    """Return the lock marker path for a vault file."""
    return vault_path.with_name(vault_path.name + LOCK_SUFFIX)


@dataclass(frozen=True, slots=True)
class LockHandle:
    """Handle returned by a successful acquire.

    Attributes:
        vault_path: Vault the lock protects
        lock_path: Marker file path
        pid: Process that created the marker
    """

    vault_path: Path
    lock_path: Path
    pid: int


class LockManager:
    """Creates and removes vault lock markers.

    Example:
        >>> manager = LockManager()
        >>> match manager.acquire(Path("vault.enc")):
        ...     case Success(handle):
        ...         manager.release(handle)
        ...     case Failure(error):
        ...         print(error)
    """

    def __init__(self, *, reclaim_stale: bool = True) -> None:
        """Initialize lock manager.

        Args:
            reclaim_stale: Remove markers whose owner process is gone
        """
        self._reclaim_stale = reclaim_stale

    def acquire(self, vault_path: Path) -> Result[LockHandle, VaultError]:
        """Acquire the lock for a vault path without waiting.

        Args:
            vault_path: Path of the vault file

        Returns:
            Success with a LockHandle, Failure with LockContended or IOFailure
        """
        lock_path = lock_path_for(vault_path)
        result = self._try_create(vault_path, lock_path)
        if not isinstance(result, Failure) or not isinstance(result.failure(), LockContended):
            return result

        owner_pid = self._read_owner(lock_path)
        if self._reclaim_stale and owner_pid is not None and not psutil.pid_exists(owner_pid):
            reclaimed = self._reclaim(lock_path, owner_pid)
            if isinstance(reclaimed, Failure):
                return reclaimed
            return self._try_create(vault_path, lock_path)

        return Failure(LockContended(lock_path, owner_pid))

    def _reclaim(self, lock_path: Path, stale_pid: int) -> Result[None, VaultError]:
        """Move a stale marker aside and delete it.

        The rename is atomic, so of several processes reclaiming the same
        marker only one moves it. If the moved file no longer names the dead
        PID, a live owner replaced it in the meantime and it is put back.
        """
        aside = lock_path.with_name(f"{lock_path.name}.stale.{os.getpid()}")
        try:
            os.rename(lock_path, aside)
        except FileNotFoundError:
            return Failure(LockContended(lock_path))
        except OSError as e:
            return Failure(IOFailure("reclaim lock file", lock_path, e))

        moved_pid = self._read_owner(aside)
        if moved_pid != stale_pid:
            try:
                os.link(aside, lock_path)
            except FileExistsError:
                logger.warning("Vault lock %s was re-created while restoring pid %s", lock_path, moved_pid)
            except OSError as e:
                return Failure(IOFailure("restore lock file", lock_path, e))
            finally:
                with contextlib.suppress(FileNotFoundError):
                    aside.unlink()
            return Failure(LockContended(lock_path, moved_pid))

        logger.warning("Removed stale vault lock %s left by pid %d", lock_path, stale_pid)
        with contextlib.suppress(FileNotFoundError):
            aside.unlink()
        return Success(None)

    def release(self, handle: LockHandle) -> None:
        """Release a held lock. Releasing twice is harmless."""
        try:
            handle.lock_path.unlink()
        except FileNotFoundError:
            logger.debug("Lock %s already released", handle.lock_path)
        else:
            logger.debug("Released vault lock %s", handle.lock_path)

    def _try_create(self, vault_path: Path, lock_path: Path) -> Result[LockHandle, VaultError]:
        """Create the marker with O_EXCL and write our PID into it."""
        pid = os.getpid()
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError:
            return Failure(LockContended(lock_path))
        except OSError as e:
            return Failure(IOFailure("create lock file", lock_path, e))

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(f"{pid}\n")
        except OSError as e:
            with contextlib.suppress(OSError):
                lock_path.unlink()
            return Failure(IOFailure("write lock file", lock_path, e))

        logger.debug("Acquired vault lock %s", lock_path)
        return Success(LockHandle(vault_path=vault_path, lock_path=lock_path, pid=pid))

    @staticmethod
    def _read_owner(lock_path: Path) -> int | None:
        """Read the PID recorded in a marker, or None if unreadable."""
        try:
            text = lock_path.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        try:
            pid = int(text)
        except ValueError:
            return None
        return pid if pid > 0 else None
