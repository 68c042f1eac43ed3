"""Error taxonomy for the credential vault.

Every fallible operation returns a ``returns`` Result whose failure value is
an instance of one of these classes, so callers can ``match`` on the type
instead of parsing messages.

Classes:
    VaultError: Base class for all vault failures
    AlreadyExists: Vault initialization on an existing file
    NotFound: Missing vault file or profile
    IncorrectPasswordOrCorrupted: Any decrypt, decode or version failure
    LockContended: Another process holds the vault lock
    IOFailure: Underlying filesystem error with context
    AuthenticationError: AEAD tag verification failure (internal)
    CacheMiss: Absent, expired, unparseable or wrong-kind cache entry
    ValidationError: Rejected profile name or access key
    TokenExchangeError: Token service call failed
"""

from pathlib import Path


INCORRECT_PASSWORD_MESSAGE = "incorrect password or corrupted vault"


class VaultError(Exception):
    """Base class for credential vault failures."""

    @property
    def message(self) -> str:
        """Human-readable message suitable for the end user."""
        return str(self)


class AlreadyExists(VaultError):
    """Raised when initializing a vault that already exists."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"vault already exists at {path}")
        self.path = path


class NotFound(VaultError):
    """Raised when a vault file or a profile does not exist."""


class IncorrectPasswordOrCorrupted(VaultError):
    """Raised for any failure to open a vault container.

    Wrong password, truncated file, bit flips and unsupported versions all
    produce this same error with the same message.
    """

    def __init__(self) -> None:
        super().__init__(INCORRECT_PASSWORD_MESSAGE)


class LockContended(VaultError):
    """Raised when the vault lock marker is held by another session."""

    def __init__(self, lock_path: Path, owner_pid: int | None = None) -> None:
        owner = f", pid {owner_pid}" if owner_pid is not None else ""
        super().__init__(f"vault is locked by another process (lock file: {lock_path}{owner})")
        self.lock_path = lock_path
        self.owner_pid = owner_pid


class IOFailure(VaultError):
    """Raised when a filesystem operation fails."""

    def __init__(self, action: str, path: Path, cause: OSError) -> None:
        super().__init__(f"failed to {action} {path}: {cause.strerror or cause}")
        self.action = action
        self.path = path
        self.cause = cause


class AuthenticationError(VaultError):
    """Raised by the cipher when the authentication tag does not verify."""


class CacheMiss(VaultError):
    """Signal that a cached credential cannot be used and must be regenerated."""


class ValidationError(VaultError):
    """Raised when user input fails validation."""


class TokenExchangeError(VaultError):
    """Raised when the token service refuses or fails a request."""
