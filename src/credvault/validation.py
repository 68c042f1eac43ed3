"""Input validation for profile names and access keys.

Profile names become cache file names, so path separators and dots are
rejected here before any name reaches the filesystem.
"""

from returns.result import Failure
from returns.result import Result
from returns.result import Success

from credvault.errors import ValidationError


ACCESS_KEY_LENGTH = 20
ACCESS_KEY_PREFIXES = ("AKIA", "ASIA")
_FORBIDDEN_NAME_CHARS = "./\\"
_FORBIDDEN_WHITESPACE = "\n\r\t"


def validate_profile_name(name: str) -> Result[str, ValidationError]:
    """Check a profile name is non-empty and filesystem safe."""
    if not name:
        return Failure(ValidationError("profile name cannot be empty"))

    if any(c in name for c in _FORBIDDEN_NAME_CHARS):
        return Failure(ValidationError(f"invalid profile name: {name} (cannot contain ., /, or \\)"))

    if any(c in name for c in _FORBIDDEN_WHITESPACE):
        return Failure(ValidationError(f"invalid profile name: {name!r} (cannot contain whitespace characters)"))

    return Success(name)


def validate_access_key(key: str) -> Result[str, ValidationError]:
    """Check an access key has a known prefix and the expected length."""
    if not key:
        return Failure(ValidationError("access key cannot be empty"))

    if not key.startswith(ACCESS_KEY_PREFIXES):
        return Failure(
            ValidationError(f"access key should start with AKIA (long-term) or ASIA (temporary), got: {key[:4]}")
        )

    if len(key) != ACCESS_KEY_LENGTH:
        return Failure(ValidationError(f"access key should be {ACCESS_KEY_LENGTH} characters long, got: {len(key)}"))

    return Success(key)
