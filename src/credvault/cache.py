"""On-disk cache for short-lived derived credentials.

Each profile has a single JSON cache file holding the most recent
temporary credentials, tagged with the kind of token they came from.
Entries are treated as missing once they are within the safety buffer of
their expiration, and a reader asking for a specific kind treats any other
kind as missing.

Classes:
    CredentialKind: Kind of token exchange that produced an entry
    CacheEntry: Immutable cached temporary credentials
    CredentialCache: Per-profile file cache with expiry enforcement
"""

import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from returns.result import Failure
from returns.result import Result
from returns.result import Success

from credvault.errors import CacheMiss
from credvault.errors import IOFailure
from credvault.errors import ValidationError
from credvault.errors import VaultError


logger = logging.getLogger(__name__)

SAFETY_BUFFER = timedelta(minutes=5)
CACHE_FILE_MODE = 0o600
CACHE_DIR_MODE = 0o700


class CredentialKind(Enum):
    """Token exchange that produced a cache entry."""

    SESSION = "session"
    FEDERATION = "federation"


def format_timestamp(value: datetime) -> str:
    """Format a datetime as RFC 3339 in UTC."""
    return to_utc(value).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime."""
    return to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def to_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Temporary credentials returned by the token service.

    Attributes:
        access_key_id: Temporary access key identifier
        secret_access_key: Temporary secret key
        session_token: Session token
        expiration: When the credentials stop working
        kind: Which token exchange produced them
        region: Region the credentials were issued for
    """

    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: datetime
    kind: CredentialKind
    region: str | None = None

    def __repr__(self) -> str:
        return (
            f"CacheEntry(access_key_id={self.access_key_id!r}, kind={self.kind.value!r}, "
            f"expiration={format_timestamp(self.expiration)!r}, region={self.region!r})"
        )

    def is_valid(self, now: datetime, buffer: timedelta = SAFETY_BUFFER) -> bool:
        """Check the entry is usable for at least the safety buffer."""
        return to_utc(now) + buffer < to_utc(self.expiration)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the cache file JSON document."""
        data: dict[str, Any] = {
            "AccessKeyId": self.access_key_id,
            "SecretAccessKey": self.secret_access_key,
            "SessionToken": self.session_token,
            "Expiration": format_timestamp(self.expiration),
        }
        if self.region:
            data["Region"] = self.region
        data["Type"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        """Build an entry from a cache file JSON document.

        Raises:
            ValueError: If a field is missing or malformed
        """
        try:
            return cls(
                access_key_id=str(data["AccessKeyId"]),
                secret_access_key=str(data["SecretAccessKey"]),
                session_token=str(data["SessionToken"]),
                expiration=parse_timestamp(str(data["Expiration"])),
                kind=CredentialKind(data["Type"]),
                region=data.get("Region") or None,
            )
        except (KeyError, TypeError) as e:
            msg = f"invalid cache entry: {e}"
            raise ValueError(msg) from e


class CredentialCache:
    """File-per-profile cache of temporary credentials.

    Reads are unlocked. A torn or partial file parses as garbage and is
    reported as a miss, which makes the caller regenerate and overwrite it.

    Example:
        >>> cache = CredentialCache(Path("~/.cache/credvault").expanduser())
        >>> match cache.read("prod", CredentialKind.SESSION):
        ...     case Success(entry):
        ...         use(entry)
        ...     case Failure(miss):
        ...         regenerate()
    """

    def __init__(
        self,
        cache_dir: Path,
        clock: Callable[[], datetime] = utc_now,
        safety_buffer: timedelta = SAFETY_BUFFER,
    ) -> None:
        """Initialize cache rooted at a directory."""
        self._cache_dir = cache_dir
        self._clock = clock
        self._safety_buffer = safety_buffer

    @property
    def cache_dir(self) -> Path:
        """Directory holding the cache files."""
        return self._cache_dir

    def path_for(self, profile: str) -> Path:
        """Return the cache file path for a profile."""
        return self._cache_dir / f"{profile}.json"

    def read(self, profile: str, kind: CredentialKind | None = None) -> Result[CacheEntry, CacheMiss]:
        """Read a profile's cached credentials if still usable.

        Args:
            profile: Profile name
            kind: Required credential kind; any kind if None

        Returns:
            Success with the entry, Failure with CacheMiss describing why
        """
        path = self.path_for(profile)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return Failure(CacheMiss(f"no cached credentials for '{profile}'"))
        except OSError as e:
            logger.debug("Unreadable cache file %s: %s", path, e)
            return Failure(CacheMiss(f"unreadable cache file for '{profile}'"))

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                msg = "cache file must hold a JSON object"
                raise ValueError(msg)
            entry = CacheEntry.from_dict(data)
        except ValueError as e:
            logger.debug("Discarding unparseable cache file %s: %s", path, e)
            return Failure(CacheMiss(f"unparseable cache file for '{profile}'"))

        if not entry.is_valid(self._clock(), self._safety_buffer):
            return Failure(CacheMiss(f"cached credentials for '{profile}' expired"))

        if kind is not None and entry.kind is not kind:
            return Failure(CacheMiss(f"cached credentials for '{profile}' are {entry.kind.value}, need {kind.value}"))

        return Success(entry)

    def write(self, profile: str, entry: CacheEntry) -> Result[None, VaultError]:
        """Persist an entry, replacing whatever the profile slot held.

        Args:
            profile: Profile name
            entry: Credentials to cache; must not already be expired

        Returns:
            Success if written, Failure with ValidationError or IOFailure
        """
        if to_utc(entry.expiration) <= to_utc(self._clock()):
            return Failure(ValidationError(f"refusing to cache expired credentials for '{profile}'"))

        try:
            self._cache_dir.mkdir(mode=CACHE_DIR_MODE, parents=True, exist_ok=True)
            self._cache_dir.chmod(CACHE_DIR_MODE)
        except OSError as e:
            return Failure(IOFailure("create cache directory", self._cache_dir, e))

        path = self.path_for(profile)
        data = json.dumps(entry.to_dict(), indent=2).encode("utf-8")
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CACHE_FILE_MODE)
            with os.fdopen(fd, "wb") as f:
                os.fchmod(f.fileno(), CACHE_FILE_MODE)
                f.write(data)
        except OSError as e:
            return Failure(IOFailure("write cache file", path, e))

        logger.debug("Cached %s credentials for '%s' until %s", entry.kind.value, profile, entry.expiration)
        return Success(None)

    def invalidate(self, profile: str) -> Result[None, VaultError]:
        """Delete a profile's cache file. A missing file is not an error."""
        path = self.path_for(profile)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            return Failure(IOFailure("remove cache file", path, e))
        return Success(None)
