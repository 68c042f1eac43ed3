"""Cache-first resolution of temporary credentials.

The cache is consulted before the vault is touched, so a warm cache never
prompts for the vault password. On a miss the vault is opened, the
long-term credentials are exchanged for temporary ones, and the result is
written back to the cache slot for the profile.

Classes:
    ResolvedCredentials: Immutable resolution result
    CredentialResolver: Orchestrates cache, vault and token exchange
"""

import logging
import os
from collections.abc import Callable
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from returns.result import Failure
from returns.result import Result
from returns.result import Success

from credvault.cache import CacheEntry
from credvault.cache import CredentialCache
from credvault.cache import CredentialKind
from credvault.cache import format_timestamp
from credvault.config import CredVaultSettings
from credvault.crypto import ProfileSecret
from credvault.errors import NotFound
from credvault.errors import TokenExchangeError
from credvault.errors import VaultError
from credvault.profiles import ProfileSettings
from credvault.profiles import get_profile_settings
from credvault.vault import VaultStore


logger = logging.getLogger(__name__)

AWS_ENV_VARS = (
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "AWS_SECURITY_TOKEN",
    "AWS_DEFAULT_REGION",
    "AWS_REGION",
    "AWS_PROFILE",
    "AWS_VAULT",
    "AWS_CREDENTIAL_EXPIRATION",
)


class TokenExchange(Protocol):
    """Token service able to issue session and federation credentials."""

    def get_session_token(
        self,
        secret: ProfileSecret,
        region: str,
        duration_seconds: int,
        mfa_serial: str | None = None,
        mfa_code: str | None = None,
    ) -> Result[CacheEntry, TokenExchangeError]: ...

    def get_federation_token(
        self,
        secret: ProfileSecret,
        region: str,
        duration_seconds: int,
        name: str,
    ) -> Result[CacheEntry, TokenExchangeError]: ...


@dataclass(frozen=True, slots=True)
class ResolvedCredentials:
    """Temporary credentials ready for use.

    Attributes:
        entry: The credentials
        from_cache: True if no vault access was needed
    """

    entry: CacheEntry
    from_cache: bool


class CredentialResolver:
    """Resolve temporary credentials for a profile, cache first."""

    def __init__(
        self,
        settings: CredVaultSettings,
        exchange: TokenExchange,
        password_source: Callable[[], str],
        mfa_code_source: Callable[[], str] | None = None,
        store: VaultStore | None = None,
        cache: CredentialCache | None = None,
        profile_settings_loader: Callable[[str], Result[ProfileSettings, str]] = get_profile_settings,
    ) -> None:
        """Initialize resolver.

        Args:
            settings: Tool settings
            exchange: Token service client
            password_source: Called once, after the vault lock is held
            mfa_code_source: Called when the profile has an MFA device
            store: Vault store; built from settings if None
            cache: Credential cache; built from settings if None
            profile_settings_loader: Reads region and MFA device per profile
        """
        self._settings = settings
        self._exchange = exchange
        self._password_source = password_source
        self._mfa_code_source = mfa_code_source
        self._store = store or VaultStore(settings.vault_path)
        self._cache = cache or CredentialCache(settings.cache_dir)
        self._profile_settings_loader = profile_settings_loader

    def resolve(self, profile: str, kind: CredentialKind) -> Result[ResolvedCredentials, VaultError]:
        """Return usable credentials of the requested kind.

        Args:
            profile: Profile name
            kind: Credential kind the caller needs

        Returns:
            Success with ResolvedCredentials, Failure with the first error hit
        """
        cached = self._cache.read(profile, kind)
        if isinstance(cached, Success):
            logger.debug("Using cached %s credentials for '%s'", kind.value, profile)
            return Success(ResolvedCredentials(entry=cached.unwrap(), from_cache=True))

        logger.debug("Cache miss for '%s': %s", profile, cached.failure())

        secret_result = self._load_secret(profile)
        if isinstance(secret_result, Failure):
            return secret_result
        secret = secret_result.unwrap()

        profile_settings = self._load_profile_settings(profile)
        region = profile_settings.region or self._settings.default_region

        if kind is CredentialKind.SESSION:
            mfa_code = None
            if profile_settings.mfa_serial and self._mfa_code_source is not None:
                mfa_code = self._mfa_code_source()
            exchanged = self._exchange.get_session_token(
                secret,
                region,
                self._settings.session_duration_seconds,
                mfa_serial=profile_settings.mfa_serial,
                mfa_code=mfa_code,
            )
        else:
            exchanged = self._exchange.get_federation_token(
                secret,
                region,
                self._settings.federation_duration_seconds,
                name=profile,
            )

        if isinstance(exchanged, Failure):
            return Failure(exchanged.failure())
        entry = exchanged.unwrap()

        written = self._cache.write(profile, entry)
        if isinstance(written, Failure):
            logger.warning("Failed to cache credentials for '%s': %s", profile, written.failure())

        return Success(ResolvedCredentials(entry=entry, from_cache=False))

    def _load_secret(self, profile: str) -> Result[ProfileSecret, VaultError]:
        """Open the vault just long enough to read one profile."""
        opened = self._store.open(self._password_source)
        if isinstance(opened, Failure):
            return Failure(opened.failure())

        with opened.unwrap() as session:
            secret = session.get(profile)

        if isinstance(secret, Failure) and isinstance(secret.failure(), NotFound):
            return Failure(NotFound(f"{secret.failure()}\nRun 'credvault list' to see available profiles"))
        return secret

    def _load_profile_settings(self, profile: str) -> ProfileSettings:
        match self._profile_settings_loader(profile):
            case Success(profile_settings):
                if not profile_settings.region:
                    logger.warning(
                        "No region configured for '%s', using %s", profile, self._settings.default_region
                    )
                return profile_settings
            case Failure(error):
                logger.warning("Failed to read profile settings for '%s': %s", profile, error)
        return ProfileSettings()


def build_environment(
    profile: str,
    entry: CacheEntry,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Build a child-process environment carrying temporary credentials.

    Existing AWS variables are dropped first so stale credentials or a
    conflicting AWS_PROFILE never leak through.
    """
    source = os.environ if base_env is None else base_env
    env = {key: value for key, value in source.items() if key not in AWS_ENV_VARS}

    env["AWS_ACCESS_KEY_ID"] = entry.access_key_id
    env["AWS_SECRET_ACCESS_KEY"] = entry.secret_access_key
    env["AWS_SESSION_TOKEN"] = entry.session_token
    env["AWS_VAULT"] = profile
    env["AWS_CREDENTIAL_EXPIRATION"] = format_timestamp(entry.expiration)

    if entry.region:
        env["AWS_DEFAULT_REGION"] = entry.region
        env["AWS_REGION"] = entry.region

    return env
