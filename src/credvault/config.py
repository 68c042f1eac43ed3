"""Settings and filesystem locations for credvault.

Paths follow the XDG Base Directory specification. A single environment
variable, CREDVAULT_TEST_DIR, relocates both the vault and the cache for
isolated test runs. Optional tool settings are read from a YAML file.
"""

import os
from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml
from returns.result import Failure
from returns.result import Result
from returns.result import Success


APP_NAME = "credvault"
VAULT_FILENAME = "vault.enc"

TEST_DIR_ENV = "CREDVAULT_TEST_DIR"
PASSWORD_ENV = "CREDVAULT_PASSWORD"
AUTO_CONFIRM_ENV = "CREDVAULT_AUTO_CONFIRM"
TEST_ACCESS_KEY_ENV = "CREDVAULT_TEST_ACCESS_KEY"
TEST_SECRET_KEY_ENV = "CREDVAULT_TEST_SECRET_KEY"
CONFIG_ENV = "CREDVAULT_CONFIG"

DEFAULT_REGION = "us-east-1"
SESSION_DURATION_SECONDS = 3600
FEDERATION_DURATION_SECONDS = 43200


def xdg_data_home() -> Path:
    """Return $XDG_DATA_HOME, defaulting to ~/.local/share."""
    if xdg_data := os.getenv("XDG_DATA_HOME"):
        return Path(xdg_data)
    return Path.home() / ".local" / "share"


def xdg_cache_home() -> Path:
    """Return $XDG_CACHE_HOME, defaulting to ~/.cache."""
    if xdg_cache := os.getenv("XDG_CACHE_HOME"):
        return Path(xdg_cache)
    return Path.home() / ".cache"


def xdg_config_home() -> Path:
    """Return $XDG_CONFIG_HOME, defaulting to ~/.config."""
    if xdg_config := os.getenv("XDG_CONFIG_HOME"):
        return Path(xdg_config)
    return Path.home() / ".config"


def default_vault_path() -> Path:
    """Vault location: $CREDVAULT_TEST_DIR/vault.enc or $XDG_DATA_HOME/credvault/vault.enc."""
    if test_dir := os.getenv(TEST_DIR_ENV):
        return Path(test_dir) / VAULT_FILENAME
    return xdg_data_home() / APP_NAME / VAULT_FILENAME


def default_cache_dir() -> Path:
    """Cache location: $CREDVAULT_TEST_DIR/cache or $XDG_CACHE_HOME/credvault."""
    if test_dir := os.getenv(TEST_DIR_ENV):
        return Path(test_dir) / "cache"
    return xdg_cache_home() / APP_NAME


def get_settings_path() -> Path:
    """Return the settings file path, honouring CREDVAULT_CONFIG."""
    if override := os.getenv(CONFIG_ENV):
        return Path(override)
    return xdg_config_home() / APP_NAME / "config.yaml"


@dataclass(frozen=True, slots=True)
class CredVaultSettings:
    """Immutable tool settings.

    Attributes:
        vault_path: Encrypted vault file
        cache_dir: Directory for temporary credential cache files
        default_region: Region used when a profile configures none
        session_duration_seconds: Lifetime requested for session tokens
        federation_duration_seconds: Lifetime requested for federation tokens
        log_level: Logging level name
    """

    vault_path: Path = field(default_factory=default_vault_path)
    cache_dir: Path = field(default_factory=default_cache_dir)
    default_region: str = DEFAULT_REGION
    session_duration_seconds: int = SESSION_DURATION_SECONDS
    federation_duration_seconds: int = FEDERATION_DURATION_SECONDS
    log_level: str = "WARNING"


def parse_settings(data: dict[str, Any], base: CredVaultSettings | None = None) -> Result[CredVaultSettings, str]:
    """Overlay settings file data onto base settings.

    Args:
        data: Mapping loaded from the settings file
        base: Settings to start from; defaults if None

    Returns:
        Result containing settings or an error message
    """
    settings = base or CredVaultSettings()
    known = {
        "vault_path",
        "cache_dir",
        "default_region",
        "session_duration_seconds",
        "federation_duration_seconds",
        "log_level",
    }
    unknown = set(data) - known
    if unknown:
        return Failure(f"Unknown settings: {', '.join(sorted(unknown))}")

    try:
        updates: dict[str, Any] = {}
        # The test directory pins locations regardless of the settings file
        if "vault_path" in data and not os.getenv(TEST_DIR_ENV):
            updates["vault_path"] = Path(str(data["vault_path"])).expanduser()
        if "cache_dir" in data and not os.getenv(TEST_DIR_ENV):
            updates["cache_dir"] = Path(str(data["cache_dir"])).expanduser()
        if "default_region" in data:
            updates["default_region"] = str(data["default_region"])
        for key in ("session_duration_seconds", "federation_duration_seconds"):
            if key in data:
                value = int(data[key])
                if value <= 0:
                    return Failure(f"{key} must be positive")
                updates[key] = value
        if "log_level" in data:
            updates["log_level"] = str(data["log_level"]).upper()
    except (TypeError, ValueError) as e:
        return Failure(f"Invalid settings value: {e}")

    return Success(replace(settings, **updates))


def load_settings(path: Path | None = None) -> Result[CredVaultSettings, str]:
    """Load settings from the YAML settings file if present.

    A missing file yields default settings.

    Args:
        path: Settings file; defaults to get_settings_path()

    Returns:
        Result containing settings or an error message
    """
    settings_path = path or get_settings_path()
    if not settings_path.exists():
        return Success(CredVaultSettings())

    try:
        with settings_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        return Failure(f"Invalid YAML in {settings_path}: {e}")
    except OSError as e:
        return Failure(f"Failed to read {settings_path}: {e}")

    if not isinstance(data, dict):
        return Failure(f"Settings must be a mapping, got {type(data).__name__}")

    return parse_settings(data)
