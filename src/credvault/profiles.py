"""Non-secret profile settings from the shared AWS config file.

Region and MFA device live in ``~/.aws/config`` in plain text, keyed by
the same profile name as the vault. The vault itself never stores them.
"""

import configparser
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from returns.result import Failure
from returns.result import Result
from returns.result import Success


logger = logging.getLogger(__name__)


def get_aws_config_path() -> Path:
    """Return the AWS config path, honouring AWS_CONFIG_FILE."""
    if override := os.getenv("AWS_CONFIG_FILE"):
        return Path(override).expanduser()
    return Path.home() / ".aws" / "config"


def section_name(profile: str) -> str:
    """Return the config section name for a profile."""
    return "default" if profile == "default" else f"profile {profile}"


@dataclass(frozen=True, slots=True)
class ProfileSettings:
    """Settings read for one profile.

    Attributes:
        region: Configured region, if any
        mfa_serial: MFA device ARN, if any
    """

    region: str | None = None
    mfa_serial: str | None = None


def _read_parser(path: Path) -> configparser.ConfigParser:
    parser = configparser.ConfigParser(interpolation=None, strict=False)
    parser.read(path, encoding="utf-8")
    return parser


def profile_exists(profile: str, path: Path | None = None) -> Result[bool, str]:
    """Check whether a profile section exists in the config file."""
    config_path = path or get_aws_config_path()
    if not config_path.exists():
        return Success(False)
    try:
        return Success(_read_parser(config_path).has_section(section_name(profile)))
    except (OSError, configparser.Error) as e:
        return Failure(f"Failed to read {config_path}: {e}")


def get_profile_settings(profile: str, path: Path | None = None) -> Result[ProfileSettings, str]:
    """Read region and mfa_serial for a profile.

    A missing config file or section yields empty settings.
    """
    config_path = path or get_aws_config_path()
    if not config_path.exists():
        return Success(ProfileSettings())

    try:
        parser = _read_parser(config_path)
    except (OSError, configparser.Error) as e:
        return Failure(f"Failed to read {config_path}: {e}")

    name = section_name(profile)
    if not parser.has_section(name):
        return Success(ProfileSettings())

    section = parser[name]
    return Success(
        ProfileSettings(
            region=section.get("region") or None,
            mfa_serial=section.get("mfa_serial") or None,
        )
    )


def create_profile_section(profile: str, path: Path | None = None) -> Result[None, str]:
    """Append an empty profile section to the config file.

    Creates the config directory (0700) and file (0600) when missing.
    """
    config_path = path or get_aws_config_path()
    try:
        config_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        prefix = ""
        if config_path.exists() and config_path.stat().st_size > 0:
            prefix = "\n"
        fd = os.open(config_path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            f.write(f"{prefix}[{section_name(profile)}]\n")
    except OSError as e:
        return Failure(f"Failed to write {config_path}: {e}")

    logger.info("Created [%s] in %s", section_name(profile), config_path)
    return Success(None)
