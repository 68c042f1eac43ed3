"""Tests for AWS config profile settings."""

import os
import stat
import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest
from returns.result import Success

from credvault.profiles import ProfileSettings
from credvault.profiles import create_profile_section
from credvault.profiles import get_aws_config_path
from credvault.profiles import get_profile_settings
from credvault.profiles import profile_exists
from credvault.profiles import section_name


SAMPLE_CONFIG = """[default]
region = us-west-2

[profile prod]
region = eu-west-1
mfa_serial = arn:aws:iam::123456789012:mfa/alice

[profile dev]
output = json
"""


@pytest.fixture
def config_path() -> Generator[Path]:
    """Provide an AWS config file path with sample content."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / ".aws" / "config"
        path.parent.mkdir()
        path.write_text(SAMPLE_CONFIG)
        yield path


class TestProfileSettings:
    """Test reading profile sections."""

    def test_section_name(self) -> None:
        """Test default is bare and others are prefixed."""
        assert section_name("default") == "default"
        assert section_name("prod") == "profile prod"

    def test_config_path_override(self, config_path: Path) -> None:
        """Test AWS_CONFIG_FILE overrides the default location."""
        with patch.dict(os.environ, {"AWS_CONFIG_FILE": str(config_path)}):
            assert get_aws_config_path() == config_path

    def test_region_and_mfa(self, config_path: Path) -> None:
        """Test region and mfa_serial are read."""
        result = get_profile_settings("prod", config_path)
        assert result == Success(ProfileSettings("eu-west-1", "arn:aws:iam::123456789012:mfa/alice"))

    def test_default_profile(self, config_path: Path) -> None:
        """Test the default section is used for 'default'."""
        assert get_profile_settings("default", config_path) == Success(ProfileSettings(region="us-west-2"))

    def test_profile_without_settings(self, config_path: Path) -> None:
        """Test a section without region or MFA yields empty settings."""
        assert get_profile_settings("dev", config_path) == Success(ProfileSettings())

    def test_missing_section_and_file(self, config_path: Path) -> None:
        """Test unknown profiles and absent files are not errors."""
        assert get_profile_settings("staging", config_path) == Success(ProfileSettings())
        assert get_profile_settings("prod", config_path.with_name("absent")) == Success(ProfileSettings())

    def test_profile_exists(self, config_path: Path) -> None:
        """Test existence checks by section name."""
        assert profile_exists("prod", config_path) == Success(True)
        assert profile_exists("staging", config_path) == Success(False)
        assert profile_exists("prod", config_path.with_name("absent")) == Success(False)


class TestCreateProfileSection:
    """Test appending new profile sections."""

    def test_append(self, config_path: Path) -> None:
        """Test a new section is appended and readable."""
        assert create_profile_section("staging", config_path) == Success(None)

        assert config_path.read_text().endswith("\n[profile staging]\n")
        assert profile_exists("staging", config_path) == Success(True)
        assert profile_exists("prod", config_path) == Success(True)

    def test_create_new_file(self, config_path: Path) -> None:
        """Test a missing config file is created owner-only."""
        path = config_path.parent / "sub" / "config"
        assert create_profile_section("default", path) == Success(None)

        assert path.read_text() == "[default]\n"
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert stat.S_IMODE(path.parent.stat().st_mode) == 0o700
