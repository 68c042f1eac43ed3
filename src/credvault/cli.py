"""credvault CLI - local-first encrypted credential manager.

Long-term access keys live in an encrypted vault; temporary credentials
are cached per profile and injected into child processes.
"""

import logging
import os
import subprocess
import sys
from typing import Any
from typing import TypeVar

import click
from returns.result import Failure
from returns.result import Result

import credvault
from credvault.cache import CredentialCache
from credvault.cache import CredentialKind
from credvault.config import AUTO_CONFIRM_ENV
from credvault.config import PASSWORD_ENV
from credvault.config import TEST_ACCESS_KEY_ENV
from credvault.config import TEST_SECRET_KEY_ENV
from credvault.config import CredVaultSettings
from credvault.config import load_settings
from credvault.crypto import ProfileSecret
from credvault.profiles import create_profile_section
from credvault.profiles import get_profile_settings
from credvault.profiles import profile_exists
from credvault.sts import StsTokenExchange
from credvault.sts import get_console_url
from credvault.validation import validate_access_key
from credvault.validation import validate_profile_name
from credvault.vault import VaultSession
from credvault.vault import VaultStore
from credvault.workflow import CredentialResolver
from credvault.workflow import build_environment


logger = logging.getLogger(__name__)

T = TypeVar("T")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _unwrap(result: Result[T, Any]) -> T:
    """Return the success value or abort the command with the failure."""
    if isinstance(result, Failure):
        raise click.ClickException(str(result.failure()))
    return result.unwrap()


def read_password(prompt: str) -> str:
    """Prompt for a password, or take it from CREDVAULT_PASSWORD in test mode."""
    if test_password := os.getenv(PASSWORD_ENV):
        click.echo(f"{prompt}: [test mode]", err=True)
        return test_password
    return click.prompt(prompt, hide_input=True, err=True)


def read_confirmation(prompt: str) -> bool:
    """Ask a yes/no question, auto-confirming when CREDVAULT_AUTO_CONFIRM is set."""
    if os.getenv(AUTO_CONFIRM_ENV):
        click.echo(f"{prompt} [auto-confirmed]")
        return True
    return click.confirm(prompt, default=False)


def read_mfa_code() -> str:
    """Prompt for a one-time MFA code."""
    return click.prompt("Enter MFA code", err=True).strip()


def _settings(ctx: click.Context) -> CredVaultSettings:
    settings: CredVaultSettings = ctx.obj["settings"]
    return settings


def _open_session(settings: CredVaultSettings) -> VaultSession:
    store = VaultStore(settings.vault_path)
    return _unwrap(store.open(lambda: read_password("Enter vault password")))


def _resolver(settings: CredVaultSettings) -> CredentialResolver:
    return CredentialResolver(
        settings,
        exchange=StsTokenExchange(),
        password_source=lambda: read_password("Enter vault password"),
        mfa_code_source=read_mfa_code,
    )


@click.group()
@click.version_option(version=credvault.__version__, prog_name="credvault")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """credvault - Fast, local-first AWS credential manager.

    Examples:
      credvault init
      credvault add production
      credvault exec production                 # Spawns shell with credentials
      credvault exec production -- aws s3 ls    # Run single command
      credvault login production | pbcopy       # Copy console URL to clipboard
    """
    settings = _unwrap(load_settings())
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.WARNING)
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Initialize a new encrypted vault."""
    settings = _settings(ctx)
    store = VaultStore(settings.vault_path)
    if store.exists():
        raise click.ClickException(f"vault already exists at {store.path}")

    password = read_password("Enter master password")
    confirm = read_password("Confirm password")
    if password != confirm:
        raise click.ClickException("passwords do not match")

    _unwrap(store.initialize(password))
    click.echo(f"✓ Vault initialized at {store.path}")


@cli.command()
@click.argument("profile")
@click.pass_context
def add(ctx: click.Context, profile: str) -> None:
    """Add AWS credentials for a profile."""
    settings = _settings(ctx)
    _unwrap(validate_profile_name(profile))

    if not _unwrap(profile_exists(profile)):
        click.echo(f"Profile '{profile}' not found in ~/.aws/config")
        if not read_confirmation("Would you like to create it?"):
            click.echo("Cancelled. Check your profile name.")
            return
        _unwrap(create_profile_section(profile))
        click.echo(f"✓ Created [profile {profile}] in ~/.aws/config\n")

    with _open_session(settings) as session:
        click.echo(f"Adding AWS credentials for profile: {profile}\n")

        if test_access_key := os.getenv(TEST_ACCESS_KEY_ENV):
            click.echo("AWS Access Key ID: [test mode]")
            access_key = test_access_key
        else:
            access_key = click.prompt("AWS Access Key ID").strip()
        _unwrap(validate_access_key(access_key))

        if test_secret_key := os.getenv(TEST_SECRET_KEY_ENV):
            click.echo("AWS Secret Access Key: [test mode]")
            secret_key = test_secret_key
        else:
            secret_key = click.prompt("AWS Secret Access Key", hide_input=True)

        _unwrap(session.put(profile, ProfileSecret(access_key=access_key, secret_key=secret_key)))

    click.echo(f"✓ Successfully added profile '{profile}' to vault\n")
    _show_profile_tips(profile)


def _show_profile_tips(profile: str) -> None:
    result = get_profile_settings(profile)
    if isinstance(result, Failure):
        return
    profile_settings = result.unwrap()

    if profile_settings.region:
        click.echo(f"Using region '{profile_settings.region}' from ~/.aws/config")
    else:
        click.echo("Tip: Add region to ~/.aws/config:")
        click.echo(f"  [profile {profile}]")
        click.echo("  region = us-east-1")

    if profile_settings.mfa_serial:
        click.echo("MFA configured in ~/.aws/config")
    else:
        click.echo("\nTip: To enable MFA, add to ~/.aws/config:")
        click.echo(f"  [profile {profile}]")
        click.echo("  mfa_serial = arn:aws:iam::123456789012:mfa/your-username")


@cli.command(name="list")
@click.pass_context
def list_profiles(ctx: click.Context) -> None:
    """List available AWS profiles."""
    with _open_session(_settings(ctx)) as session:
        names = _unwrap(session.list())

    if not names:
        click.echo("No AWS profiles found. Add one with: credvault add <profile-name>")
        return

    click.echo("Available AWS profiles:")
    for name in sorted(names):
        line = f"  • {name}"
        result = get_profile_settings(name)
        if not isinstance(result, Failure):
            profile_settings = result.unwrap()
            if profile_settings.region:
                line += f" (region: {profile_settings.region})"
            if profile_settings.mfa_serial:
                line += " [MFA enabled]"
        click.echo(line)


cli.add_command(list_profiles, name="ls")


@cli.command(name="exec", context_settings={"ignore_unknown_options": True})
@click.argument("profile")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def exec_command(ctx: click.Context, profile: str, command: tuple[str, ...]) -> None:
    """Execute a command (or a subshell) with temporary AWS credentials.

    Examples:
      credvault exec production
      credvault exec production -- aws s3 ls
    """
    settings = _settings(ctx)
    _unwrap(validate_profile_name(profile))

    resolved = _unwrap(_resolver(settings).resolve(profile, CredentialKind.SESSION))
    expiry = resolved.entry.expiration.astimezone().strftime("%H:%M:%S")
    if resolved.from_cache:
        click.echo(f"Using cached credentials (valid until {expiry})", err=True)
    else:
        click.echo(f"✓ Credentials cached (valid until {expiry})", err=True)

    env = build_environment(profile, resolved.entry)

    args = list(command)
    if args and args[0] == "--":
        args = args[1:]
    if not args:
        args = [os.getenv("SHELL") or "/bin/bash"]
        click.echo(f"Spawning subshell with AWS credentials for profile '{profile}'", err=True)
        click.echo("Type 'exit' to return to your normal shell\n", err=True)

    try:
        completed = subprocess.run(args, env=env, check=False)
    except OSError as e:
        raise click.ClickException(f"failed to execute command: {e}") from e

    ctx.exit(completed.returncode)


@cli.command()
@click.argument("profile")
@click.pass_context
def login(ctx: click.Context, profile: str) -> None:
    """Print an AWS Console sign-in URL for a profile."""
    settings = _settings(ctx)
    _unwrap(validate_profile_name(profile))

    resolved = _unwrap(_resolver(settings).resolve(profile, CredentialKind.FEDERATION))
    # Only the URL goes to stdout so it can be piped
    click.echo(_unwrap(get_console_url(resolved.entry)))


@cli.command()
@click.argument("profile")
@click.pass_context
def remove(ctx: click.Context, profile: str) -> None:
    """Remove a profile from the vault."""
    settings = _settings(ctx)
    _unwrap(validate_profile_name(profile))

    with _open_session(settings) as session:
        if not read_confirmation(f"Are you sure you want to remove profile '{profile}'?"):
            click.echo("Cancelled")
            return
        _unwrap(session.remove(profile))

    click.echo(f"✓ Successfully removed profile '{profile}'")

    invalidated = CredentialCache(settings.cache_dir).invalidate(profile)
    if isinstance(invalidated, Failure):
        logger.warning("Failed to remove cached credentials: %s", invalidated.failure())


cli.add_command(remove, name="rm")


@cli.command()
def version() -> None:
    """Show version."""
    click.echo(f"credvault {credvault.__version__}")


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
