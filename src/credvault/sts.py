"""Token exchange with AWS STS and console sign-in URLs.

Long-term profile credentials are traded for temporary ones: session
tokens (optionally MFA-backed) for running commands, and federation
tokens for console sign-in.

Classes:
    StsTokenExchange: boto3-backed token exchange
"""

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import urlencode

import aiohttp
import boto3
from botocore.exceptions import BotoCoreError
from botocore.exceptions import ClientError
from returns.result import Failure
from returns.result import Result
from returns.result import Success

from credvault.cache import CacheEntry
from credvault.cache import CredentialKind
from credvault.cache import to_utc
from credvault.crypto import ProfileSecret
from credvault.errors import TokenExchangeError


logger = logging.getLogger(__name__)

FEDERATION_ENDPOINT = "https://signin.aws.amazon.com/federation"
CONSOLE_DESTINATION = "https://console.aws.amazon.com/"
FEDERATION_NAME_MAX_LENGTH = 32

ClientFactory = Callable[[ProfileSecret, str], Any]


def _default_client_factory(secret: ProfileSecret, region: str) -> Any:
    return boto3.client(
        "sts",
        aws_access_key_id=secret.access_key,
        aws_secret_access_key=secret.secret_key,
        region_name=region,
    )


def _entry_from_response(response: dict[str, Any], kind: CredentialKind, region: str) -> CacheEntry:
    credentials = response["Credentials"]
    return CacheEntry(
        access_key_id=credentials["AccessKeyId"],
        secret_access_key=credentials["SecretAccessKey"],
        session_token=credentials["SessionToken"],
        expiration=to_utc(credentials["Expiration"]),
        kind=kind,
        region=region,
    )


class StsTokenExchange:
    """Exchange long-term credentials for temporary ones via STS.

    Example:
        >>> exchange = StsTokenExchange()
        >>> result = exchange.get_session_token(secret, "eu-west-1", 3600)
    """

    def __init__(self, client_factory: ClientFactory | None = None) -> None:
        """Initialize exchange with an optional STS client factory."""
        self._client_factory = client_factory or _default_client_factory

    def get_session_token(
        self,
        secret: ProfileSecret,
        region: str,
        duration_seconds: int,
        mfa_serial: str | None = None,
        mfa_code: str | None = None,
    ) -> Result[CacheEntry, TokenExchangeError]:
        """Request session credentials, with MFA when a device is configured.

        Args:
            secret: Long-term credentials
            region: Region for the STS endpoint
            duration_seconds: Requested lifetime
            mfa_serial: MFA device ARN, if the profile requires MFA
            mfa_code: One-time code from the device

        Returns:
            Success with a session CacheEntry, Failure with TokenExchangeError
        """
        params: dict[str, Any] = {"DurationSeconds": duration_seconds}
        if mfa_serial:
            if not mfa_code:
                return Failure(TokenExchangeError("MFA code required but not provided"))
            params["SerialNumber"] = mfa_serial
            params["TokenCode"] = mfa_code

        try:
            client = self._client_factory(secret, region)
            response = client.get_session_token(**params)
            entry = _entry_from_response(response, CredentialKind.SESSION, region)
        except (ClientError, BotoCoreError) as e:
            return Failure(TokenExchangeError(f"failed to get session token: {e}"))
        except (KeyError, TypeError) as e:
            return Failure(TokenExchangeError(f"unexpected session token response: {e}"))

        logger.info("Obtained session token valid until %s", entry.expiration)
        return Success(entry)

    def get_federation_token(
        self,
        secret: ProfileSecret,
        region: str,
        duration_seconds: int,
        name: str,
    ) -> Result[CacheEntry, TokenExchangeError]:
        """Request federation credentials for console sign-in.

        The token carries the same permissions as the user; no policy is sent.
        """
        try:
            client = self._client_factory(secret, region)
            response = client.get_federation_token(
                Name=name[:FEDERATION_NAME_MAX_LENGTH],
                DurationSeconds=duration_seconds,
            )
            entry = _entry_from_response(response, CredentialKind.FEDERATION, region)
        except (ClientError, BotoCoreError) as e:
            return Failure(TokenExchangeError(f"failed to get federation token: {e}"))
        except (KeyError, TypeError) as e:
            return Failure(TokenExchangeError(f"unexpected federation token response: {e}"))

        logger.info("Obtained federation token valid until %s", entry.expiration)
        return Success(entry)


def build_login_url(signin_token: str) -> str:
    """Build the console login URL for a sign-in token."""
    params = {
        "Action": "login",
        "Destination": CONSOLE_DESTINATION,
        "SigninToken": signin_token,
    }
    return f"{FEDERATION_ENDPOINT}?{urlencode(params)}"


async def fetch_console_url(entry: CacheEntry, timeout_seconds: float = 30.0) -> Result[str, TokenExchangeError]:
    """Trade federation credentials for a console sign-in URL.

    Args:
        entry: Federation credentials
        timeout_seconds: Total request timeout

    Returns:
        Success with the login URL, Failure with TokenExchangeError
    """
    session_json = json.dumps(
        {
            "sessionId": entry.access_key_id,
            "sessionKey": entry.secret_access_key,
            "sessionToken": entry.session_token,
        }
    )
    params = {"Action": "getSigninToken", "Session": session_json}

    try:
        timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        async with (
            aiohttp.ClientSession(timeout=timeout) as session,
            session.get(FEDERATION_ENDPOINT, params=params) as response,
        ):
            if response.status != 200:
                return Failure(TokenExchangeError(f"federation endpoint returned status {response.status}"))
            body = await response.json(content_type=None)
    except (aiohttp.ClientError, TimeoutError) as e:
        return Failure(TokenExchangeError(f"failed to get signin token: {e}"))
    except ValueError as e:
        return Failure(TokenExchangeError(f"failed to parse signin token response: {e}"))

    token = body.get("SigninToken") if isinstance(body, dict) else None
    if not token:
        return Failure(TokenExchangeError("signin token missing from federation response"))

    return Success(build_login_url(token))


def get_console_url(entry: CacheEntry) -> Result[str, TokenExchangeError]:
    """Synchronous wrapper around fetch_console_url."""
    return asyncio.run(fetch_console_url(entry))
