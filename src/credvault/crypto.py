"""Key derivation and authenticated encryption for the vault container.

Keys are derived with Argon2id and payloads are sealed with AES-256-GCM.
Parameters are fixed constants; changing any of them requires a new
container version.

Classes:
    ProfileSecret: Immutable long-term credential pair
    VaultContainer: Immutable on-disk container
"""

import base64
import binascii
import json
import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from argon2.low_level import Type
from argon2.low_level import hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from returns.result import Failure
from returns.result import Result
from returns.result import Success

from credvault.errors import AuthenticationError
from credvault.errors import IncorrectPasswordOrCorrupted


VAULT_VERSION = 1
SALT_SIZE = 32
NONCE_SIZE = 12
KEY_SIZE = 32

# Argon2id: one pass over 64 MiB with 4 lanes
ARGON2_TIME_COST = 1
ARGON2_MEMORY_COST_KIB = 64 * 1024
ARGON2_PARALLELISM = 4


@dataclass(frozen=True, slots=True)
class ProfileSecret:
    """Long-term credentials stored for one profile.

    Attributes:
        access_key: Access key identifier
        secret_key: Secret access key
    """

    access_key: str
    secret_key: str

    def __repr__(self) -> str:
        return f"ProfileSecret(access_key={self.access_key!r}, secret_key='***')"


@dataclass(frozen=True, slots=True)
class VaultContainer:
    """Encrypted vault as stored on disk.

    Attributes:
        version: Container format version
        salt: Key derivation salt
        nonce: AES-GCM nonce
        ciphertext: Sealed payload including the authentication tag
    """

    version: int
    salt: bytes
    nonce: bytes
    ciphertext: bytes

    def to_json(self) -> str:
        """Serialize container to its JSON file representation."""
        return json.dumps(
            {
                "version": self.version,
                "salt": base64.b64encode(self.salt).decode("ascii"),
                "nonce": base64.b64encode(self.nonce).decode("ascii"),
                "data": base64.b64encode(self.ciphertext).decode("ascii"),
            },
            indent=2,
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> "VaultContainer":
        """Parse a container from JSON.

        Raises:
            ValueError: If the document is malformed or the version is unsupported
        """
        data = json.loads(text)
        if not isinstance(data, dict):
            msg = "vault container must be a JSON object"
            raise ValueError(msg)

        version = data.get("version")
        if isinstance(version, bool) or version != VAULT_VERSION:
            msg = f"unsupported vault version: {version}"
            raise ValueError(msg)

        try:
            salt = base64.b64decode(data["salt"], validate=True)
            nonce = base64.b64decode(data["nonce"], validate=True)
            ciphertext = base64.b64decode(data["data"], validate=True)
        except (KeyError, TypeError, binascii.Error) as e:
            msg = f"invalid vault container field: {e}"
            raise ValueError(msg) from e

        if len(salt) != SALT_SIZE or len(nonce) != NONCE_SIZE:
            msg = "invalid salt or nonce length"
            raise ValueError(msg)

        return cls(version=version, salt=salt, nonce=nonce, ciphertext=ciphertext)


VaultPayload = dict[str, ProfileSecret]


def derive_key(password: str | bytes | bytearray, salt: bytes) -> bytes:
    """Derive a 32-byte key from a password and salt with Argon2id.

    Pure and deterministic; safe to call from several threads at once.

    Args:
        password: User password
        salt: 32 random bytes

    Returns:
        32-byte symmetric key

    Raises:
        ValueError: If the salt has the wrong length
    """
    if len(salt) != SALT_SIZE:
        msg = f"salt must be {SALT_SIZE} bytes, got {len(salt)}"
        raise ValueError(msg)

    secret = password.encode("utf-8") if isinstance(password, str) else bytes(password)
    return hash_secret_raw(
        secret=secret,
        salt=salt,
        time_cost=ARGON2_TIME_COST,
        memory_cost=ARGON2_MEMORY_COST_KIB,
        parallelism=ARGON2_PARALLELISM,
        hash_len=KEY_SIZE,
        type=Type.ID,
    )


def seal(key: bytes, nonce: bytes, plaintext: bytes) -> bytes:
    """Encrypt and authenticate plaintext with AES-256-GCM."""
    return AESGCM(key).encrypt(nonce, plaintext, None)


def open_sealed(key: bytes, nonce: bytes, ciphertext: bytes) -> Result[bytes, AuthenticationError]:
    """Decrypt ciphertext, failing closed when the tag does not verify.

    Args:
        key: 32-byte key
        nonce: 12-byte nonce used at seal time
        ciphertext: Ciphertext with appended tag

    Returns:
        Success with plaintext, Failure with AuthenticationError
    """
    try:
        return Success(AESGCM(key).decrypt(nonce, ciphertext, None))
    except (InvalidTag, ValueError) as e:
        return Failure(AuthenticationError(f"authentication failed: {type(e).__name__}"))


def encode_payload(payload: Mapping[str, ProfileSecret]) -> bytes:
    """Serialize the decrypted payload to JSON bytes."""
    profiles = {
        name: {"access_key": secret.access_key, "secret_key": secret.secret_key} for name, secret in payload.items()
    }
    return json.dumps({"profiles": profiles}).encode("utf-8")


def decode_payload(plaintext: bytes) -> VaultPayload:
    """Parse decrypted JSON bytes into a payload mapping.

    Raises:
        ValueError: If the plaintext is not a valid payload document
    """
    data: Any = json.loads(plaintext)
    if not isinstance(data, dict):
        msg = "vault payload must be a JSON object"
        raise ValueError(msg)

    profiles = data.get("profiles") or {}
    if not isinstance(profiles, dict):
        msg = "vault profiles must be a JSON object"
        raise ValueError(msg)

    try:
        return {
            name: ProfileSecret(access_key=entry["access_key"], secret_key=entry["secret_key"])
            for name, entry in profiles.items()
        }
    except (KeyError, TypeError) as e:
        msg = f"invalid profile entry: {e}"
        raise ValueError(msg) from e


def encrypt_payload(password: str | bytes | bytearray, payload: Mapping[str, ProfileSecret]) -> VaultContainer:
    """Encrypt a payload under a fresh salt and nonce.

    A new salt (and therefore a new key) and a new nonce are drawn on every
    call, so no (key, nonce) pair is ever reused.
    """
    salt = secrets.token_bytes(SALT_SIZE)
    nonce = secrets.token_bytes(NONCE_SIZE)
    key = derive_key(password, salt)
    return VaultContainer(
        version=VAULT_VERSION,
        salt=salt,
        nonce=nonce,
        ciphertext=seal(key, nonce, encode_payload(payload)),
    )


def decrypt_payload(
    password: str | bytes | bytearray, container: VaultContainer
) -> Result[VaultPayload, IncorrectPasswordOrCorrupted]:
    """Decrypt a container with a password.

    Every failure collapses into IncorrectPasswordOrCorrupted.
    """
    if isinstance(container.version, bool) or container.version != VAULT_VERSION:
        return Failure(IncorrectPasswordOrCorrupted())

    try:
        key = derive_key(password, container.salt)
    except ValueError:
        return Failure(IncorrectPasswordOrCorrupted())

    opened = open_sealed(key, container.nonce, container.ciphertext)
    if isinstance(opened, Failure):
        return Failure(IncorrectPasswordOrCorrupted())

    try:
        return Success(decode_payload(opened.unwrap()))
    except (ValueError, UnicodeDecodeError):
        return Failure(IncorrectPasswordOrCorrupted())
