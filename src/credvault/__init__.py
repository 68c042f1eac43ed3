"""credvault - local-first encrypted store for long-term cloud credentials.

This package keeps access keys in a password-protected vault file and caches
the short-lived credentials obtained from them, so day-to-day commands run
without re-entering the vault password.
"""

__version__ = "0.1.0"
__author__ = "credvault contributors"

# Re-export main components for easy importing
from credvault.cache import CacheEntry
from credvault.cache import CredentialCache
from credvault.cache import CredentialKind
from credvault.config import CredVaultSettings
from credvault.config import load_settings
from credvault.crypto import ProfileSecret
from credvault.lock import LockManager
from credvault.vault import VaultSession
from credvault.vault import VaultStore


__all__ = [
    "CacheEntry",
    "CredVaultSettings",
    "CredentialCache",
    "CredentialKind",
    "LockManager",
    "ProfileSecret",
    "VaultSession",
    "VaultStore",
    "__version__",
    "load_settings",
]
