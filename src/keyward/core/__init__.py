"""Keyward core: vault protocol client, password generator, rotation history
and the import backup codec.
"""

from .generator import generate_password, mask_password
from .history import HistoryStore
from .vault_client import (
    AuthFailed,
    VaultClient,
    VaultCommandError,
    VaultError,
    VaultTimeout,
    VaultUnavailable,
)

__all__ = [
    'AuthFailed',
    'HistoryStore',
    'VaultClient',
    'VaultCommandError',
    'VaultError',
    'VaultTimeout',
    'VaultUnavailable',
    'generate_password',
    'mask_password',
]
