"""Secret backends and the platform-appropriate backend factory."""

from __future__ import annotations

import logging
import sys

from credcache.backends.base import SecretBackend
from credcache.backends.encrypted_file import EncryptedFileBackend
from credcache.backends.keychain import KeychainBackend
from credcache.backends.keyring_backend import KeyringBackend
from credcache.config import Settings

logger = logging.getLogger(__name__)

__all__ = [
    "EncryptedFileBackend",
    "KeychainBackend",
    "KeyringBackend",
    "SecretBackend",
    "create_backend",
]


def create_backend(settings: Settings, platform: str | None = None) -> SecretBackend:
    """Create the secret backend selected by ``settings.backend.kind``.

    ``auto`` uses the Keychain on macOS and ``keyring`` elsewhere, with the
    encrypted file as the insecure fallback.
    """
    cfg = settings.backend
    platform = sys.platform if platform is None else platform
    kind = cfg.kind
    if kind == "auto":
        kind = "keychain" if platform == "darwin" else "keyring"

    if kind == "keychain":
        backend: SecretBackend = KeychainBackend(command=cfg.keychain_command)
    elif kind == "encrypted_file":
        backend = EncryptedFileBackend(cfg.fallback_path, cfg.fallback_passphrase)
    else:
        backend = KeyringBackend(
            fallback=EncryptedFileBackend(cfg.fallback_path, cfg.fallback_passphrase),
        )
    logger.info("Using %s secret backend", type(backend).__name__)
    return backend
