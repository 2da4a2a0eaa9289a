"""Fernet-encrypted JSON file backend.

The insecure fallback used on Unix-like systems where no secure keyring
service is running. Derives an encryption key from a passphrase using
PBKDF2-HMAC-SHA256, then encrypts the whole ``{service: {key: payload}}``
document with Fernet.
"""

from __future__ import annotations

import base64
import json
import pathlib

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from credcache.backends.base import SecretBackend
from credcache.errors import BackendError, BackendErrorCode

# Fixed salt -- acceptable for a local-only file where the threat model is
# casual disk access, not offline brute-force against a leaked file.
_SALT = b"credcache-fallback-secrets-v1"
_ITERATIONS = 480_000


def _derive_key(passphrase: str) -> bytes:
    """Derive a 32-byte Fernet key from the passphrase via PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_SALT,
        iterations=_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))


class EncryptedFileBackend(SecretBackend):
    """Stores secrets as a Fernet-encrypted JSON file on disk.

    Parameters
    ----------
    file_path:
        Path to the encrypted secrets file. Created on first write.
    passphrase:
        Passphrase used to derive the Fernet encryption key via PBKDF2.
    """

    def __init__(self, file_path: pathlib.Path, passphrase: str) -> None:
        self._path = file_path
        self._fernet = Fernet(_derive_key(passphrase))

    def _read_store(self) -> dict[str, dict[str, str]]:
        """Read and decrypt the secrets file. Returns empty dict if missing."""
        if not self._path.exists():
            return {}
        try:
            plaintext = self._fernet.decrypt(self._path.read_bytes())
        except InvalidToken as exc:
            raise BackendError(
                BackendErrorCode.ACCESS_DENIED,
                f"cannot decrypt {self._path}: wrong passphrase or corrupt file",
            ) from exc
        except OSError as exc:
            raise BackendError(BackendErrorCode.OTHER_ERROR, str(exc)) from exc
        return json.loads(plaintext)

    def _write_store(self, data: dict[str, dict[str, str]]) -> None:
        """Encrypt and write the secrets to disk."""
        plaintext = json.dumps(data, sort_keys=True).encode("utf-8")
        ciphertext = self._fernet.encrypt(plaintext)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_bytes(ciphertext)
        except OSError as exc:
            raise BackendError(BackendErrorCode.OTHER_ERROR, str(exc)) from exc

    async def read(self, service: str, key: str, *, insecure_fallback: bool = False) -> str:
        store = self._read_store()
        try:
            return store[service][key]
        except KeyError:
            raise BackendError(
                BackendErrorCode.ENTRY_NOT_FOUND, f"no entry for {service}/{key}"
            ) from None

    async def write(
        self, service: str, key: str, payload: str, *, insecure_fallback: bool = False
    ) -> None:
        store = self._read_store()
        store.setdefault(service, {})[key] = payload
        self._write_store(store)

    async def delete(self, service: str, key: str, *, insecure_fallback: bool = False) -> None:
        store = self._read_store()
        entries = store.get(service, {})
        if key not in entries:
            raise BackendError(
                BackendErrorCode.ENTRY_NOT_FOUND, f"no entry for {service}/{key}"
            )
        del entries[key]
        if not entries:
            store.pop(service, None)
        self._write_store(store)
