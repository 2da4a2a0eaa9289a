"""Error types for credcache.

None of these escape the public ``CredentialsManager`` contract: the manager
logs and absorbs them. Backends and codecs raise them so the manager can
tell an expected failure apart from a bug.
"""

from __future__ import annotations

import enum


class CredCacheError(Exception):
    """Base class for all credcache errors."""


class BackendErrorCode(enum.Enum):
    """Failure codes reported by a secret backend."""

    ENTRY_NOT_FOUND = "entry_not_found"
    COULD_NOT_DELETE_ENTRY = "could_not_delete_entry"
    ACCESS_DENIED_BY_USER = "access_denied_by_user"
    ACCESS_DENIED = "access_denied"
    NO_BACKEND_AVAILABLE = "no_backend_available"
    NOT_IMPLEMENTED = "not_implemented"
    OTHER_ERROR = "other_error"


class BackendError(CredCacheError):
    """A read, write or delete against the secret backend failed."""

    def __init__(self, code: BackendErrorCode, message: str = "") -> None:
        self.code = code
        self.message = message or code.value
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"BackendError({self.code.name}, {self.message!r})"


class CodecError(CredCacheError):
    """Base class for bundle serialization failures."""


class EncodeError(CodecError):
    """A credential bundle could not be serialized."""


class DecodeError(CodecError):
    """A stored payload is not a valid serialized bundle."""
