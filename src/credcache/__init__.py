"""credcache -- process-local credential cache over the platform secret store."""

from credcache.keys import StorageKey
from credcache.manager import CredentialsManager

__all__ = ["CredentialsManager", "StorageKey"]
__version__ = "0.1.0"
