"""
In-memory credential store.
"""

from typing import Any, Dict, Iterable, Optional, Set, Tuple

from loguru import logger

from ...core.exceptions import NotFoundError
from ...core.interfaces.credentials import ICredentialStore


class InMemoryCredentialStore(ICredentialStore):
    """
    Credential store backed by plain dictionaries.

    Used directly by tests and embedding code, and as the lookup table of
    the file store.
    """

    def __init__(
        self,
        passwords: Optional[Dict[str, str]] = None,
        host_keys: Optional[Dict[str, str]] = None,
        acl: Optional[Iterable[Tuple[str, str]]] = None,
    ) -> None:
        self._passwords: Dict[str, str] = dict(passwords or {})
        self._host_keys: Dict[str, str] = dict(host_keys or {})
        self._acl: Set[Tuple[str, str]] = set(acl or ())
        self._running = False

    @property
    def name(self) -> str:
        return "InMemoryCredentialStore"

    @property
    def version(self) -> str:
        return "1.0.0"

    async def start(self) -> None:
        self._running = True
        logger.debug(
            f"Credential store ready: {len(self._passwords)} passwords, "
            f"{len(self._host_keys)} host keys, {len(self._acl)} ACL entries")

    async def stop(self) -> None:
        self._running = False

    async def check_health(self) -> Dict[str, Any]:
        return {
            'healthy': self._running,
            'status': 'running' if self._running else 'stopped',
            'details': {
                'passwords': len(self._passwords),
                'host_keys': len(self._host_keys),
                'acl_entries': len(self._acl),
            }
        }

    async def password_for(self, target: str) -> str:
        try:
            return self._passwords[target]
        except KeyError:
            raise NotFoundError("password", target) from None

    async def pinned_host_key_fingerprint(self, target: str) -> str:
        try:
            return self._host_keys[target]
        except KeyError:
            raise NotFoundError("host key", target) from None

    async def is_authorized(self, key_fingerprint: str, target: str) -> bool:
        return (key_fingerprint, target) in self._acl

    def set_password(self, target: str, password: str) -> None:
        self._passwords[target] = password

    def pin_host_key(self, target: str, fingerprint: str) -> None:
        self._host_keys[target] = fingerprint

    def allow(self, key_fingerprint: str, target: str) -> None:
        self._acl.add((key_fingerprint, target))

    def revoke(self, key_fingerprint: str, target: str) -> None:
        self._acl.discard((key_fingerprint, target))

    def replace(self, passwords: Dict[str, str], host_keys: Dict[str, str],
                acl: Iterable[Tuple[str, str]]) -> None:
        """Swap in a complete new set of tables."""
        self._passwords = dict(passwords)
        self._host_keys = dict(host_keys)
        self._acl = set(acl)
