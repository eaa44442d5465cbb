"""
Credential store interface consumed by the mediation core.

The store answers three read-only queries keyed by target and by public key
fingerprint. The core never writes to it.
"""

from abc import abstractmethod

from .lifecycle import IComponent


class ICredentialStore(IComponent):
    """
    Read-only source of target passwords, pinned host keys and the ACL.

    Implementations must be safe for concurrent use by many sessions.
    """

    @abstractmethod
    async def password_for(self, target: str) -> str:
        """
        Get the password the gate uses to log in to ``target``.

        Raises:
            NotFoundError: If no password is stored for the target.
            CredentialStoreError: If the backend fails.
        """
        pass

    @abstractmethod
    async def pinned_host_key_fingerprint(self, target: str) -> str:
        """
        Get the expected host key fingerprint of ``target``.

        Raises:
            NotFoundError: If no host key is pinned for the target.
            CredentialStoreError: If the backend fails.
        """
        pass

    @abstractmethod
    async def is_authorized(self, key_fingerprint: str, target: str) -> bool:
        """
        Check whether the key with ``key_fingerprint`` may reach ``target``.

        Backends may answer an absent ACL row with ``False`` or raise
        ``NotFoundError``; callers treat both as a denial.

        Raises:
            NotFoundError: If the backend reports no ACL row for the pair.
            CredentialStoreError: If the backend fails.
        """
        pass
