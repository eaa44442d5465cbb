"""
File-backed credential store.

The document maps each target to its password, pinned host key and the
fingerprints allowed to reach it::

    targets:
      "10.0.0.5:22":
        password: secret
        host_key: "SHA256:..."
        authorized_keys:
          - "SHA256:..."
"""

import asyncio
import json
import time
from pathlib import Path
from typing import Any, Dict, List, Set, Tuple

import yaml
from loguru import logger

from ...core.exceptions import CredentialStoreError
from .memory import InMemoryCredentialStore


class FileCredentialStore(InMemoryCredentialStore):
    """Credential store loaded from a YAML or JSON document."""

    def __init__(self, path: str) -> None:
        super().__init__()
        self._path = Path(path)
        self._loaded_at: float = 0.0

    @property
    def name(self) -> str:
        return "FileCredentialStore"

    @property
    def path(self) -> Path:
        return self._path

    async def start(self) -> None:
        await self.reload()
        await super().start()

    async def reload(self) -> None:
        """Re-read the document and atomically replace all tables."""
        data = await asyncio.to_thread(self._read)
        passwords, host_keys, acl = self._parse(data)
        self.replace(passwords, host_keys, acl)
        self._loaded_at = time.time()
        logger.info(f"Loaded {len(passwords)} targets from {self._path}")

    async def check_health(self) -> Dict[str, Any]:
        health = await super().check_health()
        health['details']['path'] = str(self._path)
        health['details']['path_exists'] = self._path.exists()
        health['details']['loaded_at'] = self._loaded_at
        return health

    def _read(self) -> Any:
        if not self._path.exists():
            raise CredentialStoreError(
                f"Credential file not found: {self._path}")

        try:
            with open(self._path, 'r', encoding='utf-8') as f:
                if self._path.suffix.lower() == '.json':
                    return json.load(f)
                return yaml.safe_load(f) or {}
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise CredentialStoreError(
                f"Invalid credential file {self._path}: {e}") from e
        except OSError as e:
            raise CredentialStoreError(
                f"Error reading {self._path}: {e}") from e

    def _parse(self, data: Any) -> Tuple[Dict[str, str], Dict[str, str], Set[Tuple[str, str]]]:
        if not isinstance(data, dict):
            raise CredentialStoreError(
                f"Credential file {self._path} must contain a mapping")

        targets = data.get('targets') or {}
        if not isinstance(targets, dict):
            raise CredentialStoreError(
                f"'targets' in {self._path} must be a mapping")

        passwords: Dict[str, str] = {}
        host_keys: Dict[str, str] = {}
        acl: Set[Tuple[str, str]] = set()

        for target, entry in targets.items():
            target = str(target)
            if not isinstance(entry, dict):
                raise CredentialStoreError(
                    f"Entry for target {target!r} must be a mapping")

            if entry.get('password') is not None:
                passwords[target] = str(entry['password'])
            if entry.get('host_key'):
                host_keys[target] = str(entry['host_key'])

            authorized: List[Any] = entry.get('authorized_keys') or []
            if not isinstance(authorized, list):
                raise CredentialStoreError(
                    f"authorized_keys for target {target!r} must be a list")
            acl.update((str(fp), target) for fp in authorized)

        return passwords, host_keys, acl
