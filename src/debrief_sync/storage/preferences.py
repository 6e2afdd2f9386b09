"""
Local persistent key/value storage.

Holds the current user's identity, per-organization unlock state and the
config-record cache in a single JSON file. Missing or corrupt files (and
values of the wrong type) read as the caller's default.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

import aiofiles

from ..utils.errors import StorageError
from ..utils.logging import get_logger


logger = get_logger("debrief-sync.storage")

IDENTITY_KEY = "identity"
UNLOCKED_PREFIX = "unlocked:"
CONFIG_CACHE_PREFIX = "config-cache:"


class PreferenceStore:
    """JSON-file backed preferences."""

    def __init__(self, path: Union[Path, str]):
        self.path = Path(path)
        self._data: Optional[Dict[str, Any]] = None
        self._lock = asyncio.Lock()

    async def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data
        data: Dict[str, Any] = {}
        if self.path.exists():
            try:
                async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                    content = await f.read()
                parsed = json.loads(content) if content.strip() else {}
                if isinstance(parsed, dict):
                    data = parsed
                else:
                    logger.warning("preferences_not_an_object", path=str(self.path))
            except (OSError, ValueError) as e:
                logger.warning("preferences_unreadable", path=str(self.path), error=str(e))
        self._data = data
        return data

    async def get(self, key: str, default: Any = None, expected_type: Optional[type] = None) -> Any:
        """Read a value; wrong-typed values read as the default."""
        async with self._lock:
            data = await self._load()
        value = data.get(key, default)
        if expected_type is not None and value is not default and not isinstance(value, expected_type):
            logger.debug("preference_type_mismatch", key=key, expected=expected_type.__name__)
            return default
        return value

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            data = await self._load()
            data[key] = value
            await self._persist(data)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = await self._load()
            if data.pop(key, None) is not None:
                await self._persist(data)

    async def _persist(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_file = self.path.with_suffix(".tmp")
            async with aiofiles.open(temp_file, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2, ensure_ascii=False))
            temp_file.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to persist preferences: {e}", cause=e) from e

    # Convenience accessors

    async def get_identity(self) -> Optional[str]:
        name = await self.get(IDENTITY_KEY, "", str)
        return name.strip() or None

    async def set_identity(self, name: str) -> None:
        await self.set(IDENTITY_KEY, name.strip())

    async def is_unlocked(self, organization: str) -> bool:
        return bool(await self.get(f"{UNLOCKED_PREFIX}{organization}", False, bool))

    async def set_unlocked(self, organization: str, unlocked: bool = True) -> None:
        await self.set(f"{UNLOCKED_PREFIX}{organization}", unlocked)

    async def get_config_cache(self, organization: str) -> Dict[str, Any]:
        return await self.get(f"{CONFIG_CACHE_PREFIX}{organization}", {}, dict)

    async def set_config_cache(self, organization: str, name: str, value: Any) -> None:
        cache = dict(await self.get_config_cache(organization))
        cache[name] = value
        await self.set(f"{CONFIG_CACHE_PREFIX}{organization}", cache)
