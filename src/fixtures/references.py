"""Symbolic references between records of one load run."""

import logging
from collections.abc import KeysView
from typing import Any

from src.fixtures.errors import DuplicateReferenceError, ReferenceResolutionError

logger = logging.getLogger(__name__)


class ReferenceRegistry:
    """Maps reference keys (prefix + identifier) to record handles.

    Entries are write-once. Registering a key again with the same handle
    is a no-op; with a different handle it raises DuplicateReferenceError.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}

    def register(self, key: str, handle: Any) -> None:
        if key in self._entries:
            if self._entries[key] is handle:
                return
            raise DuplicateReferenceError(key)
        self._entries[key] = handle
        logger.debug("Registered reference %s", key)

    def lookup(self, key: str) -> Any:
        """Return the handle registered under ``key``.

        Raises:
            ReferenceResolutionError: If nothing is registered under the key.
        """
        try:
            return self._entries[key]
        except KeyError:
            raise ReferenceResolutionError(key) from None

    def has(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> KeysView[str]:
        return self._entries.keys()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
