"""Cache of parsed room documents keyed by canonical path."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .asset_paths import DEFAULT_MATERIAL_FALLBACK_DIR
from .room_document import RoomDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _CachedDocument:
    document: RoomDocument
    mtime_ns: int


class DocumentCache:
    """Keep parsed documents until their file changes or is written.

    A cached parse is reused only while the file's modification time matches
    the one observed at load time. Callers that write a room file must call
    :meth:`invalidate` afterwards.
    """

    def __init__(
        self, *, material_fallback_dir: str = DEFAULT_MATERIAL_FALLBACK_DIR
    ) -> None:
        self._material_fallback_dir = material_fallback_dir
        self._entries: dict[Path, _CachedDocument] = {}

    @staticmethod
    def key_for(room_path: Path) -> Path:
        return Path(room_path).expanduser().resolve()

    def get(self, room_path: Path) -> RoomDocument:
        """Return the parsed document for ``room_path``, reloading if stale."""

        key = self.key_for(room_path)
        cached = self._entries.get(key)
        mtime_ns = key.stat().st_mtime_ns
        if cached is not None and cached.mtime_ns == mtime_ns:
            return cached.document

        if cached is not None:
            logger.debug("Room '%s' changed on disk; reloading.", key)
        document = RoomDocument.load(
            key, material_fallback_dir=self._material_fallback_dir
        )
        self._entries[key] = _CachedDocument(document=document, mtime_ns=mtime_ns)
        return document

    def invalidate(self, room_path: Path) -> None:
        self._entries.pop(self.key_for(room_path), None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, room_path: object) -> bool:
        if not isinstance(room_path, (str, Path)):
            return False
        return self.key_for(Path(room_path)) in self._entries

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["DocumentCache"]
