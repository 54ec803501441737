"""High-level workflows combining documents, restore points and asset logs."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

from .asset_paths import DEFAULT_MATERIAL_FALLBACK_DIR
from .document_cache import DocumentCache
from .errors import ParentNotFoundError
from .restore_points import (
    AssetCopyResult,
    RestorePoint,
    copy_assets_with_history,
    create_restore_point,
    list_restore_points,
    restore_from_point,
)
from .room_document import PropNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoomView:
    """Presentation snapshot of a room document."""

    room_path: Path
    prop_count: int
    roots: list[PropNode] = field(default_factory=list)


@dataclass(frozen=True)
class CopySubtreeResult:
    """Summary of a copy-subtree operation."""

    inserted_count: int
    assets: AssetCopyResult
    restore_point: RestorePoint
    target: RoomView
    restore_points: list[RestorePoint] = field(default_factory=list)


@dataclass(frozen=True)
class RestoreResult:
    """Summary of rolling a room back to a restore point."""

    target: RoomView
    restore_points: list[RestorePoint] = field(default_factory=list)


class RoomWorkspace:
    """Run mutating room operations one at a time against a shared cache.

    The workspace owns the :class:`DocumentCache` and invalidates it after
    every write, so the views it returns always reflect the file on disk.
    """

    def __init__(
        self,
        *,
        cache: DocumentCache | None = None,
        material_fallback_dir: str = DEFAULT_MATERIAL_FALLBACK_DIR,
    ) -> None:
        if cache is None:
            cache = DocumentCache(material_fallback_dir=material_fallback_dir)
        self.cache = cache
        self._lock = threading.RLock()

    def load_room(self, room_path: Path, *, expand_parents: bool = False) -> RoomView:
        document = self.cache.get(room_path)
        return RoomView(
            room_path=document.room_path,
            prop_count=document.count_records(),
            roots=document.snapshot(expand_parents),
        )

    def list_restore_points(self, room_path: Path) -> list[RestorePoint]:
        return list_restore_points(room_path)

    def collect_asset_paths(self, room_path: Path, prop_id: int) -> list[str]:
        return self.cache.get(room_path).collect_asset_paths(prop_id)

    def copy_subtree(
        self,
        source_room: Path,
        target_room: Path,
        source_prop_id: int,
        target_parent_id: int = 0,
    ) -> CopySubtreeResult:
        """Clone a prop subtree into another room together with its assets.

        The target room is backed up into a new restore point before it is
        modified. Assets missing from the source room are reported but do not
        abort the copy.

        Raises:
            RecordNotFoundError: If the source prop no longer exists.
            ParentNotFoundError: If the target parent no longer exists.
        """

        source_path = Path(source_room)
        target_path = Path(target_room)
        with self._lock:
            source_document = self.cache.get(source_path)
            target_document = self.cache.get(target_path)

            source_record = source_document.get_record(source_prop_id)
            if (
                target_parent_id
                and target_document.find_record(target_parent_id) is None
            ):
                raise ParentNotFoundError(target_parent_id)

            # Collect first: source and target may be the same document.
            asset_paths = source_document.collect_asset_paths(source_record.id)
            restore_point = create_restore_point(target_path)

            try:
                inserted = target_document.insert_subtree(
                    source_record, target_parent_id
                )
                assets = copy_assets_with_history(
                    asset_paths,
                    source_path.parent,
                    target_path.parent,
                    restore_point.file_path.parent,
                )
                if assets.asset_log is not None:
                    assets.asset_log.persist(restore_point.asset_log_path)
                target_document.save(target_path)
            finally:
                self.cache.invalidate(target_path)

        logger.info(
            "Copied %d props from '%s' into '%s' (restore point %d).",
            inserted,
            source_path,
            target_path,
            restore_point.index,
        )
        return CopySubtreeResult(
            inserted_count=inserted,
            assets=assets,
            restore_point=restore_point,
            target=self.load_room(target_path),
            restore_points=self.list_restore_points(target_path),
        )

    def restore_target(self, target_room: Path, restore_file: Path) -> RestoreResult:
        """Roll ``target_room`` and its assets back to ``restore_file``.

        Raises:
            RestorePointNotFoundError: If ``restore_file`` does not exist.
        """

        target_path = Path(target_room)
        with self._lock:
            try:
                restore_from_point(target_path, Path(restore_file))
            finally:
                self.cache.invalidate(target_path)

        return RestoreResult(
            target=self.load_room(target_path),
            restore_points=self.list_restore_points(target_path),
        )


__all__ = [
    "CopySubtreeResult",
    "RestoreResult",
    "RoomView",
    "RoomWorkspace",
]
