"""Numbered restore points for room files and their asset side effects.

Every mutating operation on ``<room folder>/Room.room`` is preceded by a copy
of the room file to ``<room folder>/Backups/Room.roomrst<N>``. When the
operation also copies asset files, the resulting :class:`AssetOperationLog` is
stored next to the backup as ``Room.roomrst<N>.assets.json``. Restoring point
``N`` copies the backup over the room file and replays the inverse of every
asset log recorded at index ``N`` or later, newest first.
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Sequence

from .asset_log import ApplyDirection, AssetOperationLog
from .asset_paths import normalize_asset_path
from .errors import RestorePointCollisionError, RestorePointNotFoundError

logger = logging.getLogger(__name__)

BACKUP_FOLDER_NAME = "Backups"
RESTORE_POINT_PREFIX = "Room.roomrst"
ASSET_LOG_SUFFIX = ".assets.json"

_INDEX_PATTERN = re.compile(
    rf"^{re.escape(RESTORE_POINT_PREFIX)}(\d+)", flags=re.IGNORECASE
)


@dataclass(frozen=True)
class RestorePoint:
    """A numbered backup of a room file."""

    file_path: Path
    display_name: str
    timestamp: datetime
    index: int

    @property
    def asset_log_path(self) -> Path:
        return asset_log_path_for(self.file_path)

    def to_dict(self) -> dict[str, object]:
        return {
            "filePath": str(self.file_path),
            "displayName": self.display_name,
            "timestamp": self.timestamp.isoformat(),
            "index": self.index,
        }


@dataclass(frozen=True)
class AssetCopyResult:
    """Outcome of copying a batch of assets between room folders."""

    copied: int
    total_requested: int
    missing: list[str] = field(default_factory=list)
    asset_log: AssetOperationLog | None = None

    @property
    def skipped(self) -> int:
        return max(0, self.total_requested - self.copied - len(self.missing))


def backup_folder_for(room_path: Path) -> Path:
    """Return the folder holding restore points for ``room_path``."""

    return Path(room_path).parent / BACKUP_FOLDER_NAME


def asset_log_path_for(restore_file: Path) -> Path:
    restore_file = Path(restore_file)
    return restore_file.with_name(restore_file.name + ASSET_LOG_SUFFIX)


def parse_restore_index(file_name: str) -> int | None:
    """Return the restore index encoded in ``file_name`` (sidecars included)."""

    name = Path(file_name).name
    lowered = name.lower()
    if lowered.endswith(".json"):
        name = name[: -len(".json")]
        lowered = lowered[: -len(".json")]
    if lowered.endswith(".assets"):
        name = name[: -len(".assets")]

    match = _INDEX_PATTERN.match(name)
    if match is None:
        return None
    return int(match.group(1))


def is_asset_log_file(file_name: str) -> bool:
    return file_name.lower().endswith(ASSET_LOG_SUFFIX)


def next_restore_index(backup_folder: Path) -> int:
    """Return one more than the highest restore index in ``backup_folder``."""

    folder = Path(backup_folder)
    if not folder.is_dir():
        return 1

    highest = 0
    for candidate in folder.iterdir():
        index = parse_restore_index(candidate.name)
        if index is not None:
            highest = max(highest, index)
    return highest + 1


def restore_point_path(backup_folder: Path, index: int) -> Path:
    return Path(backup_folder) / f"{RESTORE_POINT_PREFIX}{index}"


def create_restore_point(room_path: Path) -> RestorePoint:
    """Copy ``room_path`` verbatim into a new, strictly newer restore point.

    Raises:
        RestorePointCollisionError: If the allocated path already exists.
        OSError: If the room file cannot be copied.
    """

    room = Path(room_path)
    folder = backup_folder_for(room)
    index = next_restore_index(folder)
    backup_path = restore_point_path(folder, index)
    if backup_path.exists():
        raise RestorePointCollisionError(
            f"Restore point already exists: '{backup_path}'."
        )

    folder.mkdir(parents=True, exist_ok=True)
    shutil.copy2(room, backup_path)
    logger.info("Created restore point %d for '%s'.", index, room)
    return RestorePoint(
        file_path=backup_path,
        display_name=backup_path.name,
        timestamp=_creation_time(backup_path),
        index=index,
    )


def list_restore_points(room_path: Path) -> list[RestorePoint]:
    """Return the restore points of ``room_path``, newest first."""

    folder = backup_folder_for(room_path)
    if not folder.is_dir():
        return []

    points: list[RestorePoint] = []
    for candidate in folder.iterdir():
        if not candidate.is_file() or is_asset_log_file(candidate.name):
            continue
        index = parse_restore_index(candidate.name)
        if not index:
            continue
        try:
            timestamp = _creation_time(candidate)
        except OSError as exc:
            logger.warning(
                "Skipping unreadable restore point '%s': %s", candidate, exc
            )
            continue
        points.append(
            RestorePoint(
                file_path=candidate,
                display_name=candidate.name,
                timestamp=timestamp,
                index=index,
            )
        )

    points.sort(key=lambda point: (point.timestamp, point.index), reverse=True)
    return points


def copy_assets_with_history(
    asset_paths: Sequence[str],
    source_root: Path,
    target_root: Path,
    backup_folder: Path,
) -> AssetCopyResult:
    """Copy ``asset_paths`` from ``source_root`` to ``target_root`` with history.

    Missing sources and individual copy failures are reported in
    :attr:`AssetCopyResult.missing` without aborting the batch. Assets whose
    source and target are the same file count as skipped. The returned log is
    ``None`` when nothing was copied.
    """

    source = Path(source_root)
    target = Path(target_root)
    missing: list[str] = []
    copied = 0
    log = AssetOperationLog(Path(backup_folder))

    for original in asset_paths:
        relative = normalize_asset_path(original)
        source_path = source / relative
        target_path = target / relative

        if not source_path.is_file():
            logger.warning("Asset '%s' is missing from '%s'.", relative, source)
            missing.append(relative)
            continue

        if target_path.is_file() and target_path.samefile(source_path):
            logger.debug("Asset '%s' is already in place; skipping.", relative)
            continue

        entry = None
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            before = target_path if target_path.is_file() else None
            entry = log.add_entry(relative, before, source_path)
            shutil.copy2(source_path, target_path)
        except OSError as exc:
            logger.warning("Failed to copy asset '%s': %s", relative, exc)
            if entry is not None:
                log.remove_entry(entry)
            missing.append(relative)
            continue
        copied += 1

    logger.info(
        "Copied %d of %d assets into '%s' (%d missing).",
        copied,
        len(asset_paths),
        target,
        len(missing),
    )
    return AssetCopyResult(
        copied=copied,
        total_requested=len(asset_paths),
        missing=missing,
        asset_log=None if log.is_empty() else log,
    )


def load_asset_logs_newer_than(
    backup_folder: Path, min_index: int
) -> list[tuple[int, AssetOperationLog]]:
    """Load every non-empty sidecar log whose index is above ``min_index``.

    The result is ordered by index, newest first.
    """

    folder = Path(backup_folder)
    if not folder.is_dir():
        return []

    logs: list[tuple[int, AssetOperationLog]] = []
    for candidate in folder.iterdir():
        if not is_asset_log_file(candidate.name):
            continue
        index = parse_restore_index(candidate.name)
        if index is None or index <= min_index:
            continue
        log = AssetOperationLog.load(candidate, folder)
        if log is None or log.is_empty():
            continue
        logs.append((index, log))

    logs.sort(key=lambda item: item[0], reverse=True)
    return logs


def combine_inverse_logs(
    logs: Iterable[tuple[int, AssetOperationLog]],
) -> AssetOperationLog | None:
    """Concatenate the inverses of ``logs`` in the order given."""

    combined: AssetOperationLog | None = None
    for _, log in logs:
        if log.is_empty():
            continue
        if combined is None:
            combined = AssetOperationLog(log.backup_folder)
        combined.append(log.create_inverse())
    return combined


def restore_from_point(room_path: Path, restore_file: Path) -> None:
    """Roll ``room_path`` and its assets back to ``restore_file``.

    Raises:
        RestorePointNotFoundError: If ``restore_file`` does not exist.
    """

    room = Path(room_path)
    backup = Path(restore_file)
    if not backup.is_file():
        raise RestorePointNotFoundError(backup)

    shutil.copyfile(backup, room)

    index = parse_restore_index(backup.name) or 0
    logs = load_asset_logs_newer_than(backup_folder_for(room), index - 1)
    inverse = combine_inverse_logs(logs)
    if inverse is not None and not inverse.is_empty():
        inverse.apply(room.parent, ApplyDirection.REDO)

    logger.info(
        "Restored '%s' from '%s' (%d asset logs reverted).",
        room,
        backup.name,
        len(logs),
    )


def _creation_time(path: Path) -> datetime:
    stat_result = path.stat()
    created = getattr(stat_result, "st_birthtime", None) or stat_result.st_ctime
    return datetime.fromtimestamp(created, tz=timezone.utc)


__all__ = [
    "ASSET_LOG_SUFFIX",
    "AssetCopyResult",
    "BACKUP_FOLDER_NAME",
    "RESTORE_POINT_PREFIX",
    "RestorePoint",
    "asset_log_path_for",
    "backup_folder_for",
    "combine_inverse_logs",
    "copy_assets_with_history",
    "create_restore_point",
    "is_asset_log_file",
    "list_restore_points",
    "load_asset_logs_newer_than",
    "next_restore_index",
    "parse_restore_index",
    "restore_from_point",
    "restore_point_path",
]
