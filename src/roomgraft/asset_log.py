"""Reversible record of asset file mutations backed by a snapshot store."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

from pydantic import BaseModel, Field, ValidationError, field_validator

from .asset_paths import normalize_asset_path
from .errors import AssetLogValidationError

logger = logging.getLogger(__name__)

ASSET_HISTORY_FOLDER_NAME = "AssetHistory"


class ApplyDirection(str, Enum):
    """Direction in which a log is replayed against a directory."""

    REDO = "redo"
    UNDO = "undo"


@dataclass(frozen=True)
class AssetLogEntry:
    """A single file mutation described by before/after snapshots.

    * only ``after`` present: the file was created;
    * only ``before`` present: the file was deleted;
    * both present: the file was overwritten.
    """

    relative_asset_path: str
    before_snapshot_path: Path | None = None
    after_snapshot_path: Path | None = None

    def __post_init__(self) -> None:
        if self.before_snapshot_path is None and self.after_snapshot_path is None:
            raise AssetLogValidationError(
                f"Asset log entry for '{self.relative_asset_path}' has no snapshots."
            )
        object.__setattr__(
            self,
            "relative_asset_path",
            _normalise_relative_path(self.relative_asset_path),
        )

    @property
    def is_create(self) -> bool:
        return self.before_snapshot_path is None

    @property
    def is_delete(self) -> bool:
        return self.after_snapshot_path is None

    @property
    def is_overwrite(self) -> bool:
        return not self.is_create and not self.is_delete

    def inverted(self) -> "AssetLogEntry":
        """Return the entry that undoes this mutation."""

        return AssetLogEntry(
            relative_asset_path=self.relative_asset_path,
            before_snapshot_path=self.after_snapshot_path,
            after_snapshot_path=self.before_snapshot_path,
        )


@dataclass
class AssetLogSegment:
    """An ordered group of entries recorded as one step of an operation."""

    entries: list[AssetLogEntry] = field(default_factory=list)


class _EntryModel(BaseModel):
    relative_asset_path: str = Field(alias="relativeAssetPath")
    before_snapshot_path: str = Field(default="", alias="beforeSnapshotPath")
    after_snapshot_path: str = Field(default="", alias="afterSnapshotPath")

    @field_validator("before_snapshot_path", "after_snapshot_path", mode="before")
    @classmethod
    def _normalise_missing_snapshot(cls, value: Any) -> Any:
        return "" if value is None else value


class _SegmentModel(BaseModel):
    entries: list[_EntryModel] = Field(default_factory=list)


class AssetLogFileModel(BaseModel):
    """On-disk representation of an :class:`AssetOperationLog`."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    created_utc: str = Field(default_factory=lambda: _utc_now(), alias="createdUtc")
    segments: list[_SegmentModel] = Field(default_factory=list)


class AssetOperationLog:
    """Segments of asset mutations that can be inverted, merged and replayed.

    Snapshot copies live in ``<backup_folder>/AssetHistory`` under random
    names; the persisted log refers to them relative to ``backup_folder`` so
    the folder can be moved as a whole.
    """

    def __init__(
        self,
        backup_folder: Path,
        *,
        log_id: str | None = None,
        created_utc: str | None = None,
    ) -> None:
        self.backup_folder = Path(backup_folder)
        self.id = log_id or uuid.uuid4().hex
        self.created_utc = created_utc or _utc_now()
        self.segments: list[AssetLogSegment] = []

    @property
    def history_folder(self) -> Path:
        return self.backup_folder / ASSET_HISTORY_FOLDER_NAME

    def __iter__(self) -> Iterator[AssetLogEntry]:
        for segment in self.segments:
            yield from segment.entries

    def begin_segment(self) -> AssetLogSegment:
        """Start a new segment; subsequent entries are appended to it."""

        segment = AssetLogSegment()
        self.segments.append(segment)
        return segment

    def is_empty(self) -> bool:
        return all(not segment.entries for segment in self.segments)

    def add_entry(
        self,
        relative_path: str,
        before_source: Path | None = None,
        after_source: Path | None = None,
    ) -> AssetLogEntry:
        """Snapshot the given files and record a mutation of ``relative_path``.

        ``after_source`` may only be omitted for a deletion, in which case
        ``before_source`` is required.

        Raises:
            AssetLogValidationError: If neither source is provided.
            OSError: If a snapshot cannot be written.
        """

        if before_source is None and after_source is None:
            raise AssetLogValidationError(
                f"An after snapshot is required to log '{relative_path}'."
            )

        entry = AssetLogEntry(
            relative_asset_path=relative_path,
            before_snapshot_path=(
                self._save_snapshot(Path(before_source))
                if before_source is not None
                else None
            ),
            after_snapshot_path=(
                self._save_snapshot(Path(after_source))
                if after_source is not None
                else None
            ),
        )
        if not self.segments:
            self.begin_segment()
        self.segments[-1].entries.append(entry)
        return entry

    def remove_entry(self, entry: AssetLogEntry) -> None:
        """Drop ``entry`` and delete the snapshots it owns."""

        for segment in self.segments:
            for index, candidate in enumerate(segment.entries):
                if candidate is entry:
                    del segment.entries[index]
                    for snapshot in (
                        entry.before_snapshot_path,
                        entry.after_snapshot_path,
                    ):
                        if snapshot is not None:
                            _remove_file(Path(snapshot))
                    return

    def _save_snapshot(self, source: Path) -> Path:
        self.history_folder.mkdir(parents=True, exist_ok=True)
        destination = self.history_folder / f"{uuid.uuid4().hex}{source.suffix}"
        shutil.copy2(source, destination)
        return destination

    def create_inverse(self) -> "AssetOperationLog":
        """Return a new log that undoes this one when applied forwards."""

        inverse = AssetOperationLog(self.backup_folder)
        for segment in reversed(self.segments):
            inverse.segments.append(
                AssetLogSegment(
                    [entry.inverted() for entry in reversed(segment.entries)]
                )
            )
        return inverse

    def append(self, other: "AssetOperationLog") -> None:
        """Copy the segments of ``other`` onto the end of this log."""

        for segment in other.segments:
            self.segments.append(AssetLogSegment(list(segment.entries)))

    def apply(
        self, target_root: Path, direction: ApplyDirection = ApplyDirection.REDO
    ) -> None:
        """Replay the log against ``target_root``.

        ``REDO`` walks segments and entries in recorded order writing the
        after state; ``UNDO`` walks both in reverse writing the before state.
        """

        direction = ApplyDirection(direction)
        root = Path(target_root)
        segments = (
            self.segments
            if direction is ApplyDirection.REDO
            else list(reversed(self.segments))
        )
        for segment in segments:
            entries = (
                segment.entries
                if direction is ApplyDirection.REDO
                else list(reversed(segment.entries))
            )
            for entry in entries:
                self._apply_entry(entry, root, direction)

    def _apply_entry(
        self, entry: AssetLogEntry, root: Path, direction: ApplyDirection
    ) -> None:
        target = root / entry.relative_asset_path
        snapshot = (
            entry.after_snapshot_path
            if direction is ApplyDirection.REDO
            else entry.before_snapshot_path
        )
        if snapshot is None:
            logger.debug("Removing '%s' (%s).", target, direction.value)
            _remove_file(target)
            _remove_empty_parents(target.parent, root)
            return

        logger.debug(
            "Restoring '%s' from '%s' (%s).", target, snapshot, direction.value
        )
        _copy_snapshot(snapshot, target)

    def to_model(self) -> AssetLogFileModel:
        return AssetLogFileModel(
            id=self.id,
            createdUtc=self.created_utc,
            segments=[
                _SegmentModel(
                    entries=[
                        _EntryModel(
                            relativeAssetPath=entry.relative_asset_path,
                            beforeSnapshotPath=self._relative_snapshot(
                                entry.before_snapshot_path
                            ),
                            afterSnapshotPath=self._relative_snapshot(
                                entry.after_snapshot_path
                            ),
                        )
                        for entry in segment.entries
                    ]
                )
                for segment in self.segments
            ],
        )

    def persist(self, path: Path) -> None:
        """Write the log as JSON to ``path``."""

        payload = self.to_model().model_dump_json(indent=2, by_alias=True)
        Path(path).write_text(payload + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path, backup_folder: Path) -> "AssetOperationLog | None":
        """Read a persisted log, returning ``None`` if it is missing or malformed."""

        log_path = Path(path)
        try:
            text = log_path.read_text(encoding="utf-8-sig")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read asset log '%s': %s", log_path, exc)
            return None

        try:
            model = AssetLogFileModel.model_validate_json(text)
        except ValidationError as exc:
            logger.warning("Ignoring malformed asset log '%s': %s", log_path, exc)
            return None

        folder = Path(backup_folder)
        log = cls(folder, log_id=model.id, created_utc=model.created_utc)
        try:
            for segment_model in model.segments:
                log.segments.append(
                    AssetLogSegment(
                        [
                            AssetLogEntry(
                                relative_asset_path=entry.relative_asset_path,
                                before_snapshot_path=_resolve_snapshot(
                                    folder, entry.before_snapshot_path
                                ),
                                after_snapshot_path=_resolve_snapshot(
                                    folder, entry.after_snapshot_path
                                ),
                            )
                            for entry in segment_model.entries
                        ]
                    )
                )
        except AssetLogValidationError as exc:
            logger.warning("Ignoring malformed asset log '%s': %s", log_path, exc)
            return None
        return log

    def _relative_snapshot(self, snapshot: Path | None) -> str:
        if snapshot is None:
            return ""
        return Path(os.path.relpath(snapshot, self.backup_folder)).as_posix()


def _normalise_relative_path(value: str) -> str:
    return normalize_asset_path(str(value)).strip("/")


def _resolve_snapshot(backup_folder: Path, relative: str) -> Path | None:
    if not relative:
        return None
    return (backup_folder / relative).resolve()


def _utc_now() -> str:
    now = datetime.now(timezone.utc).replace(microsecond=0)
    return now.isoformat().replace("+00:00", "Z")


def _make_writable(path: Path) -> None:
    try:
        mode = path.stat().st_mode
        if not mode & stat.S_IWUSR:
            path.chmod(mode | stat.S_IWUSR)
    except OSError as exc:
        logger.debug("Could not clear read-only flag on '%s': %s", path, exc)


def _copy_snapshot(snapshot: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists():
        _make_writable(target)
    shutil.copy2(snapshot, target)


def _remove_file(path: Path) -> None:
    if not path.exists():
        return
    _make_writable(path)
    path.unlink(missing_ok=True)


def _remove_empty_parents(start: Path, stop: Path) -> None:
    """Remove empty directories from ``start`` upwards, stopping at ``stop``."""

    boundary = stop.resolve()
    current = start.resolve()
    while current != boundary and current.is_relative_to(boundary):
        try:
            current.rmdir()
        except OSError:
            break
        current = current.parent


__all__ = [
    "ASSET_HISTORY_FOLDER_NAME",
    "ApplyDirection",
    "AssetLogEntry",
    "AssetLogFileModel",
    "AssetLogSegment",
    "AssetOperationLog",
]
