"""Discover room folders inside a user-generated-content directory."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path

from .restore_points import BACKUP_FOLDER_NAME

ROOM_FILE_NAME = "Room.room"
UNNAMED_ROOM = "(Unnamed room)"

_NAME_SNIFF_BYTES = 16 * 1024
_NAME_PATTERN = re.compile(r'"name"\s*:\s*"((?:[^"\\]|\\.)*)"', flags=re.IGNORECASE)


@dataclass(frozen=True)
class RoomInfo:
    """A room folder found under the UGC root."""

    folder_path: Path
    room_path: Path
    backup_folder_path: Path
    room_name: str
    folder_name: str


def default_ugc_root() -> Path:
    """Return the directory where the game stores user-created rooms."""

    return (
        Path.home()
        / "AppData"
        / "LocalLow"
        / "Pine Studio"
        / "Escape Simulator 2"
        / "UGC"
    )


def read_room_name(room_path: Path) -> str | None:
    """Return the first ``"name"`` field of a room without parsing the file.

    Only the beginning of the file is inspected, so large rooms can be
    listed quickly. ``None`` is returned when no name is found.
    """

    try:
        with Path(room_path).open("rb") as stream:
            head = stream.read(_NAME_SNIFF_BYTES)
    except OSError:
        return None

    text = head.decode("utf-8", errors="ignore").lstrip("\ufeff")
    match = _NAME_PATTERN.search(text)
    if match is None:
        return None
    try:
        return json.loads(f'"{match.group(1)}"')
    except ValueError:
        return match.group(1)


def scan_rooms(ugc_root: Path | None = None) -> list[RoomInfo]:
    """Return every room folder beneath ``ugc_root`` sorted by room name."""

    root = Path(ugc_root) if ugc_root is not None else default_ugc_root()
    if not root.is_dir():
        return []

    rooms: list[RoomInfo] = []
    for folder in root.iterdir():
        room_path = folder / ROOM_FILE_NAME
        if not folder.is_dir() or not room_path.is_file():
            continue
        name = (read_room_name(room_path) or "").strip() or UNNAMED_ROOM
        rooms.append(
            RoomInfo(
                folder_path=folder,
                room_path=room_path,
                backup_folder_path=folder / BACKUP_FOLDER_NAME,
                room_name=name,
                folder_name=folder.name,
            )
        )

    rooms.sort(key=lambda room: (room.room_name.casefold(), room.folder_name))
    return rooms


__all__ = [
    "ROOM_FILE_NAME",
    "RoomInfo",
    "default_ugc_root",
    "read_room_name",
    "scan_rooms",
]
