"""Command-line entry point for copying props between rooms."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterable, Sequence, TextIO

from roomgraft import (
    PropNode,
    RoomGraftError,
    RoomGraftSettings,
    RoomWorkspace,
    scan_rooms,
)

logger = logging.getLogger("roomgraft.cli")


def _write_tree(nodes: Iterable[PropNode], stream: TextIO, *, depth: int = 0) -> None:
    for node in nodes:
        label = f"{'  ' * depth}{node.display_name} [#{node.id}]"
        if node.prop_id:
            label += f" ({node.prop_id})"
        print(label, file=stream)
        _write_tree(node.children, stream, depth=depth + 1)


def _cmd_rooms(
    args: argparse.Namespace, settings: RoomGraftSettings, stream: TextIO
) -> int:
    root = args.ugc_root if args.ugc_root is not None else settings.ugc_root
    rooms = scan_rooms(root)
    if args.json:
        payload = [
            {
                "roomName": room.room_name,
                "folderName": room.folder_name,
                "roomPath": str(room.room_path),
                "backupFolderPath": str(room.backup_folder_path),
            }
            for room in rooms
        ]
        print(json.dumps(payload, indent=2, ensure_ascii=False), file=stream)
        return 0

    if not rooms:
        print(f"No rooms found under '{root}'.", file=stream)
        return 0
    for room in rooms:
        print(f"{room.room_name}\t{room.room_path}", file=stream)
    return 0


def _cmd_tree(
    args: argparse.Namespace, workspace: RoomWorkspace, stream: TextIO
) -> int:
    view = workspace.load_room(args.room, expand_parents=args.expand)
    if args.json:
        payload = {
            "roomPath": str(view.room_path),
            "propCount": view.prop_count,
            "roots": [node.to_dict() for node in view.roots],
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False), file=stream)
        return 0

    print(f"{view.room_path} ({view.prop_count} props)", file=stream)
    _write_tree(view.roots, stream)
    return 0


def _cmd_assets(
    args: argparse.Namespace, workspace: RoomWorkspace, stream: TextIO
) -> int:
    for path in workspace.collect_asset_paths(args.room, args.prop_id):
        print(path, file=stream)
    return 0


def _cmd_restore_points(
    args: argparse.Namespace, workspace: RoomWorkspace, stream: TextIO
) -> int:
    points = workspace.list_restore_points(args.room)
    if not points:
        print("No restore points.", file=stream)
        return 0
    for point in points:
        marker = " +assets" if point.asset_log_path.exists() else ""
        print(
            f"{point.index}\t{point.timestamp.isoformat()}\t"
            f"{point.display_name}{marker}",
            file=stream,
        )
    return 0


def _cmd_copy(
    args: argparse.Namespace, workspace: RoomWorkspace, stream: TextIO
) -> int:
    result = workspace.copy_subtree(
        args.source_room,
        args.target_room,
        args.prop_id,
        args.parent,
    )
    assets = result.assets
    print(
        f"Inserted {result.inserted_count} props into '{args.target_room}' "
        f"(restore point {result.restore_point.index}).",
        file=stream,
    )
    print(
        f"Copied {assets.copied} of {assets.total_requested} assets.",
        file=stream,
    )
    for missing in assets.missing:
        print(f"  missing: {missing}", file=stream)
    return 0


def _cmd_restore(
    args: argparse.Namespace, workspace: RoomWorkspace, stream: TextIO
) -> int:
    result = workspace.restore_target(args.room, args.restore_file)
    print(
        f"Restored '{args.room}' from '{Path(args.restore_file).name}' "
        f"({result.target.prop_count} props).",
        file=stream,
    )
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Copy prop subtrees between rooms with undoable restore points.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    rooms = subparsers.add_parser("rooms", help="List rooms under the UGC folder.")
    rooms.add_argument(
        "--ugc-root",
        type=Path,
        help="Folder containing room folders. Defaults to ROOMGRAFT_UGC_ROOT.",
    )
    rooms.add_argument("--json", action="store_true", help="Emit JSON output.")

    tree = subparsers.add_parser("tree", help="Print the prop tree of a room.")
    tree.add_argument("room", type=Path, help="Path to a Room.room file.")
    tree.add_argument(
        "--expand", action="store_true", help="Mark parent nodes as expanded."
    )
    tree.add_argument("--json", action="store_true", help="Emit JSON output.")

    assets = subparsers.add_parser(
        "assets", help="List the asset files a prop subtree depends on."
    )
    assets.add_argument("room", type=Path, help="Path to a Room.room file.")
    assets.add_argument("prop_id", type=int, help="Root prop id of the subtree.")

    points = subparsers.add_parser(
        "restore-points", help="List restore points of a room, newest first."
    )
    points.add_argument("room", type=Path, help="Path to a Room.room file.")

    copy = subparsers.add_parser(
        "copy", help="Copy a prop subtree and its assets into another room."
    )
    copy.add_argument("source_room", type=Path, help="Room to copy from.")
    copy.add_argument("prop_id", type=int, help="Root prop id of the subtree.")
    copy.add_argument("target_room", type=Path, help="Room to copy into.")
    copy.add_argument(
        "--parent",
        type=int,
        default=0,
        help="Prop id to insert beneath in the target room (default: root).",
    )

    restore = subparsers.add_parser(
        "restore", help="Roll a room and its assets back to a restore point."
    )
    restore.add_argument("room", type=Path, help="Path to a Room.room file.")
    restore.add_argument("restore_file", type=Path, help="Restore point file.")
    return parser


def main(argv: Sequence[str] | None = None, *, stream: TextIO | None = None) -> int:
    """Run the command-line interface and return its exit status."""

    output = stream if stream is not None else sys.stdout
    args = _build_parser().parse_args(argv)

    try:
        settings = RoomGraftSettings.from_env()
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(levelname)s %(name)s: %(message)s",
    )

    workspace = RoomWorkspace(material_fallback_dir=settings.material_fallback_dir)
    try:
        if args.command == "rooms":
            return _cmd_rooms(args, settings, output)
        handlers = {
            "tree": _cmd_tree,
            "assets": _cmd_assets,
            "restore-points": _cmd_restore_points,
            "copy": _cmd_copy,
            "restore": _cmd_restore,
        }
        return handlers[args.command](args, workspace, output)
    except (RoomGraftError, OSError) as exc:
        logger.debug("Command %s failed.", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - module executable
    raise SystemExit(main())
