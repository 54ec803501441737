"""Copy prop subtrees between room files with undoable asset side effects."""

from .asset_log import (
    ApplyDirection,
    AssetLogEntry,
    AssetLogSegment,
    AssetOperationLog,
)
from .asset_paths import classify_asset_reference, looks_like_asset_path
from .document_cache import DocumentCache
from .errors import (
    AssetLogValidationError,
    DocumentParseError,
    ParentNotFoundError,
    RecordNotFoundError,
    RestorePointCollisionError,
    RestorePointNotFoundError,
    RoomGraftError,
)
from .orchestrator import CopySubtreeResult, RestoreResult, RoomView, RoomWorkspace
from .restore_points import (
    AssetCopyResult,
    RestorePoint,
    copy_assets_with_history,
    create_restore_point,
    list_restore_points,
    restore_from_point,
)
from .room_document import PropNode, PropRecord, RoomDocument
from .room_scanner import RoomInfo, default_ugc_root, scan_rooms
from .settings import RoomGraftSettings

__all__ = [
    "ApplyDirection",
    "AssetCopyResult",
    "AssetLogEntry",
    "AssetLogSegment",
    "AssetLogValidationError",
    "AssetOperationLog",
    "CopySubtreeResult",
    "DocumentCache",
    "DocumentParseError",
    "ParentNotFoundError",
    "PropNode",
    "PropRecord",
    "RecordNotFoundError",
    "RestorePoint",
    "RestorePointCollisionError",
    "RestorePointNotFoundError",
    "RestoreResult",
    "RoomDocument",
    "RoomGraftError",
    "RoomGraftSettings",
    "RoomInfo",
    "RoomView",
    "RoomWorkspace",
    "classify_asset_reference",
    "copy_assets_with_history",
    "create_restore_point",
    "default_ugc_root",
    "list_restore_points",
    "looks_like_asset_path",
    "restore_from_point",
    "scan_rooms",
]
