"""Heuristics for recognising asset references inside prop payloads."""

from __future__ import annotations

import posixpath
from pathlib import Path, PurePosixPath

from .payload import JsonValue

KNOWN_ASSET_EXTENSIONS = frozenset(
    {
        "gltf",
        "glb",
        "png",
        "jpg",
        "jpeg",
        "bmp",
        "tga",
        "tif",
        "tiff",
        "dds",
        "exr",
        "hdr",
        "wav",
        "mp3",
        "ogg",
        "flac",
        "es2mat",
        "json",
        "mtl",
        "obj",
        "fbx",
    }
)

# Identifier-only fields; nothing nested beneath them is an asset reference.
IGNORED_FIELDS = frozenset({"propid", "sourceprefabid", "sourcematerialpath"})

SCRIPT_FIELD = "scriptlocation"
SCRIPT_EXTENSION = ".lua"
MATERIAL_EXTENSION = ".es2mat"
DEFAULT_MATERIAL_FALLBACK_DIR = "_CustomModels"

_MAX_EXTENSION_LENGTH = 8


def normalize_asset_path(value: str) -> str:
    """Trim ``value``, drop leading separators and use forward slashes."""

    return value.strip().lstrip("/\\").replace("\\", "/")


def contains_separator(value: str) -> bool:
    return "/" in value or "\\" in value


def is_ignored_field(field_name: str | None) -> bool:
    """Return ``True`` when ``field_name`` only ever holds identifiers."""

    return field_name is not None and field_name.lower() in IGNORED_FIELDS


def is_material_file(path: str) -> bool:
    return path.lower().endswith(MATERIAL_EXTENSION)


def looks_like_asset_path(value: str) -> bool:
    """Return ``True`` when ``value`` resembles a relative asset file path.

    A candidate needs a short, non-numeric extension. Values containing a
    path separator are accepted with any such extension; bare file names must
    use one of :data:`KNOWN_ASSET_EXTENSIONS`.
    """

    trimmed = value.strip()
    if not trimmed:
        return False

    _, extension = posixpath.splitext(trimmed.replace("\\", "/"))
    if len(extension) <= 1 or len(extension) > _MAX_EXTENSION_LENGTH:
        return False
    if extension[1:].isdigit():
        return False

    if contains_separator(trimmed):
        return True
    return extension[1:].lower() in KNOWN_ASSET_EXTENSIONS


def classify_asset_reference(
    field_name: str | None, value: JsonValue, ignored: bool
) -> str | None:
    """Return the normalised asset path referenced by a scalar payload field.

    Args:
        field_name: Name of the field holding ``value`` (``None`` for values
            nested directly in a top-level list).
        value: The scalar payload value.
        ignored: ``True`` when the field or one of its ancestors is listed in
            :data:`IGNORED_FIELDS`.

    Returns:
        The normalised relative path, or ``None`` if ``value`` is not an asset
        reference.
    """

    if ignored or is_ignored_field(field_name) or not isinstance(value, str):
        return None

    if field_name is not None and field_name.lower() == SCRIPT_FIELD:
        if not value.strip():
            return None
        if not value.lower().endswith(SCRIPT_EXTENSION):
            value += SCRIPT_EXTENSION
        return normalize_asset_path(value)

    if looks_like_asset_path(value):
        return normalize_asset_path(value)
    return None


def collect_payload_asset_paths(
    node: JsonValue,
    sink: dict[str, None],
    *,
    ignored: bool = False,
    field_name: str | None = None,
) -> None:
    """Walk ``node`` recursively and add every asset reference to ``sink``.

    ``sink`` is used as an insertion-ordered set. A ``value`` wrapper keeps
    the name of the field it wraps, so ``{"scriptLocation": {"value": ...}}``
    is treated like ``{"scriptLocation": ...}``.
    """

    if isinstance(node, dict):
        for key, child in node.items():
            collect_payload_asset_paths(
                child,
                sink,
                ignored=ignored or is_ignored_field(key),
                field_name=field_name if key == "value" and field_name else key,
            )
    elif isinstance(node, list):
        for child in node:
            collect_payload_asset_paths(
                child, sink, ignored=ignored, field_name=field_name
            )
    else:
        reference = classify_asset_reference(field_name, node, ignored)
        if reference is not None:
            sink[reference] = None


def resolve_material_reference(
    reference: str,
    material_path: str,
    asset_root: Path,
    *,
    fallback_dir: str = DEFAULT_MATERIAL_FALLBACK_DIR,
) -> str:
    """Resolve a reference found inside a material file to a room-relative path.

    References that already contain a separator are used as-is. Bare file
    names are tried next to the material first, then inside ``fallback_dir``;
    when neither exists on disk the raw value is returned.
    """

    if contains_separator(reference):
        return normalize_asset_path(reference)

    material_dir = PurePosixPath(normalize_asset_path(material_path)).parent
    candidates: list[str] = []
    if str(material_dir) != ".":
        candidates.append((material_dir / reference).as_posix())
    if fallback_dir:
        candidates.append(
            (PurePosixPath(normalize_asset_path(fallback_dir)) / reference).as_posix()
        )

    for candidate in candidates:
        if (asset_root / candidate).is_file():
            return candidate
    return reference


__all__ = [
    "DEFAULT_MATERIAL_FALLBACK_DIR",
    "IGNORED_FIELDS",
    "KNOWN_ASSET_EXTENSIONS",
    "MATERIAL_EXTENSION",
    "classify_asset_reference",
    "collect_payload_asset_paths",
    "contains_separator",
    "is_ignored_field",
    "is_material_file",
    "looks_like_asset_path",
    "normalize_asset_path",
    "resolve_material_reference",
]
