"""In-memory model of a room file and its tree of prop records."""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Sequence

import json5

from .asset_paths import (
    DEFAULT_MATERIAL_FALLBACK_DIR,
    collect_payload_asset_paths,
    is_material_file,
    normalize_asset_path,
    resolve_material_reference,
)
from .errors import DocumentParseError, ParentNotFoundError, RecordNotFoundError
from .payload import (
    JsonObject,
    JsonValue,
    as_integer,
    clone_payload,
    read_int_field,
    read_str_field,
    write_int_field,
)

logger = logging.getLogger(__name__)

UNNAMED_PROP = "(Unnamed)"


@dataclass(eq=False)
class PropRecord:
    """A single prop instance backed by its raw JSON payload.

    Only ``ID`` and ``parentID`` are ever rewritten in ``payload``; every
    other field is carried through untouched.
    """

    payload: JsonObject
    id: int = 0
    parent_id: int = 0
    display_name: str = UNNAMED_PROP
    prop_id: str | None = None
    children: list["PropRecord"] = field(default_factory=list)
    parent: "PropRecord | None" = field(default=None, repr=False)

    @classmethod
    def from_payload(cls, payload: JsonObject) -> "PropRecord":
        """Build a record from a raw ``props`` array entry."""

        return cls(
            payload=payload,
            id=read_int_field(payload, "ID"),
            parent_id=read_int_field(payload, "parentID"),
            display_name=read_str_field(payload, "displayName", UNNAMED_PROP)
            or UNNAMED_PROP,
            prop_id=read_str_field(payload, "propID", None),
        )

    def iter_subtree(self) -> Iterator["PropRecord"]:
        """Yield this record followed by all of its descendants (pre-order)."""

        yield self
        for child in self.children:
            yield from child.iter_subtree()

    def count_descendants(self) -> int:
        return sum(1 for _ in self.iter_subtree()) - 1


@dataclass(frozen=True)
class PropNode:
    """Read-only projection of a record used for presentation."""

    id: int
    parent_id: int
    display_name: str
    prop_id: str | None
    is_expanded: bool = False
    children: tuple["PropNode", ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "parentId": self.parent_id,
            "displayName": self.display_name,
            "propId": self.prop_id,
            "isExpanded": self.is_expanded,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class LinkArray:
    """An array made solely of link objects, rewritten through an id map."""

    items: list[JsonObject]


@dataclass(frozen=True)
class NotLinkArray:
    """Marker returned for arrays that do not hold link objects."""


LinkArrayResult = LinkArray | NotLinkArray


def _link_target(item: JsonValue) -> int | None:
    if not isinstance(item, dict):
        return None
    value = item.get("value")
    if isinstance(value, dict):
        value = value.get("value")
    return as_integer(value)


def _retarget_link(item: JsonObject, new_id: int) -> None:
    nested = item.get("value")
    if isinstance(nested, dict):
        nested["value"] = new_id
    else:
        item["value"] = new_id


def rewrite_link_array(
    items: Sequence[JsonValue], id_map: Mapping[int, int]
) -> LinkArrayResult:
    """Remap a link array through ``id_map``.

    An array qualifies when it is non-empty and every element is an object
    whose ``value`` field is an integral prop id. Links whose target is not in
    ``id_map`` are dropped.
    """

    if not items:
        return NotLinkArray()

    targets: list[tuple[JsonObject, int]] = []
    for item in items:
        target = _link_target(item)
        if target is None or not isinstance(item, dict):
            return NotLinkArray()
        targets.append((item, target))

    rewritten: list[JsonObject] = []
    for item, target in targets:
        new_id = id_map.get(target)
        if new_id is None:
            continue
        _retarget_link(item, new_id)
        rewritten.append(item)
    return LinkArray(rewritten)


def update_link_references(node: JsonValue, id_map: Mapping[int, int]) -> None:
    """Rewrite every link array nested anywhere inside ``node`` in place."""

    if isinstance(node, list):
        result = rewrite_link_array(node, id_map)
        if isinstance(result, LinkArray):
            node[:] = result.items
            return
        for child in node:
            update_link_references(child, id_map)
    elif isinstance(node, dict):
        for child in node.values():
            update_link_references(child, id_map)


class RoomDocument:
    """A parsed room file exposing its props as an indexed tree."""

    def __init__(
        self,
        room_path: Path,
        root: JsonObject,
        *,
        material_fallback_dir: str = DEFAULT_MATERIAL_FALLBACK_DIR,
    ) -> None:
        if not isinstance(root, dict):
            raise DocumentParseError("Room file is not a JSON object.")

        props = root.get("props")
        if not isinstance(props, list):
            props = []
            root["props"] = props

        self.room_path = Path(room_path)
        self.material_fallback_dir = material_fallback_dir
        self._root = root
        self._props: list[JsonValue] = props
        self._records: dict[int, PropRecord] = {}
        self._roots: list[PropRecord] = []
        self._max_id = 0
        self._index(props)

    @classmethod
    def load(
        cls,
        room_path: Path,
        *,
        material_fallback_dir: str = DEFAULT_MATERIAL_FALLBACK_DIR,
    ) -> "RoomDocument":
        """Parse ``room_path`` into a document.

        Raises:
            DocumentParseError: If the file is not a JSON object.
            OSError: If the file cannot be read.
        """

        path = Path(room_path)
        text = path.read_text(encoding="utf-8-sig")
        try:
            root = json5.loads(text)
        except ValueError as exc:
            raise DocumentParseError(
                f"Room file '{path}' is not valid JSON: {exc}"
            ) from exc
        if not isinstance(root, dict):
            raise DocumentParseError(f"Room file '{path}' is not a JSON object.")
        return cls(path, root, material_fallback_dir=material_fallback_dir)

    def _index(self, props: Iterable[JsonValue]) -> None:
        flat: list[PropRecord] = []
        for node in props:
            if not isinstance(node, dict):
                continue
            record = PropRecord.from_payload(node)
            if record.id == 0:
                # Id 0 is not a prop id; the payload is saved but never indexed.
                logger.debug("Skipping prop without an id in '%s'.", self.room_path)
                continue
            self._records[record.id] = record
            flat.append(record)
            self._max_id = max(self._max_id, record.id)

        # Parents are resolved after every record is indexed, so a child may
        # appear before its parent in the props array.
        for record in flat:
            parent = self._records.get(record.parent_id) if record.parent_id else None
            if parent is None or _would_create_cycle(record, parent):
                if parent is not None:
                    logger.warning(
                        "Prop %s in '%s' forms a parent cycle; treating it as a root.",
                        record.id,
                        self.room_path,
                    )
                self._roots.append(record)
                continue
            record.parent = parent
            parent.children.append(record)

    @property
    def roots(self) -> tuple[PropRecord, ...]:
        return tuple(self._roots)

    @property
    def max_id(self) -> int:
        return self._max_id

    def find_record(self, record_id: int) -> PropRecord | None:
        return self._records.get(record_id)

    def get_record(self, record_id: int) -> PropRecord:
        """Return the record with ``record_id``.

        Raises:
            RecordNotFoundError: If no such record exists.
        """

        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    def count_records(self) -> int:
        return len(self._records)

    def snapshot(self, expand_parents: bool = False) -> list[PropNode]:
        """Return a read-only tree of :class:`PropNode` mirroring the records."""

        def to_node(record: PropRecord) -> PropNode:
            return PropNode(
                id=record.id,
                parent_id=record.parent_id,
                display_name=record.display_name,
                prop_id=record.prop_id,
                is_expanded=expand_parents,
                children=tuple(to_node(child) for child in record.children),
            )

        return [to_node(record) for record in self._roots]

    def insert_subtree(self, source: PropRecord, target_parent_id: int) -> int:
        """Deep-clone ``source`` and its descendants beneath ``target_parent_id``.

        Every clone receives a freshly allocated id. Link arrays inside the
        cloned payloads are remapped to the new ids and links pointing outside
        the cloned subtree are dropped. The whole clone is built before the
        document is touched, so a failure leaves the document unchanged.

        Returns:
            The number of inserted records.

        Raises:
            ParentNotFoundError: If ``target_parent_id`` is non-zero and does
                not exist in this document.
        """

        parent: PropRecord | None = None
        if target_parent_id != 0:
            parent = self._records.get(target_parent_id)
            if parent is None:
                raise ParentNotFoundError(target_parent_id)

        next_id = self._max_id
        id_map: dict[int, int] = {}
        clones: list[PropRecord] = []

        def clone(original: PropRecord, parent_id: int) -> PropRecord:
            nonlocal next_id
            next_id += 1
            payload = clone_payload(original.payload)
            write_int_field(payload, "ID", next_id)
            write_int_field(payload, "parentID", parent_id)
            record = PropRecord(
                payload=payload,
                id=next_id,
                parent_id=parent_id,
                display_name=original.display_name,
                prop_id=original.prop_id,
            )
            id_map[original.id] = record.id
            clones.append(record)
            for child in list(original.children):
                child_clone = clone(child, record.id)
                child_clone.parent = record
                record.children.append(child_clone)
            return record

        subtree_root = clone(source, target_parent_id)
        for record in clones:
            update_link_references(record.payload, id_map)

        for record in clones:
            self._props.append(record.payload)
            self._records[record.id] = record
        self._max_id = next_id

        if parent is None:
            self._roots.append(subtree_root)
        else:
            subtree_root.parent = parent
            parent.children.append(subtree_root)

        logger.debug(
            "Inserted %d props under %s in '%s'.",
            len(clones),
            target_parent_id,
            self.room_path,
        )
        return len(clones)

    def to_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self._root, indent=indent, ensure_ascii=False)

    def save(self, destination: Path | None = None, *, indent: int | None = 2) -> None:
        """Serialise the full document to ``destination`` (defaults to its path)."""

        target = Path(destination) if destination is not None else self.room_path
        target.write_text(self.to_json(indent=indent), encoding="utf-8")

    def collect_asset_paths(self, root_id: int) -> list[str]:
        """Return the asset files referenced by a subtree, materials expanded.

        Raises:
            RecordNotFoundError: If ``root_id`` does not exist.
        """

        record = self.get_record(root_id)
        sink: dict[str, None] = {}
        for member in record.iter_subtree():
            collect_payload_asset_paths(member.payload, sink)
        return self.expand_material_dependencies(sink)

    def expand_material_dependencies(self, paths: Iterable[str]) -> list[str]:
        """Add the assets referenced by material files found in ``paths``.

        Materials are processed breadth-first and de-duplicated
        case-insensitively, so reference cycles terminate. Unreadable or
        malformed material files are skipped.
        """

        result: dict[str, None] = dict.fromkeys(paths)
        asset_root = self.room_path.parent

        queue: deque[str] = deque()
        enqueued: set[str] = set()

        def enqueue(material: str) -> None:
            key = material.lower()
            if key not in enqueued:
                enqueued.add(key)
                queue.append(material)

        for path in result:
            if is_material_file(path):
                enqueue(path)

        while queue:
            material = queue.popleft()
            material_file = asset_root / normalize_asset_path(material)
            if not material_file.is_file():
                continue

            try:
                content = json5.loads(material_file.read_text(encoding="utf-8-sig"))
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable material '%s': %s", material, exc)
                continue

            discovered: dict[str, None] = {}
            collect_payload_asset_paths(content, discovered)
            for reference in discovered:
                resolved = resolve_material_reference(
                    reference,
                    material,
                    asset_root,
                    fallback_dir=self.material_fallback_dir,
                )
                result[resolved] = None
                if is_material_file(resolved):
                    enqueue(resolved)

        return list(result)


def _would_create_cycle(record: PropRecord, parent: PropRecord) -> bool:
    current: PropRecord | None = parent
    while current is not None:
        if current is record:
            return True
        current = current.parent
    return False


__all__ = [
    "LinkArray",
    "LinkArrayResult",
    "NotLinkArray",
    "PropNode",
    "PropRecord",
    "RoomDocument",
    "UNNAMED_PROP",
    "rewrite_link_array",
    "update_link_references",
]
