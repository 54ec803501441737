from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from roomgraft import (
    DocumentParseError,
    ParentNotFoundError,
    RecordNotFoundError,
    RoomDocument,
)
from roomgraft.room_document import (
    LinkArray,
    NotLinkArray,
    PropRecord,
    rewrite_link_array,
)


@pytest.fixture
def furniture_room(
    make_room: Callable[..., Path], make_prop: Callable[..., dict[str, Any]]
) -> Path:
    return make_room(
        "furniture",
        [
            make_prop(
                1,
                0,
                "Table",
                propID={"value": "table_01"},
                mesh="Models/table.glb",
            ),
            make_prop(
                2,
                1,
                "Lamp",
                links=[{"value": 3}, {"value": 9}],
                colour={"r": 1.0, "g": 0.5, "b": 0.25},
            ),
            make_prop(3, 2, "Bulb", texture="bulb.png"),
            make_prop(9, 0, "Door", scriptLocation={"value": "Scripts/door"}),
        ],
        settings={"lighting": "warm", "version": 12},
    )


def _ids(records: list[PropRecord] | tuple[PropRecord, ...]) -> list[int]:
    return [record.id for record in records]


def test_load_builds_indexed_tree(furniture_room: Path) -> None:
    document = RoomDocument.load(furniture_room)

    assert document.count_records() == 4
    assert _ids(document.roots) == [1, 9]
    table = document.get_record(1)
    assert table.display_name == "Table"
    assert table.prop_id == "table_01"
    assert _ids(table.children) == [2]
    assert _ids(document.get_record(2).children) == [3]
    assert document.max_id == 9


def test_get_record_raises_for_unknown_id(furniture_room: Path) -> None:
    document = RoomDocument.load(furniture_room)

    with pytest.raises(RecordNotFoundError):
        document.get_record(42)
    assert document.find_record(42) is None


def test_load_reads_flat_and_nested_fields(tmp_path: Path) -> None:
    room = tmp_path / "Room.room"
    room.write_text(
        json.dumps(
            {
                "props": [
                    {"ID": 5, "parentID": 0, "displayName": "Flat", "propID": "p5"},
                    {"ID": {"value": 6}, "parentID": {"value": 5}},
                    "not a prop",
                ]
            }
        ),
        encoding="utf-8",
    )

    document = RoomDocument.load(room)

    flat = document.get_record(5)
    assert flat.display_name == "Flat"
    assert flat.prop_id == "p5"
    nested = document.get_record(6)
    assert nested.display_name == "(Unnamed)"
    assert nested.prop_id is None
    assert nested.parent is flat


def test_children_listed_before_their_parent_stay_nested(
    tmp_path: Path, make_prop: Callable[..., dict[str, Any]]
) -> None:
    room = tmp_path / "Room.room"
    room.write_text(
        json.dumps(
            {
                "props": [
                    make_prop(3, 2, "Grandchild"),
                    make_prop(2, 1, "Child"),
                    make_prop(1, 0, "Parent"),
                ]
            }
        ),
        encoding="utf-8",
    )

    document = RoomDocument.load(room)

    assert _ids(document.roots) == [1]
    assert _ids(document.get_record(1).children) == [2]
    assert _ids(document.get_record(2).children) == [3]

    document.save()
    reloaded = RoomDocument.load(room)
    assert _ids(reloaded.roots) == [1]
    assert _ids(reloaded.get_record(2).children) == [3]


def test_orphans_and_cycles_become_roots(
    tmp_path: Path, make_prop: Callable[..., dict[str, Any]]
) -> None:
    room = tmp_path / "Room.room"
    room.write_text(
        json.dumps(
            {
                "props": [
                    make_prop(1, 77, "Orphan"),
                    make_prop(2, 2, "Self"),
                    make_prop(3, 4, "A"),
                    make_prop(4, 3, "B"),
                ]
            }
        ),
        encoding="utf-8",
    )

    document = RoomDocument.load(room)

    assert _ids(document.roots) == [1, 2, 4]
    assert _ids(document.get_record(4).children) == [3]
    assert document.count_records() == 4


def test_load_rejects_non_object_documents(tmp_path: Path) -> None:
    broken = tmp_path / "broken.room"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(DocumentParseError):
        RoomDocument.load(broken)

    array = tmp_path / "array.room"
    array.write_text("[1, 2, 3]", encoding="utf-8")
    with pytest.raises(DocumentParseError):
        RoomDocument.load(array)


def test_load_accepts_trailing_commas_and_comments(tmp_path: Path) -> None:
    room = tmp_path / "Room.room"
    room.write_text(
        '{"props": [{"ID": 1, "parentID": 0,}, // hand edited\n],}',
        encoding="utf-8",
    )

    document = RoomDocument.load(room)

    assert document.count_records() == 1
    assert _ids(document.roots) == [1]


def test_props_without_id_are_not_indexed(tmp_path: Path) -> None:
    room = tmp_path / "Room.room"
    room.write_text(
        json.dumps(
            {
                "props": [
                    {"ID": {"value": 1}, "parentID": {"value": 0}},
                    {"parentID": {"value": 1}, "displayName": "NoId"},
                ]
            }
        ),
        encoding="utf-8",
    )

    document = RoomDocument.load(room)

    assert document.count_records() == 1
    assert _ids(document.roots) == [1]
    assert _ids(document.get_record(1).children) == []
    with pytest.raises(RecordNotFoundError):
        document.get_record(0)
    assert [node.id for node in document.snapshot()] == [1]

    document.save()
    saved = json.loads(room.read_text(encoding="utf-8"))
    assert saved["props"][1] == {"parentID": {"value": 1}, "displayName": "NoId"}


def test_missing_props_array_is_treated_as_empty(tmp_path: Path) -> None:
    room = tmp_path / "Room.room"
    room.write_text(json.dumps({"name": "Empty"}), encoding="utf-8")

    document = RoomDocument.load(room)

    assert document.count_records() == 0
    assert document.snapshot() == []


def test_snapshot_projects_display_nodes(furniture_room: Path) -> None:
    document = RoomDocument.load(furniture_room)

    roots = document.snapshot(expand_parents=True)

    assert [node.display_name for node in roots] == ["Table", "Door"]
    table = roots[0]
    assert table.is_expanded
    assert table.children[0].display_name == "Lamp"
    assert table.children[0].parent_id == 1
    assert table.children[0].children[0].id == 3
    assert table.to_dict()["children"][0]["displayName"] == "Lamp"
    assert not hasattr(table, "payload")


def test_save_round_trip_preserves_payload(
    furniture_room: Path, tmp_path: Path
) -> None:
    original = json.loads(furniture_room.read_text(encoding="utf-8"))
    document = RoomDocument.load(furniture_room)

    destination = tmp_path / "copy.room"
    document.save(destination)

    assert json.loads(destination.read_text(encoding="utf-8")) == original
    reloaded = RoomDocument.load(destination)
    assert [
        (r.id, r.parent_id, r.display_name, r.prop_id)
        for root in reloaded.roots
        for r in root.iter_subtree()
    ] == [
        (r.id, r.parent_id, r.display_name, r.prop_id)
        for root in document.roots
        for r in root.iter_subtree()
    ]


def test_insert_subtree_clones_with_fresh_ids(
    furniture_room: Path,
    make_room: Callable[..., Path],
    make_prop: Callable[..., dict[str, Any]],
) -> None:
    source = RoomDocument.load(furniture_room)
    target_path = make_room(
        "target", [make_prop(1, 0, "Floor"), make_prop(4, 1, "Rug")]
    )
    target = RoomDocument.load(target_path)
    table = source.get_record(1)

    inserted = target.insert_subtree(table, 4)

    assert inserted == table.count_descendants() + 1 == 3
    assert target.count_records() == 5
    rug = target.get_record(4)
    clone = rug.children[0]
    assert clone.id == 5
    assert clone.parent_id == 4
    assert clone.display_name == "Table"
    assert clone.payload["ID"] == {"value": 5}
    assert clone.payload["parentID"] == {"value": 4}
    assert clone.payload["mesh"] == "Models/table.glb"
    lamp = clone.children[0]
    assert (lamp.id, lamp.parent_id) == (6, 5)
    assert (lamp.children[0].id, lamp.children[0].parent_id) == (7, 6)

    assert source.get_record(1).payload["ID"] == {"value": 1}
    assert source.get_record(2).payload["links"] == [{"value": 3}, {"value": 9}]


def test_insert_subtree_remaps_links_and_drops_external_ones(
    furniture_room: Path,
    make_room: Callable[..., Path],
) -> None:
    source = RoomDocument.load(furniture_room)
    target = RoomDocument.load(make_room("target", []))

    target.insert_subtree(source.get_record(1), 0)

    lamp = target.get_record(2)
    assert lamp.display_name == "Lamp"
    # Bulb (3) was cloned as 3; the Door (9) lies outside the subtree.
    assert lamp.payload["links"] == [{"value": 3}]
    assert lamp.payload["colour"] == {"r": 1.0, "g": 0.5, "b": 0.25}
    assert _ids(target.roots) == [1]


def test_insert_subtree_keeps_flat_id_fields_flat(tmp_path: Path) -> None:
    room = tmp_path / "Room.room"
    room.write_text(
        json.dumps({"props": [{"ID": 10, "parentID": 0, "displayName": "Crate"}]}),
        encoding="utf-8",
    )
    document = RoomDocument.load(room)

    document.insert_subtree(document.get_record(10), 10)

    clone = document.get_record(11)
    assert clone.payload == {"ID": 11, "parentID": 10, "displayName": "Crate"}


def test_insert_subtree_with_missing_parent_changes_nothing(
    furniture_room: Path,
) -> None:
    document = RoomDocument.load(furniture_room)
    before = document.to_json()

    with pytest.raises(ParentNotFoundError):
        document.insert_subtree(document.get_record(1), 404)

    assert document.count_records() == 4
    assert document.max_id == 9
    assert document.to_json() == before


def test_insert_subtree_under_own_descendant_terminates(furniture_room: Path) -> None:
    document = RoomDocument.load(furniture_room)

    inserted = document.insert_subtree(document.get_record(1), 3)

    assert inserted == 3
    assert document.count_records() == 7
    bulb = document.get_record(3)
    assert [child.display_name for child in bulb.children] == ["Table"]
    assert all(record.id > 9 for record in bulb.children[0].iter_subtree())


def test_rewrite_link_array_returns_tagged_results() -> None:
    links = [{"value": 1}, {"value": {"value": 2}}, {"value": 3}]

    result = rewrite_link_array(links, {1: 10, 2: 20})

    assert isinstance(result, LinkArray)
    assert result.items == [{"value": 10}, {"value": {"value": 20}}]
    assert isinstance(rewrite_link_array([], {1: 2}), NotLinkArray)
    assert isinstance(rewrite_link_array([{"value": 1}, 5], {1: 2}), NotLinkArray)
    assert isinstance(rewrite_link_array([{"value": 0.5}], {1: 2}), NotLinkArray)
    assert isinstance(rewrite_link_array([{"name": "x"}], {1: 2}), NotLinkArray)


def test_collect_asset_paths_walks_the_whole_subtree(furniture_room: Path) -> None:
    document = RoomDocument.load(furniture_room)

    assert document.collect_asset_paths(1) == ["Models/table.glb", "bulb.png"]
    assert document.collect_asset_paths(9) == ["Scripts/door.lua"]
    with pytest.raises(RecordNotFoundError):
        document.collect_asset_paths(100)


def test_material_dependencies_resolve_relative_to_material(
    make_room: Callable[..., Path],
    make_prop: Callable[..., dict[str, Any]],
    make_asset: Callable[[Path, str, bytes | str], Path],
) -> None:
    room = make_room(
        "materials", [make_prop(1, 0, "Wall", material="Materials/foo.es2mat")]
    )
    folder = room.parent
    make_asset(
        folder,
        "Materials/foo.es2mat",
        json.dumps({"albedo": "bar.png", "detail": "Shared/noise.png"}),
    )
    make_asset(folder, "Materials/bar.png", b"local")
    make_asset(folder, "_CustomModels/bar.png", b"fallback")

    paths = RoomDocument.load(room).collect_asset_paths(1)

    assert paths == ["Materials/foo.es2mat", "Materials/bar.png", "Shared/noise.png"]


def test_material_dependencies_follow_nested_materials_and_cycles(
    make_room: Callable[..., Path],
    make_prop: Callable[..., dict[str, Any]],
    make_asset: Callable[[Path, str, bytes | str], Path],
) -> None:
    room = make_room("nested", [make_prop(1, 0, "Wall", material="Mats/a.es2mat")])
    folder = room.parent
    make_asset(folder, "Mats/a.es2mat", json.dumps({"base": "Mats/B.es2mat"}))
    make_asset(
        folder,
        "Mats/B.es2mat",
        json.dumps({"back": "Mats/A.ES2MAT", "normal": "normal.png"}),
    )
    make_asset(folder, "_CustomModels/normal.png", b"n")
    make_asset(folder, "Mats/broken.es2mat", "{ nope")

    document = RoomDocument.load(room)
    paths = document.collect_asset_paths(1)

    assert paths == [
        "Mats/a.es2mat",
        "Mats/B.es2mat",
        "Mats/A.ES2MAT",
        "_CustomModels/normal.png",
    ]
    assert document.expand_material_dependencies(["Mats/broken.es2mat"]) == [
        "Mats/broken.es2mat"
    ]


def test_material_with_trailing_comma_is_parsed(
    make_room: Callable[..., Path],
    make_prop: Callable[..., dict[str, Any]],
    make_asset: Callable[[Path, str, bytes | str], Path],
) -> None:
    room = make_room("lenient", [make_prop(1, 0, "Wall", material="Mats/c.es2mat")])
    folder = room.parent
    make_asset(folder, "Mats/c.es2mat", '{"albedo": "bar.png", // tint\n}')
    make_asset(folder, "Mats/bar.png", b"b")

    paths = RoomDocument.load(room).collect_asset_paths(1)

    assert paths == ["Mats/c.es2mat", "Mats/bar.png"]
