"""Test configuration for the room tooling."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import json
from collections.abc import Callable, Sequence
from typing import Any

import pytest


def build_prop(
    prop_id: int,
    parent_id: int = 0,
    name: str | None = None,
    **fields: Any,
) -> dict[str, Any]:
    """Return a ``props`` entry using the nested ``{"value": ...}`` convention."""

    payload: dict[str, Any] = {
        "ID": {"value": prop_id},
        "parentID": {"value": parent_id},
    }
    if name is not None:
        payload["displayName"] = {"value": name}
    payload.update(fields)
    return payload


def write_room_file(
    path: Path,
    props: Sequence[dict[str, Any]],
    *,
    name: str = "Test Room",
    **extra: Any,
) -> Path:
    """Persist a minimal room document to ``path``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"name": name, **extra, "props": list(props)}
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def make_prop() -> Callable[..., dict[str, Any]]:
    return build_prop


@pytest.fixture
def ugc_root(tmp_path: Path) -> Path:
    root = tmp_path / "UGC"
    root.mkdir()
    return root


@pytest.fixture
def make_room(ugc_root: Path) -> Callable[..., Path]:
    """Create ``<ugc_root>/<folder>/Room.room`` with the given props."""

    def factory(
        folder: str,
        props: Sequence[dict[str, Any]],
        *,
        name: str | None = None,
        **extra: Any,
    ) -> Path:
        return write_room_file(
            ugc_root / folder / "Room.room",
            props,
            name=name if name is not None else folder,
            **extra,
        )

    return factory


def write_asset(root: Path, relative: str, content: bytes | str) -> Path:
    """Write ``content`` to ``root / relative`` creating parent folders."""

    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, str):
        path.write_text(content, encoding="utf-8")
    else:
        path.write_bytes(content)
    return path


@pytest.fixture
def make_asset() -> Callable[[Path, str, bytes | str], Path]:
    return write_asset
