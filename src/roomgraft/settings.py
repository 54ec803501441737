"""Configuration helpers for the room tooling."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from .asset_paths import DEFAULT_MATERIAL_FALLBACK_DIR
from .room_scanner import default_ugc_root


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


@dataclass(frozen=True)
class RoomGraftSettings:
    """Where rooms live and how materials and logging behave.

    Each field maps to a ``ROOMGRAFT_*`` variable. A leading ``~`` in the UGC
    root is expanded and blank values fall back to the defaults.
    """

    ugc_root: Path = field(default_factory=default_ugc_root)
    material_fallback_dir: str = DEFAULT_MATERIAL_FALLBACK_DIR
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RoomGraftSettings":
        """Build settings from the ``ROOMGRAFT_*`` keys of ``environ``.

        Args:
            environ: Variables to read instead of the process environment.

        Raises:
            ValueError: If ``ROOMGRAFT_LOG_LEVEL`` names an unknown level.
        """

        source = environ if environ is not None else os.environ

        ugc_root = _normalise_path(source.get("ROOMGRAFT_UGC_ROOT"))
        material_fallback_dir = _normalise_string(
            source.get("ROOMGRAFT_MATERIAL_FALLBACK_DIR"),
            default=DEFAULT_MATERIAL_FALLBACK_DIR,
        )
        log_level = _normalise_string(
            source.get("ROOMGRAFT_LOG_LEVEL"), default="INFO"
        ).upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(
                "ROOMGRAFT_LOG_LEVEL must be a logging level name, "
                f"got {log_level!r}."
            )

        return cls(
            ugc_root=ugc_root if ugc_root is not None else default_ugc_root(),
            material_fallback_dir=material_fallback_dir,
            log_level=log_level,
        )


__all__ = ["RoomGraftSettings"]
