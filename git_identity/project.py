from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .config import validate_identity_id
from .errors import ConfigError
from .fs_utils import atomic_write_text

logger = logging.getLogger(__name__)

MARKER_NAME = ".gid"


def parse_marker(text: str) -> Optional[str]:
    """Return the identity id pinned by a ``.gid`` marker, or None when it is empty."""
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        try:
            return validate_identity_id(stripped)
        except ValueError as exc:
            raise ConfigError(f"Invalid identity id in {MARKER_NAME}: {exc}") from exc
    return None


def read_project_override(root: Path) -> Optional[str]:
    marker = root / MARKER_NAME
    if not marker.is_file():
        return None
    try:
        return parse_marker(marker.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Could not read %s: %s", marker, exc)
    except ConfigError as exc:
        logger.warning("Ignoring %s: %s", marker, exc)
    return None


def write_project_override(root: Path, identity_id: str) -> Path:
    try:
        identity_id = validate_identity_id(identity_id)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    marker = root / MARKER_NAME
    atomic_write_text(marker, f"{identity_id}\n")
    return marker


def clear_project_override(root: Path) -> bool:
    marker = root / MARKER_NAME
    try:
        marker.unlink()
    except FileNotFoundError:
        return False
    return True
