# =============================================================================
# Local Document Storage
# =============================================================================
#
# Document files live under settings.uploads_dir. `Document.file_url` holds
# the path relative to that directory. Paths resolving outside it are
# refused.
# =============================================================================

from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path

from trustcenter.config import settings

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def uploads_root() -> Path:
    root = Path(settings.uploads_dir).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def resolve_path(relative: str | None) -> Path | None:
    """Absolute path for a stored file, or None if it would escape the root."""
    if not relative:
        return None
    root = uploads_root()
    candidate = (root / relative).resolve()
    if not candidate.is_relative_to(root):
        logger.warning("Refusing path outside uploads dir: %s", relative)
        return None
    return candidate


def safe_filename(filename: str) -> str:
    name = _SAFE_NAME.sub("_", Path(filename).name).strip("._")
    return name or "document"


def save_file(filename: str, content: bytes) -> str:
    """Write bytes under a unique name; returns the relative path."""
    relative = f"{uuid.uuid4().hex[:12]}_{safe_filename(filename)}"
    (uploads_root() / relative).write_bytes(content)
    return relative


def delete_file(relative: str | None) -> bool:
    path = resolve_path(relative)
    if path is None or not path.is_file():
        return False
    try:
        path.unlink()
    except OSError as e:
        logger.warning("Could not delete %s: %s", relative, e)
        return False
    return True
