"""State file operations for features and sync mappings.

All state files are rewritten whole. Writes go to a sibling temp file and
are moved into place with os.replace, so a crash leaves either the old
file or the new one, never a torn write.
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from taskledger.lib.validate import validate_before_write

logger = logging.getLogger(__name__)


def write_text_atomic(path: Path, content: str) -> None:
    """Replace path's content in one step."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def write_json(path: Path, data: dict, schema_name: str | None = None) -> None:
    """Validate (optionally) and atomically write a JSON document."""
    if schema_name:
        validate_before_write(data, schema_name, path)
    write_text_atomic(path, json.dumps(data, indent=2) + "\n")
    logger.debug(f"[STATE] wrote {path}")
