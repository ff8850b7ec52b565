"""JSON document helpers with atomic writes."""

import json
import os
from pathlib import Path
from typing import Any


class StorageError(Exception):
    """Raised when a state file cannot be written"""
    pass


def read_json(path: Path) -> Any:
    """Read a JSON document; OSError and JSONDecodeError propagate to the caller"""
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def write_json_atomic(path: Path, data: Any) -> None:
    """Write a pretty-printed JSON document via fsynced temp file + rename"""
    tmp = path.with_suffix(path.suffix + ".tmp")
    payload = json.dumps(data, indent=2) + "\n"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tmp.open("w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    except OSError as e:
        raise StorageError(f"Failed to write {path.name}: {e.strerror or e}") from e
