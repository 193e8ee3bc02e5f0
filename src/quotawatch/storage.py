import json
import os
import tempfile
from pathlib import Path
from typing import Any

from quotawatch.errors import PersistenceError


def write_json_atomic(path: "Path", payload: "Any") -> "None":
    """
    serializes payload and atomically replaces path with it. The
    temp file lives in the target directory so os.replace never
    crosses a filesystem boundary, and readers either see the old
    file or the new one, never a partial write.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(path.parent), prefix=f".{path.stem}.", suffix=".tmp"
        )
    except OSError as exc:
        raise PersistenceError(f"cannot create temp file for {path}: {exc}") from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
            json.dump(payload, tmp_file, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except (OSError, TypeError, ValueError) as exc:
        try:
            os.remove(tmp_name)
        except OSError:
            pass
        raise PersistenceError(f"cannot write {path}: {exc}") from exc


def read_json_array(path: "Path") -> "list[Any]":
    """
    reads a JSON array from path. A missing file is an empty
    array; anything else that goes wrong is left to the caller.
    """
    if not path.exists():
        return []

    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError(f"expected a JSON array in {path}, got {type(data).__name__}")
    return data
