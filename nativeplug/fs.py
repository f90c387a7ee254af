"""
File System Helpers.

This module provides the small set of file primitives shared by the
manifest mutator, the native-build cache and the config writer.

Key features:
- JSON reading with a typed error
- Atomic replace (write temp file, then rename) for every persisted document
- Deterministic recursive file enumeration
"""

import json
import os
import stat
import tempfile
from pathlib import Path
from typing import Any


class FileSystemError(Exception):
    """Base exception for file helper errors."""

    pass


def read_json(file_path: Path) -> Any:
    """
    Read and parse a JSON file.

    Args:
        file_path: Path to the JSON file

    Returns:
        Parsed JSON value

    Raises:
        FileSystemError: If file cannot be read or parsed
    """
    try:
        with open(file_path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise FileSystemError(f"File not found: {file_path}") from e
    except json.JSONDecodeError as e:
        raise FileSystemError(f"Failed to parse JSON file {file_path}: {e}") from e
    except OSError as e:
        raise FileSystemError(f"Failed to read file {file_path}: {e}") from e


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def atomic_write_text(file_path: Path, content: str) -> None:
    """
    Replace a file's content atomically.

    The content is written to a temporary file in the same directory and
    then renamed over the target, so readers see either the old or the new
    document and never a partial one. An existing file keeps its permission
    bits; a new file gets the usual 0666 minus the umask.

    Args:
        file_path: Target file
        content: New text content

    Raises:
        FileSystemError: If the file cannot be written
    """
    file_path = Path(file_path)
    tmp_name = None
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            mode = stat.S_IMODE(file_path.stat().st_mode)
        except FileNotFoundError:
            mode = 0o666 & ~_current_umask()

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{file_path.name}.", suffix=".tmp", dir=file_path.parent
        )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, file_path)
        tmp_name = None
    except OSError as e:
        raise FileSystemError(f"Failed to write file {file_path}: {e}") from e
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)


def write_json(file_path: Path, data: Any, indent: int | str = 2) -> None:
    """
    Serialize ``data`` and atomically replace ``file_path`` with it.

    Non-ASCII text is written as-is rather than as ``\\u`` escapes.
    """
    text = json.dumps(data, indent=indent, ensure_ascii=False)
    atomic_write_text(file_path, text + "\n")


def enumerate_files(root: Path) -> list[Path]:
    """
    List every regular file below a directory, recursively.

    Args:
        root: Directory to walk

    Returns:
        Sorted list of file paths (empty if root does not exist)
    """
    if not root.is_dir():
        return []
    return sorted(p for p in root.rglob("*") if p.is_file())
