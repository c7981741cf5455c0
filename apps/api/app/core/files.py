"""
Filesystem primitives for project trees.

- assert_inside / resolve_inside: reject any path that escapes its project root
- write_atomic / write_atomic_text: temp file in the same directory + os.replace
- safe_unlink: post-commit cleanup; never fails the caller
"""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from app.core.errors import UnsafePathError
from app.core.observability import emit

PathLike = Union[str, "os.PathLike[str]"]


def assert_inside(root: PathLike, candidate: PathLike) -> Path:
    root_p = Path(root).resolve()
    cand_p = Path(candidate)
    if not cand_p.is_absolute():
        cand_p = root_p / cand_p
    cand_p = cand_p.resolve()

    try:
        rel = os.path.relpath(cand_p, root_p)
    except ValueError:
        # different drive on windows
        raise UnsafePathError("Unsafe path (outside project root).", details={"path": str(candidate)})

    first = Path(rel).parts[0] if Path(rel).parts else ""
    if first == ".." or os.path.isabs(rel):
        raise UnsafePathError("Unsafe path (outside project root).", details={"path": str(candidate)})
    return cand_p


def resolve_inside(root: PathLike, rel_path: str) -> Path:
    if not rel_path:
        raise UnsafePathError("Unsafe path (empty).", details={"path": rel_path})
    if os.path.isabs(rel_path) or rel_path.startswith(("/", "\\")):
        raise UnsafePathError("Unsafe path (absolute).", details={"path": rel_path})
    return assert_inside(root, Path(root) / rel_path)


def write_atomic(path: PathLike, data: bytes) -> None:
    """Write *data* to *path* so readers only ever see the old or the new file.

    A crash between write and rename can leave a ``.<name>.*.tmp`` file next to
    the target; that residue is not cleaned automatically.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, str(target))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def write_atomic_text(path: PathLike, text: str, encoding: str = "utf-8") -> None:
    write_atomic(path, text.encode(encoding))


def safe_unlink(root: PathLike, rel_path: Optional[str], request_id: Optional[str] = None) -> bool:
    if not rel_path:
        return False
    try:
        abs_path = resolve_inside(root, rel_path)
        abs_path.unlink()
        return True
    except FileNotFoundError:
        return False
    except (OSError, UnsafePathError) as e:
        emit(
            "warning",
            "asset.cleanup_failed",
            f"could not remove {rel_path}",
            request_id,
            __name__,
            root=str(root),
            path=rel_path,
            error=type(e).__name__,
        )
        return False
