"""Filesystem helpers run off the event loop."""

from __future__ import annotations

import asyncio
import os
import shutil
import stat
import sys
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path


def _clear_readonly(func: Any, path: str, _exc: Any) -> None:
    # git marks pack files read-only, which blocks deletion on Windows
    os.chmod(path, stat.S_IWRITE)
    func(path)


def remove_tree_sync(path: Path) -> bool:
    """Delete a directory tree, including read-only entries.

    Returns:
        True if something was removed.
    """
    if not path.exists() and not path.is_symlink():
        return False
    if path.is_file() or path.is_symlink():
        path.unlink()
        return True
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_clear_readonly)
    else:
        shutil.rmtree(path, onerror=_clear_readonly)
    return True


async def remove_tree(path: Path) -> bool:
    """Async wrapper for ``remove_tree_sync``."""
    return await asyncio.to_thread(remove_tree_sync, path)


async def copy_tree(source: Path, target: Path) -> None:
    """Recursively copy ``source`` to a new directory ``target``."""
    await asyncio.to_thread(shutil.copytree, source, target, symlinks=True)


async def move_tree(source: Path, target: Path) -> None:
    """Move ``source`` to ``target``, creating the parent directory."""
    target.parent.mkdir(parents=True, exist_ok=True)
    await asyncio.to_thread(shutil.move, str(source), str(target))
