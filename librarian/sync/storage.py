"""
Local mirror storage.

All paths are repository-relative (`characters/alice/1.json`) and resolved
under the static root. Blocking filesystem calls run in the event loop's
default executor so they only suspend the awaiting task.
"""

from __future__ import annotations

import asyncio
import functools
import json
import os
import time
from pathlib import Path
from typing import Any, Callable, Optional

from ..config import get_logger
from .error_tracker import LocalIOError


logger = get_logger(__name__)


class LocalStorage:
    def __init__(self, root: str):
        self.root = Path(root)

    def resolve(self, path: str) -> Path:
        return self.root / path

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    # Synchronous primitives

    def _read_json(self, path: str) -> Optional[Any]:
        target = self.resolve(path)
        try:
            with open(target, 'r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing JSON file {target}: {e}")
            return None
        except OSError as e:
            raise LocalIOError(f"Error reading JSON file {target}: {e}", source_id=path)

    def _write_json(self, path: str, content: Any) -> None:
        target = self.resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, 'w', encoding='utf-8') as f:
                json.dump(content, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise LocalIOError(f"Error writing JSON file {target}: {e}", source_id=path)
        logger.info(f"JSON file saved at: {path}")

    def _write_blob(self, path: str, blob: bytes) -> None:
        target = self.resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(blob)
        except OSError as e:
            raise LocalIOError(f"Error writing file {target}: {e}", source_id=path)

    def _remove_file(self, path: str) -> bool:
        target = self.resolve(path)
        try:
            target.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise LocalIOError(f"Error unlinking file {target}: {e}", source_id=path)

    def _remove_dir_if_empty(self, path: str) -> bool:
        target = self.resolve(path)
        try:
            if any(target.iterdir()):
                return False
            target.rmdir()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise LocalIOError(f"Error removing directory {target}: {e}", source_id=path)
        logger.info(f"Directory {path} removed successfully.")
        return True

    def _ensure_parent_dir(self, path: str) -> None:
        target = self.resolve(path).parent
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LocalIOError(f"Error creating directory {target}: {e}", source_id=path)

    def _creation_date(self, path: str) -> Optional[int]:
        """
        Birth time of a local file in epoch milliseconds.

        None if the file does not exist or the platform does not record birth
        times (Linux); st_ctime is not a substitute, it moves on every rewrite.
        """
        try:
            stats = os.stat(self.resolve(path))
        except FileNotFoundError:
            return None
        created = getattr(stats, 'st_birthtime', None)
        return int(created * 1000) if created else None

    # Async API

    async def read_json(self, path: str) -> Optional[Any]:
        return await self._run(self._read_json, path)

    async def write_json(self, path: str, content: Any) -> None:
        await self._run(self._write_json, path, content)

    async def write_blob(self, path: str, blob: bytes) -> None:
        await self._run(self._write_blob, path, blob)

    async def remove_file(self, path: str) -> bool:
        return await self._run(self._remove_file, path)

    async def remove_dir_if_empty(self, path: str) -> bool:
        return await self._run(self._remove_dir_if_empty, path)

    async def ensure_parent_dir(self, path: str) -> None:
        await self._run(self._ensure_parent_dir, path)

    async def creation_date(self, path: str) -> Optional[int]:
        return await self._run(self._creation_date, path)


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)
