"""
File-Backed Key-Value Store

DESIGN DECISION: One file per key inside a data directory.
- Values are opaque bytes, so no encoding layer is needed
- Each write goes to a temp file in the same directory and is then moved
  over the old file, so a reader never sees a half-written value
- Two keys are two files: there is no cross-key atomicity

Keys are restricted to a safe character set so a key can never escape
the data directory.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Optional, Union

import structlog

from moola_auth.config.settings import STORAGE_KEY_PATTERN
from moola_auth.services.storage.interface import (
    KeyValueStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


class FileKeyValueStore(KeyValueStoreInterface):
    """Key-value store keeping each key in its own file."""

    def __init__(self, directory: Union[str, Path]):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path_for(self, key: str) -> Path:
        if not STORAGE_KEY_PATTERN.match(key) or key in {".", ".."}:
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._directory / f"{key}.bin"

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read '{key}': {e}")

    async def set(self, key: str, value: bytes) -> None:
        path = self._path_for(key)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="wb", dir=self._directory, prefix=f".{key}.", delete=False
            ) as tf:
                tf.write(value)
                temp_path = Path(tf.name)
        except OSError as e:
            raise StorageError(f"Failed to write '{key}': {e}")

        try:
            # Atomic replace within the same directory
            shutil.move(str(temp_path), str(path))
        except OSError as e:
            # Clean up temp file if move failed
            if temp_path.exists():
                temp_path.unlink()
            raise StorageError(f"Failed to write '{key}': {e}")

        logger.debug("kv_written", key=key, size=len(value))

    async def remove(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"Failed to remove '{key}': {e}")
