# ============================================
# inventory_service/storage.py — JSON File Storage
# ============================================
# The whole product collection lives in one pretty-printed JSON array.
# Every call reads or rewrites the entire file; nothing is cached
# between requests.

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from copy import deepcopy
from pathlib import Path
from typing import Iterator, List, Optional, Protocol

from pydantic_settings import BaseSettings

from .errors import StorageError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    DATA_FILE: str     = "storage/app/products.json"
    PORT: int          = 8000
    SERVICE_NAME: str  = "inventory-service"
    CSRF_ENABLED: bool = True
    LOG_LEVEL: str     = "INFO"

    class Config:
        env_file = ".env"


settings = Settings()


class ProductStorage(Protocol):
    """Anything that can load and replace the full product collection."""

    def read_all(self) -> List[dict]: ...

    def write_all(self, records: List[dict]) -> None: ...

    def lock(self): ...


class JsonFileStorage:
    def __init__(self, path):
        self.path = Path(path)
        # Guards read-modify-write cycles within this process only.
        self._lock = threading.RLock()

    @contextmanager
    def lock(self) -> Iterator[None]:
        with self._lock:
            yield

    def read_all(self) -> List[dict]:
        """Return the stored records, or [] when the file does not exist yet."""
        if not self.path.exists():
            return []
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.exception("Could not read %s", self.path)
            raise StorageError(f"Could not read {self.path}: {e}") from e

        if not text.strip():
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid JSON in {self.path}: {e}") from e

        if not isinstance(data, list):
            raise StorageError(f"Expected a JSON array in {self.path}")
        return data

    def write_all(self, records: List[dict]) -> None:
        """Replace the file contents with ``records`` in a single rename."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(records, f, indent=4, ensure_ascii=False, allow_nan=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.exception("Could not write %s", self.path)
            raise StorageError(f"Could not write {self.path}: {e}") from e


class InMemoryStorage:
    """Drop-in replacement for JsonFileStorage used by the test suite."""

    def __init__(self, records: Optional[List[dict]] = None):
        self._records = deepcopy(records or [])
        self._lock = threading.RLock()
        self.writes = 0

    @contextmanager
    def lock(self) -> Iterator[None]:
        with self._lock:
            yield

    def read_all(self) -> List[dict]:
        return deepcopy(self._records)

    def write_all(self, records: List[dict]) -> None:
        self._records = deepcopy(records)
        self.writes += 1


# Global accessor — one per process, shared by every request
_storage = JsonFileStorage(settings.DATA_FILE)


def get_storage() -> ProductStorage:
    """Return the process-wide storage accessor (FastAPI dependency)."""
    return _storage
