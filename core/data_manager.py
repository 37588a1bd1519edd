"""
Data Manager for Nine Picture Grid
Handles local saving and loading of the grid images and description
"""
import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from core.debug_logger import LogStore
from core.exceptions import LocalStorageError, describe_error
from models.constants import DATA_DIR, DESCRIPTION_KEY, GRID_SIZE, IMAGES_KEY, LOCAL_STORE_FILE
from models.data_models import LogType

logger = logging.getLogger(__name__)

_path_locks: Dict[str, threading.RLock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: str) -> threading.RLock:
    # Stores opened on the same file share one lock
    key = os.path.abspath(path)
    with _path_locks_guard:
        return _path_locks.setdefault(key, threading.RLock())


def ensure_data_directory(data_dir: str = DATA_DIR):
    """Ensure the data directory exists."""
    if not os.path.exists(data_dir):
        os.makedirs(data_dir)


class LocalStore:
    """JSON file key-value store; read and write failures are logged, never raised.

    Writes hold a lock shared by every store on the same file and go
    through a unique temp file before replacing it.
    """

    def __init__(self, path: Optional[str] = None, store: Optional[LogStore] = None):
        self.path = path or os.path.join(DATA_DIR, LOCAL_STORE_FILE)
        self.store = store
        self._lock = _lock_for(self.path)

    def _log_failure(self, message: str, key: str, error: Exception):
        if self.store is not None:
            self.store.add_log(message, LogType.ERROR, {"key": key, **describe_error(error)})
        else:
            logger.error("%s (%s): %s", message, key, error)

    def _read_all(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise LocalStorageError(f"Could not read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise LocalStorageError(f"{self.path} does not hold a JSON object")
        return data

    def get(self, key: str, default: Any = None) -> Any:
        try:
            with self._lock:
                data = self._read_all()
        except LocalStorageError as e:
            self._log_failure(f"Error reading {key} from local storage", key, e)
            return default
        entry = data.get(key)
        if not isinstance(entry, dict) or "value" not in entry:
            return default
        return entry["value"]

    def _write_all(self, data: dict, directory: str):
        f = tempfile.NamedTemporaryFile("w", encoding="utf-8", dir=directory, suffix=".tmp", delete=False)
        try:
            with f:
                json.dump(data, f, indent=2, default=str)
            os.replace(f.name, self.path)
        except (OSError, TypeError, ValueError):
            os.unlink(f.name)
            raise

    def set(self, key: str, value: Any) -> bool:
        try:
            with self._lock:
                directory = os.path.dirname(self.path) or "."
                ensure_data_directory(directory)
                data = self._read_all()
                data[key] = {"value": value, "last_updated": datetime.now().isoformat()}
                self._write_all(data, directory)
            return True
        except (OSError, TypeError, ValueError, LocalStorageError) as e:
            self._log_failure(f"Error writing {key} to local storage", key, e)
            return False


def normalize_images(value: Any) -> List[Optional[str]]:
    """Exactly nine slots of URL-or-None; anything else becomes an empty grid."""
    if not isinstance(value, list) or len(value) != GRID_SIZE:
        return [None] * GRID_SIZE
    return [item if isinstance(item, str) and item else None for item in value]


def user_key(key: str, user_id: str) -> str:
    """Saved grid state is kept apart per signed-in user."""
    if not user_id:
        raise LocalStorageError("A user id is required to scope saved grid state")
    return f"{key}:{user_id}"


def load_grid_state(local: LocalStore, user_id: str) -> Tuple[List[Optional[str]], str]:
    """Load the user's saved slot array and description."""
    images = normalize_images(local.get(user_key(IMAGES_KEY, user_id), None))
    description = local.get(user_key(DESCRIPTION_KEY, user_id), "")
    if not isinstance(description, str):
        description = ""
    return images, description


def save_images(local: LocalStore, user_id: str, images: List[Optional[str]]) -> bool:
    return local.set(user_key(IMAGES_KEY, user_id), normalize_images(images))


def save_description(local: LocalStore, user_id: str, description: str) -> bool:
    return local.set(user_key(DESCRIPTION_KEY, user_id), description or "")
