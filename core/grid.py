# =============================================================================
# Grid Controller for Nine Picture Grid
# =============================================================================
"""
Upload, remove and load handlers for the nine image slots.

Slot values live in a ``SlotArray``; each change copies the whole array,
patches one index and swaps the copy in, so an update to one slot never
drops a concurrent update to another. ``SlotGuard`` keeps at most one action
in flight per slot.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterable, List, Optional, Set, Tuple

from core.debug_logger import LogStore
from core.exceptions import SlotBusyError, ValidationError, describe_error
from core.storage import ImageStorage
from models.constants import GRID_SIZE, SLOT_PREFIX
from models.data_models import ActionResult, LogType

logger = logging.getLogger(__name__)


def slot_path(index: int) -> str:
    """Storage object key for a zero-based slot index."""
    check_index(index)
    return f"{SLOT_PREFIX}{index + 1}"


def check_index(index: int) -> None:
    if not isinstance(index, int) or not 0 <= index < GRID_SIZE:
        raise ValidationError(f"Slot index must be between 0 and {GRID_SIZE - 1}, got {index!r}")


def empty_grid() -> List[Optional[str]]:
    return [None] * GRID_SIZE


def replace_slot(images: Iterable[Optional[str]], index: int, value: Optional[str]) -> List[Optional[str]]:
    """Return a copy of ``images`` with one slot replaced; the input is left untouched."""
    check_index(index)
    updated = list(images)
    if len(updated) != GRID_SIZE:
        raise ValidationError(f"Grid must have {GRID_SIZE} slots, got {len(updated)}")
    updated[index] = value
    return updated


class SlotArray:
    """The nine slot values, replaced wholesale on every change."""

    def __init__(self, images: Optional[Iterable[Optional[str]]] = None):
        values = list(images) if images is not None else empty_grid()
        if len(values) != GRID_SIZE:
            raise ValidationError(f"Grid must have {GRID_SIZE} slots, got {len(values)}")
        self._values: Tuple[Optional[str], ...] = tuple(values)
        self._lock = threading.Lock()

    @property
    def values(self) -> List[Optional[str]]:
        return list(self._values)

    def __getitem__(self, index: int) -> Optional[str]:
        return self._values[index]

    def set(self, index: int, value: Optional[str]) -> List[Optional[str]]:
        with self._lock:
            self._values = tuple(replace_slot(self._values, index, value))
            return list(self._values)

    def reset(self, images: Optional[Iterable[Optional[str]]] = None) -> List[Optional[str]]:
        values = list(images) if images is not None else empty_grid()
        if len(values) != GRID_SIZE:
            raise ValidationError(f"Grid must have {GRID_SIZE} slots, got {len(values)}")
        with self._lock:
            self._values = tuple(values)
            return list(self._values)


class SlotGuard:
    """Per-slot mutual exclusion for in-flight uploads and removals."""

    def __init__(self):
        self._busy: Set[int] = set()
        self._lock = threading.Lock()

    def try_acquire(self, index: int) -> bool:
        with self._lock:
            if index in self._busy:
                return False
            self._busy.add(index)
            return True

    def release(self, index: int) -> None:
        with self._lock:
            self._busy.discard(index)

    def busy(self, index: int) -> bool:
        return index in self._busy

    @contextmanager
    def hold(self, index: int):
        if not self.try_acquire(index):
            raise SlotBusyError(f"Slot {index + 1} already has an action in progress")
        try:
            yield
        finally:
            self.release(index)


class GridController:
    """Runs grid actions and turns every outcome into log entries and a toast result."""

    def __init__(self, storage: ImageStorage, store: LogStore, slots: SlotArray,
                 guard: Optional[SlotGuard] = None):
        self.storage = storage
        self.store = store
        self.slots = slots
        self.guard = guard or SlotGuard()

    def _failure(self, title: str, message: str) -> ActionResult:
        return ActionResult(ok=False, title=title, message=message, images=self.slots.values)

    async def load_images(self) -> ActionResult:
        """Map ``slot-N`` objects in the bucket to public URLs; empty grid on failure."""
        try:
            self.store.add_log("Starting image load process", LogType.INFO)
            files = await self.storage.list_images()
            names = {f.name for f in files}
            images = empty_grid()

            if not names:
                self.store.add_log("No images found in bucket - showing empty state", LogType.INFO)
            for index in range(GRID_SIZE):
                path = slot_path(index)
                if path in names:
                    images[index] = self.storage.get_image_url(path)
                    self.store.add_log(f"Loaded image for slot {index + 1}", LogType.SUCCESS)

            self.slots.reset(images)
            self.store.add_log("Image load process completed", LogType.SUCCESS, {
                "loadedImages": sum(1 for image in images if image),
            })
            return ActionResult(ok=True, title="Success", message="Images loaded", images=self.slots.values)
        except Exception as e:
            self.store.add_log("Image load process failed", LogType.ERROR, describe_error(e))
            self.slots.reset()
            return self._failure("Error", "Failed to load images. Please try again later.")

    async def upload(self, index: int, filename: Optional[str], content: Optional[bytes],
                     content_type: Optional[str]) -> ActionResult:
        try:
            check_index(index)
        except ValidationError as e:
            self.store.add_log("Invalid slot selected", LogType.ERROR, describe_error(e))
            return self._failure("Error", str(e))

        if content is None:
            self.store.add_log("No file selected for upload", LogType.WARNING)
            return self._failure("Error", "No file selected")

        if not content_type or not content_type.startswith("image/"):
            self.store.add_log("Invalid file type selected", LogType.ERROR, {"fileType": content_type})
            return self._failure("Error", "Please select an image file")

        try:
            with self.guard.hold(index):
                self.store.add_log("Starting file upload process", LogType.INFO, {
                    "fileName": filename,
                    "fileSize": len(content),
                    "fileType": content_type,
                    "slot": index + 1,
                })
                url = await self.storage.upload_image(slot_path(index), content, content_type)
                images = self.slots.set(index, url)
        except SlotBusyError as e:
            self.store.add_log("Upload rejected: slot busy", LogType.WARNING, {"slot": index + 1})
            return self._failure("Error", str(e))
        except Exception as e:
            self.store.add_log("Upload process failed", LogType.ERROR, describe_error(e))
            return self._failure("Error", f"Failed to upload image: {e}")

        self.store.add_log("File upload successful", LogType.SUCCESS, {"slot": index + 1, "publicUrl": url})
        return ActionResult(ok=True, title="Success", message="Image uploaded successfully", images=images)

    async def remove(self, index: int) -> ActionResult:
        try:
            check_index(index)
        except ValidationError as e:
            self.store.add_log("Invalid slot selected", LogType.ERROR, describe_error(e))
            return self._failure("Error", str(e))

        try:
            with self.guard.hold(index):
                self.store.add_log(f"Removing image from slot {index + 1}", LogType.INFO)
                await self.storage.remove_image(slot_path(index))
                images = self.slots.set(index, None)
        except SlotBusyError as e:
            self.store.add_log("Removal rejected: slot busy", LogType.WARNING, {"slot": index + 1})
            return self._failure("Error", str(e))
        except Exception as e:
            self.store.add_log("Image removal failed", LogType.ERROR, describe_error(e))
            return self._failure("Error", f"Failed to remove image: {e}")

        self.store.add_log("Image removed successfully", LogType.SUCCESS, {"slot": index + 1})
        return ActionResult(ok=True, title="Success", message="Image removed successfully", images=images)
