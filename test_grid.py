#!/usr/bin/env python3
"""
Tests for the grid controller: uploads, removals and loading.
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

import httpx
import pytest

from conftest import BACKEND_URL, entries_of, make_session
from core.auth import AuthService, AuthState
from core.exceptions import SlotBusyError, ValidationError
from core.grid import GridController, SlotArray, SlotGuard, empty_grid, replace_slot, slot_path
from core.storage import ImageStorage
from models.constants import STORAGE_BUCKET
from models.data_models import LogType

PNG = b"\x89PNG\r\n\x1a\nfake-image-bytes"


@pytest.fixture
def slots():
    return SlotArray()


@pytest.fixture
def grid(backend, signed_in_auth, store, slots):
    storage = ImageStorage(backend, signed_in_auth, store)
    return GridController(storage, store, slots, SlotGuard())


def public_url(index: int) -> str:
    return f"{BACKEND_URL}/storage/v1/object/public/{STORAGE_BUCKET}/slot-{index + 1}"


def test_slot_path():
    assert slot_path(0) == "slot-1"
    assert slot_path(8) == "slot-9"
    with pytest.raises(ValidationError):
        slot_path(9)


def test_replace_slot_copies():
    images = empty_grid()
    updated = replace_slot(images, 4, "url")
    assert updated[4] == "url"
    assert images == [None] * 9
    with pytest.raises(ValidationError):
        replace_slot([None] * 3, 0, "url")


def test_slot_guard():
    guard = SlotGuard()
    assert guard.try_acquire(2)
    assert not guard.try_acquire(2)
    assert guard.try_acquire(3)
    guard.release(2)
    assert not guard.busy(2)
    with guard.hold(2):
        assert guard.busy(2)
        with pytest.raises(SlotBusyError):
            with guard.hold(2):
                pass
    assert not guard.busy(2)


@pytest.mark.asyncio
async def test_uploads_leave_other_slots_alone(grid, slots, fake_supabase):
    assert slots.values == [None] * 9

    first = await grid.upload(2, "cat.png", PNG, "image/png")
    assert first.ok
    assert first.message == "Image uploaded successfully"
    assert slots.values == [None, None, public_url(2), None, None, None, None, None, None]

    second = await grid.upload(5, "dog.png", PNG, "image/png")
    assert second.ok
    expected = [None] * 9
    expected[2] = public_url(2)
    expected[5] = public_url(5)
    assert slots.values == expected
    assert second.images == expected

    upload = [r for r in fake_supabase.storage_calls() if r.method == "POST"][0]
    assert upload.url.path == f"/storage/v1/object/{STORAGE_BUCKET}/slot-3"
    assert upload.headers["content-type"] == "image/png"
    assert upload.headers["x-upsert"] == "true"
    assert "immutable" in upload.headers["cache-control"]


@pytest.mark.asyncio
async def test_invalid_file_type_is_rejected(grid, slots, store, fake_supabase):
    before = slots.values

    result = await grid.upload(0, "notes.txt", b"hello", "text/plain")

    assert not result.ok
    assert result.message == "Please select an image file"
    assert fake_supabase.storage_calls() == []
    errors = entries_of(store, LogType.ERROR)
    assert len(errors) == 1
    assert errors[0].message == "Invalid file type selected"
    assert slots.values == before


@pytest.mark.asyncio
async def test_missing_file_logs_warning(grid, store, fake_supabase):
    result = await grid.upload(0, None, None, None)
    assert not result.ok
    assert entries_of(store, LogType.WARNING)[0].message == "No file selected for upload"
    assert fake_supabase.requests == []


@pytest.mark.asyncio
async def test_busy_slot_rejects_second_action(grid, slots, fake_supabase):
    grid.guard.try_acquire(4)

    result = await grid.upload(4, "cat.png", PNG, "image/png")

    assert not result.ok
    assert "in progress" in result.message
    assert fake_supabase.storage_calls() == []
    assert slots.values == [None] * 9


@pytest.mark.asyncio
async def test_upload_failure_keeps_slots(grid, slots, store, fake_supabase):
    fake_supabase.overrides[f"POST /storage/v1/object/{STORAGE_BUCKET}/slot-1"] = httpx.Response(
        403, json={"statusCode": "403", "error": "Unauthorized", "message": "new row violates row-level security policy"},
    )

    result = await grid.upload(0, "cat.png", PNG, "image/png")

    assert not result.ok
    assert result.message.startswith("Failed to upload image:")
    assert slots.values == [None] * 9
    messages = [e.message for e in entries_of(store, LogType.ERROR)]
    assert "Upload failed" in messages
    assert "Upload process failed" in messages
    assert not grid.guard.busy(0)


@pytest.mark.asyncio
async def test_upload_requires_session(backend, store, slots, fake_supabase):
    storage = ImageStorage(backend, AuthService(backend, store, AuthState()), store)
    grid = GridController(storage, store, slots)

    result = await grid.upload(0, "cat.png", PNG, "image/png")

    assert not result.ok
    assert "Authentication required" in result.message
    assert fake_supabase.requests == []


@pytest.mark.asyncio
async def test_expired_session_is_refreshed_before_upload(backend, store, slots, fake_supabase):
    fake_supabase.overrides["POST /auth/v1/token"] = httpx.Response(200, json={
        "access_token": "refreshed-access-token",
        "refresh_token": "refreshed-refresh-token",
        "expires_at": 1893456000,
        "user": {"id": "user-1", "email": "ada@example.com", "role": "authenticated"},
    })
    auth = AuthService(backend, store, AuthState(make_session(expires_at=1_000)))
    grid = GridController(ImageStorage(backend, auth, store), store, slots)

    result = await grid.upload(0, "cat.png", PNG, "image/png")

    assert result.ok
    upload = fake_supabase.storage_calls()[-1]
    assert upload.headers["authorization"] == "Bearer refreshed-access-token"
    assert auth.session.access_token == "refreshed-access-token"


@pytest.mark.asyncio
async def test_remove_clears_only_that_slot(grid, slots, fake_supabase):
    await grid.upload(0, "a.png", PNG, "image/png")
    await grid.upload(1, "b.png", PNG, "image/png")

    result = await grid.remove(0)

    assert result.ok
    assert result.message == "Image removed successfully"
    assert slots[0] is None
    assert slots[1] == public_url(1)
    assert "slot-1" not in fake_supabase.objects
    delete = [r for r in fake_supabase.requests if r.method == "DELETE"][0]
    assert delete.url.path == f"/storage/v1/object/{STORAGE_BUCKET}"


@pytest.mark.asyncio
async def test_remove_failure_keeps_image(grid, slots, store, fake_supabase):
    await grid.upload(3, "a.png", PNG, "image/png")
    fake_supabase.overrides[f"DELETE /storage/v1/object/{STORAGE_BUCKET}"] = httpx.Response(
        500, json={"message": "internal error"},
    )

    result = await grid.remove(3)

    assert not result.ok
    assert slots[3] == public_url(3)
    assert "Image removal failed" in [e.message for e in entries_of(store, LogType.ERROR)]


@pytest.mark.asyncio
async def test_invalid_index(grid, store):
    result = await grid.remove(12)
    assert not result.ok
    assert entries_of(store, LogType.ERROR)[0].message == "Invalid slot selected"


@pytest.mark.asyncio
async def test_load_images_maps_slots(grid, slots, fake_supabase):
    fake_supabase.objects.update({"slot-2": PNG, "slot-9": PNG, "unrelated.png": PNG})

    result = await grid.load_images()

    assert result.ok
    expected = [None] * 9
    expected[1] = public_url(1)
    expected[8] = public_url(8)
    assert slots.values == expected


@pytest.mark.asyncio
async def test_load_images_failure_resets_to_empty(grid, slots, store, fake_supabase):
    slots.reset(["stale"] * 9)
    fake_supabase.overrides[f"POST /storage/v1/object/list/{STORAGE_BUCKET}"] = httpx.Response(
        500, json={"message": "bucket unavailable"},
    )

    result = await grid.load_images()

    assert not result.ok
    assert slots.values == [None] * 9
    assert "Image load process failed" in [e.message for e in entries_of(store, LogType.ERROR)]


@pytest.mark.asyncio
async def test_every_backend_call_is_logged(grid, store, network_log):
    await grid.upload(0, "cat.png", PNG, "image/png")
    network = [e for e in store.snapshot() if e.message == "Network request completed"]
    assert len(network) == 1
    assert '"isBackend": true' in network[0].details
    assert network_log.snapshot()[0].request_body == f"<{len(PNG)} bytes>"
