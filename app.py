# =============================================================================
# Nine Picture Grid - Main Application
# =============================================================================
import asyncio
import logging
import os
import traceback
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import streamlit as st

from core.auth import SIGNED_IN, SIGNED_OUT, AuthService, AuthState
from core.backend import SupabaseBackend
from core.config import configure_logging, get_backend_config, image_url_optimization_enabled
from core.data_manager import LocalStore, load_grid_state, save_description, save_images
from core.debug_logger import LogStore, NetworkLog, measure_performance
from core.exceptions import ConfigurationError, describe_error
from core.grid import GridController, SlotArray, SlotGuard
from core.network import build_http_client
from core.storage import ImageStorage
from models.constants import DATA_DIR, LOCAL_STORE_FILE, STORAGE_BUCKET
from models.data_models import ActionResult, AuthResult, BackendConfig, LogType
from ui.auth_form import SIGN_IN, render_auth_form
from ui.debug_console import render_debug_console
from ui.image_grid import render_description, render_image_grid

logger = logging.getLogger(__name__)

# Page configuration
st.set_page_config(
    page_title="Nine Picture Grid",
    page_icon="🖼️",
    layout="centered",
    initial_sidebar_state="collapsed"
)


# -----------------------------------------------------------------------------
# Process-wide services (built once, shared by every browser session)
# -----------------------------------------------------------------------------

@st.cache_resource
def get_log_store() -> LogStore:
    configure_logging()
    return LogStore()


@st.cache_resource
def get_network_log() -> NetworkLog:
    return NetworkLog()


@st.cache_resource
def get_local_store() -> LocalStore:
    return LocalStore(os.path.join(DATA_DIR, LOCAL_STORE_FILE), get_log_store())


def get_config() -> Optional[BackendConfig]:
    try:
        return get_backend_config()
    except ConfigurationError as e:
        st.session_state.config_error = str(e)
        return None


@dataclass
class Services:
    backend: SupabaseBackend
    auth: AuthService
    storage: ImageStorage
    grid: GridController


@asynccontextmanager
async def open_services(config: BackendConfig):
    """One HTTP client per action, with network logging composed in."""
    store = get_log_store()
    async with build_http_client(store, get_network_log()) as http:
        backend = SupabaseBackend(config, http)
        auth = AuthService(backend, store, st.session_state.auth_state)
        storage = ImageStorage(backend, auth, store, STORAGE_BUCKET,
                               optimize_urls=image_url_optimization_enabled())
        grid = GridController(storage, store, st.session_state.slots, st.session_state.slot_guard)
        yield Services(backend, auth, storage, grid)


def run_action(action: Callable[[Services], Awaitable[Any]]) -> Any:
    """Drive one user action to completion against the backend."""
    config = get_config()
    if config is None:
        get_log_store().add_log("Backend is not configured", LogType.ERROR,
                                {"error": st.session_state.get("config_error")})
        return None

    async def _run():
        async with open_services(config) as services:
            return await action(services)

    st.session_state.loading = True
    try:
        return asyncio.run(_run())
    finally:
        st.session_state.loading = False


def show_result(result: Optional[ActionResult]):
    if result is None:
        st.toast("Backend is not configured", icon="🚨")
        return
    st.toast(f"**{result.title}**: {result.message}", icon="✅" if result.ok else "🚨")


# -----------------------------------------------------------------------------
# Session state
# -----------------------------------------------------------------------------

def _current_user_id() -> Optional[str]:
    session = st.session_state.auth_state.session
    return session.user.id if session else None


def _show_grid_state(images, description: str):
    st.session_state.slots.reset(images)
    st.session_state.description = description
    # The description widget keeps its own value until its key is dropped
    st.session_state.pop("grid_description_input", None)
    st.session_state.zoomed_index = None


def _on_auth_change(event: str, session):
    # Saved state belongs to one user: swap it whenever the signed-in user changes
    if event == SIGNED_IN and session is not None:
        _show_grid_state(*load_grid_state(get_local_store(), session.user.id))
        st.session_state.images_loaded = False
    elif event == SIGNED_OUT:
        _show_grid_state(None, "")
        st.session_state.images_loaded = False


def initialize_session_state():
    """Initialize Streamlit session state variables with automatic data loading."""
    store = get_log_store()

    if "initialized" in st.session_state:
        return

    store.add_log("Application component mounted", LogType.INFO)
    store.add_log("Application initialization started", LogType.INFO)

    st.session_state.slots = SlotArray()
    st.session_state.slot_guard = SlotGuard()
    st.session_state.description = ""
    st.session_state.auth_state = AuthState()
    st.session_state.auth_subscription = st.session_state.auth_state.on_change(_on_auth_change)
    st.session_state.images_loaded = False
    st.session_state.loading = False
    st.session_state.zoomed_index = None
    st.session_state.config_error = None

    config = get_config()
    if config is None:
        store.add_log("Application initialization failed", LogType.ERROR,
                      {"error": st.session_state.config_error})
        st.session_state.backend_connected = False
    else:
        st.session_state.backend_connected = bool(run_action(lambda svc: svc.backend.health()))

    st.session_state.initialized = True


# -----------------------------------------------------------------------------
# Actions
# -----------------------------------------------------------------------------

def handle_auth(mode: str, email: str, password: str) -> AuthResult:
    async def _auth(svc: Services) -> AuthResult:
        if mode == SIGN_IN:
            return await svc.auth.sign_in(email, password)
        return await svc.auth.sign_up(email, password)

    result = run_action(_auth)
    if result is None:
        return AuthResult(error=st.session_state.get("config_error") or "Backend is not configured")
    return result


def load_images():
    store = get_log_store()

    async def _load(svc: Services) -> ActionResult:
        try:
            await svc.storage.verify_access()
        except Exception as e:
            logger.warning("Storage access check failed: %s", e)
        with measure_performance(store, "Image load"):
            return await svc.grid.load_images()

    result = run_action(_load)
    st.session_state.images_loaded = True
    if result is not None:
        _save_images(result.images)
        if not result.ok:
            show_result(result)


def handle_upload(index: int, filename: Optional[str], content: Optional[bytes], content_type: Optional[str]):
    result = run_action(lambda svc: svc.grid.upload(index, filename, content, content_type))
    if result is not None and result.ok:
        _save_images(result.images)
    if result is not None and content is None:
        return
    show_result(result)


def handle_remove(index: int):
    result = run_action(lambda svc: svc.grid.remove(index))
    if result is not None and result.ok:
        _save_images(result.images)
        if st.session_state.get("zoomed_index") == index:
            st.session_state.zoomed_index = None
    show_result(result)


def _save_images(images):
    user_id = _current_user_id()
    if user_id:
        save_images(get_local_store(), user_id, images)


def handle_description(description: str):
    st.session_state.description = description
    user_id = _current_user_id()
    if user_id:
        save_description(get_local_store(), user_id, description)


def handle_sign_out():
    error = run_action(lambda svc: svc.auth.sign_out())
    if error:
        st.toast(f"**Error**: {error}", icon="🚨")


def backend_status() -> dict:
    config = get_config()
    session = st.session_state.auth_state.session
    return {
        "connected": st.session_state.get("backend_connected", False),
        "url": config.url if config else None,
        "masked_key": config.masked_key if config else None,
        "user": session.user if session else None,
    }


# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------

def render_header():
    st.markdown("<h1 style='text-align: center;'>Nine Picture Grid</h1>", unsafe_allow_html=True)
    if st.session_state.get("config_error"):
        st.error(st.session_state.config_error)


def render_grid_tab():
    if not st.session_state.images_loaded:
        with st.spinner("Loading images..."):
            load_images()

    guard: SlotGuard = st.session_state.slot_guard
    render_image_grid(
        st.session_state.slots.values,
        on_upload=handle_upload,
        on_remove=handle_remove,
        is_busy=guard.busy,
        loading=st.session_state.loading,
    )
    render_description(st.session_state.description, handle_description)


def render_sidebar():
    session = st.session_state.auth_state.session
    with st.sidebar:
        st.markdown(f"**Signed in as** `{session.user.email}`")
        if st.button("Sign Out", use_container_width=True):
            handle_sign_out()
            st.rerun()


def render_interface():
    store = get_log_store()
    network_log = get_network_log()
    render_header()

    if not st.session_state.auth_state.is_authenticated:
        auth_tab, debug_tab = st.tabs(["🔐 Sign In", "🔍 Debug"])
        with auth_tab:
            render_auth_form(handle_auth)
        with debug_tab:
            render_debug_console(store, network_log, backend_status())
        return

    render_sidebar()
    grid_tab, debug_tab = st.tabs(["🖼️ Grid", "🔍 Debug"])
    with grid_tab:
        render_grid_tab()
    with debug_tab:
        render_debug_console(store, network_log, backend_status())


def main():
    """Main application function."""
    try:
        initialize_session_state()
    except Exception as e:
        get_log_store().add_log("Application initialization failed", LogType.ERROR, describe_error(e))
        st.error(f"Failed to initialize application: {e}")
        st.error(f"Error details: {traceback.format_exc()}")
        st.stop()

    try:
        render_interface()
    except Exception as e:
        get_log_store().add_log("Unexpected error while rendering", LogType.ERROR, describe_error(e))
        st.error(f"Something went wrong: {e}")
        st.error(f"Error details: {traceback.format_exc()}")


if __name__ == "__main__":
    main()
