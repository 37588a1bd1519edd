"""
Image Grid Component for Nine Picture Grid
3x3 grid of upload slots, remove buttons, zoom view and description
"""
from typing import Callable, List, Optional

import streamlit as st

from models.constants import GRID_COLUMNS

UploadHandler = Callable[[int, Optional[str], Optional[bytes], Optional[str]], None]
RemoveHandler = Callable[[int], None]


def _uploader_key(index: int) -> str:
    # The nonce changes after every upload so the widget comes back empty
    nonces = st.session_state.setdefault("uploader_nonce", {})
    return f"slot_uploader_{index}_{nonces.get(index, 0)}"


def _reset_uploader(index: int):
    nonces = st.session_state.setdefault("uploader_nonce", {})
    nonces[index] = nonces.get(index, 0) + 1


def _handle_upload(index: int, key: str, on_upload: UploadHandler):
    uploaded = st.session_state.get(key)
    if uploaded is None:
        on_upload(index, None, None, None)
        return
    on_upload(index, uploaded.name, uploaded.getvalue(), uploaded.type)
    _reset_uploader(index)


def render_zoom_view(images: List[Optional[str]]):
    """Enlarged view of the clicked image."""
    index = st.session_state.get("zoomed_index")
    if index is None or not images[index]:
        return
    with st.container(border=True):
        st.image(images[index], caption=f"Grid item {index + 1}", use_container_width=True)
        if st.button("Close", key="zoom_close", use_container_width=True):
            st.session_state.zoomed_index = None
            st.rerun()


def render_slot(index: int, image: Optional[str], on_upload: UploadHandler,
                on_remove: RemoveHandler, disabled: bool):
    with st.container(border=True):
        if image:
            st.image(image, caption=f"Grid item {index + 1}", use_container_width=True)
            col1, col2 = st.columns(2)
            with col1:
                if st.button("🔍 Zoom", key=f"zoom_{index}", use_container_width=True):
                    st.session_state.zoomed_index = index
                    st.rerun()
            with col2:
                st.button("✖ Remove", key=f"remove_{index}", type="primary", use_container_width=True,
                          disabled=disabled, on_click=on_remove, args=(index,))
        else:
            key = _uploader_key(index)
            st.markdown("🖼️ **Add Image**")
            st.file_uploader(
                f"Slot {index + 1}",
                type=["png", "jpg", "jpeg", "gif", "webp"],
                key=key,
                disabled=disabled,
                label_visibility="collapsed",
                on_change=_handle_upload,
                args=(index, key, on_upload),
            )


def render_image_grid(images: List[Optional[str]], on_upload: UploadHandler, on_remove: RemoveHandler,
                      is_busy: Callable[[int], bool] = lambda index: False, loading: bool = False):
    """Render the nine slots as a 3x3 grid."""
    render_zoom_view(images)
    for row_start in range(0, len(images), GRID_COLUMNS):
        cols = st.columns(GRID_COLUMNS)
        for offset, col in enumerate(cols):
            index = row_start + offset
            with col:
                render_slot(index, images[index], on_upload, on_remove, loading or is_busy(index))


def render_description(description: str, on_change: Callable[[str], None]):
    """Free-text description under the grid, saved on every change."""
    def _changed():
        on_change(st.session_state.grid_description_input)

    st.text_area(
        "Description",
        value=description,
        key="grid_description_input",
        placeholder="Add your description here...",
        height=130,
        on_change=_changed,
        label_visibility="collapsed",
    )
