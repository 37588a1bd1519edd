"""
Debug Console Component for Nine Picture Grid
Shows the debug log, errors, network traffic and backend status
"""
import json
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd
import streamlit as st

from core.debug_logger import LogStore, NetworkLog, Subscription
from models.constants import CONSOLE_COLLAPSED_HEIGHT, CONSOLE_EXPANDED_HEIGHT, LOG_TYPE_STYLES
from models.data_models import LogEntry, LogType, NetworkRequestRecord

NETWORK_FILTERS = {"All": "all", "Backend": "backend", "Other": "other"}
STATUS_ICONS = {"success": "🟢", "redirect": "🔵", "error": "🔴", "unknown": "⚪"}


def style_for(log_type: Any) -> Dict[str, str]:
    """Presentation rule for a log type; unknown types render as info."""
    key = log_type.value if isinstance(log_type, LogType) else str(log_type)
    return LOG_TYPE_STYLES.get(key, LOG_TYPE_STYLES["info"])


def format_timestamp(entry: LogEntry) -> str:
    return entry.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def filter_entries(entries: Iterable[LogEntry], types: Optional[Iterable[Any]] = None,
                   query: str = "") -> List[LogEntry]:
    """Keep entries of the given types whose message or details contain ``query``."""
    wanted = {LogType(t) for t in types} if types else None
    needle = query.strip().lower()
    result = []
    for entry in entries:
        if wanted is not None and entry.type not in wanted:
            continue
        if needle and needle not in entry.message.lower() and needle not in (entry.details or "").lower():
            continue
        result.append(entry)
    return result


def count_by_type(entries: Iterable[LogEntry]) -> Dict[str, int]:
    counts = {t.value: 0 for t in LogType}
    for entry in entries:
        counts[entry.type.value] += 1
    return counts


def entries_to_frame(entries: Sequence[LogEntry]) -> pd.DataFrame:
    """Table view of the log, newest first."""
    rows = [
        {
            "Time": format_timestamp(entry),
            "Type": entry.type.value.upper(),
            "Message": entry.message,
            "Details": entry.details or "",
        }
        for entry in entries
    ]
    return pd.DataFrame(rows, columns=["Time", "Type", "Message", "Details"])


def type_cell_style(value: str) -> str:
    """CSS for a Type cell in the table view."""
    style = style_for(str(value).lower())
    return f"color: {style['color']}; background-color: {style['background']}"


def style_frame(frame: pd.DataFrame):
    return frame.style.map(type_cell_style, subset=["Type"])


def filter_requests(records: Iterable[NetworkRequestRecord], mode: str = "all") -> List[NetworkRequestRecord]:
    if mode == "backend":
        return [r for r in records if r.is_backend]
    if mode == "other":
        return [r for r in records if not r.is_backend]
    return list(records)


class DebugConsoleView:
    """
    The console's local copy of the log.

    ``mount`` takes the store's current entries and subscribes so every later
    change replaces them; ``unmount`` releases the subscription. Use it as a
    context manager so the subscription never outlives the render.
    """

    def __init__(self, store: LogStore):
        self.store = store
        self.entries: tuple = ()
        self._subscription: Optional[Subscription] = None

    @property
    def mounted(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def mount(self) -> "DebugConsoleView":
        if not self.mounted:
            self.entries = self.store.snapshot()
            self._subscription = self.store.subscribe(self._on_change)
        return self

    def unmount(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _on_change(self, entries) -> None:
        self.entries = entries

    def clear(self) -> None:
        self.store.clear_logs()

    def __enter__(self) -> "DebugConsoleView":
        return self.mount()

    def __exit__(self, *exc_info) -> None:
        self.unmount()


def render_log_entry(entry: LogEntry):
    """Render one entry as an alert coloured by type, details as a code block."""
    style = style_for(entry.type)
    alert = getattr(st, style["alert"])
    alert(f"**{entry.message}**  \n`{format_timestamp(entry)}`", icon=style["icon"])
    if entry.details:
        st.code(entry.details, language="json")


def render_logs_panel(entries: Sequence[LogEntry], height: int):
    counts = count_by_type(entries)
    cols = st.columns(4)
    for col, log_type in zip(cols, LogType):
        with col:
            st.metric(f"{style_for(log_type)['icon']} {log_type.value.title()}", counts[log_type.value])

    col1, col2, col3 = st.columns([2, 2, 1])
    with col1:
        selected = st.multiselect("Types", [t.value for t in LogType], key="debug_type_filter")
    with col2:
        query = st.text_input("Search", key="debug_search", placeholder="Filter messages and details")
    with col3:
        as_table = st.toggle("Table", key="debug_as_table")

    visible = filter_entries(entries, selected, query)
    if not visible:
        st.info("No logs available")
        return

    if as_table:
        st.dataframe(style_frame(entries_to_frame(visible)), use_container_width=True, hide_index=True, height=height)
        return

    with st.container(height=height):
        for entry in visible:
            render_log_entry(entry)


def render_errors_panel(entries: Sequence[LogEntry], height: int):
    errors = filter_entries(entries, [LogType.ERROR])
    if not errors:
        st.info("No errors logged")
        return
    with st.container(height=height):
        for entry in errors:
            st.error(f"**{entry.message}**  \n`{format_timestamp(entry)}`", icon=style_for(LogType.ERROR)["icon"])
            if not entry.details:
                continue
            try:
                details = json.loads(entry.details)
            except ValueError:
                details = None
            stack = details.pop("stack", None) if isinstance(details, dict) else None
            st.code(json.dumps(details, indent=2) if details is not None else entry.details, language="json")
            if stack:
                st.markdown("**Stack Trace:**")
                st.code(stack, language="python")


def render_network_request(record: NetworkRequestRecord):
    kind = "🗄️" if record.is_backend else "🌐"
    status = record.status if record.status is not None else "failed"
    title = f"{kind} {record.method} {record.url} · {STATUS_ICONS[record.status_class()]} {status} · ⏱️ {record.duration_ms}ms"
    with st.expander(title, expanded=False):
        if record.error:
            st.error(record.error)
        st.markdown("**Request Headers**")
        st.code(json.dumps(record.request_headers, indent=2), language="json")
        if record.request_body:
            st.markdown("**Request Body**")
            st.code(record.request_body)
        st.markdown("**Response Headers**")
        st.code(json.dumps(record.response_headers, indent=2), language="json")
        if record.response_body:
            st.markdown("**Response Body**")
            st.code(record.response_body)


def render_network_panel(network_log: NetworkLog, height: int):
    choice = st.radio("Show", list(NETWORK_FILTERS), horizontal=True, key="network_filter")
    records = filter_requests(network_log.snapshot(), NETWORK_FILTERS[choice])
    if not records:
        st.info("No network requests recorded")
        return
    with st.container(height=height):
        for record in records:
            render_network_request(record)


def render_backend_panel(status: Dict[str, Any]):
    """Connection, project and auth status of the backend."""
    st.markdown("#### 🗄️ Connection Status")
    if status.get("connected"):
        st.success("Connected")
    else:
        st.error("Disconnected")

    st.markdown("#### Project Information")
    st.markdown(f"**Project URL:** `{status.get('url') or 'not configured'}`")
    st.markdown(f"**API Key:** `{status.get('masked_key') or 'not configured'}`")

    st.markdown("#### Authentication Status")
    user = status.get("user")
    if user is None:
        st.info("No User Logged In")
        return
    st.markdown(f"**User ID:** `{user.id}`")
    st.markdown(f"**Email:** `{user.email}`")
    if user.last_sign_in_at:
        st.markdown(f"**Last Sign In:** `{user.last_sign_in_at}`")


def render_debug_console(store: LogStore, network_log: Optional[NetworkLog] = None,
                         backend_status: Optional[Dict[str, Any]] = None):
    """Render the Debug tab."""
    if "debug_expanded" not in st.session_state:
        st.session_state.debug_expanded = False

    col1, col2, col3, col4 = st.columns([3, 1, 1, 1])
    with col1:
        st.subheader("🔍 Debug Information")
    with col2:
        label = "Collapse" if st.session_state.debug_expanded else "Expand"
        if st.button(label, key="debug_expand", use_container_width=True):
            st.session_state.debug_expanded = not st.session_state.debug_expanded
            st.rerun()
    with col3:
        clear_clicked = st.button("✖ Clear Logs", key="debug_clear", use_container_width=True)
    with col4:
        st.download_button("⬇ Export", store.get_log_text(), file_name="debug_log.txt",
                           key="debug_export", use_container_width=True)

    height = CONSOLE_EXPANDED_HEIGHT if st.session_state.debug_expanded else CONSOLE_COLLAPSED_HEIGHT

    with DebugConsoleView(store) as view:
        if clear_clicked:
            view.clear()

        logs_tab, errors_tab, network_tab, backend_tab = st.tabs(["Logs", "Errors", "Network", "Backend"])
        with logs_tab:
            if not view.entries:
                st.info("No logs available")
            else:
                render_logs_panel(view.entries, height)
        with errors_tab:
            render_errors_panel(view.entries, height)
        with network_tab:
            if network_log is None:
                st.info("Network logging is not enabled")
            else:
                render_network_panel(network_log, height)
        with backend_tab:
            render_backend_panel(backend_status or {})
