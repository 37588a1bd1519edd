"""
Auth Form Component for Nine Picture Grid
Sign in / sign up form shown until the user has a session
"""
from typing import Callable

import streamlit as st

from models.constants import MIN_PASSWORD_LENGTH
from models.data_models import AuthResult

SIGN_IN = "sign_in"
SIGN_UP = "sign_up"

AuthSubmit = Callable[[str, str, str], AuthResult]


def auth_feedback(mode: str, result: AuthResult) -> tuple:
    """Map an auth outcome to (kind, message) for display."""
    if not result.ok:
        return "error", result.error or "Invalid response from authentication service"
    if mode == SIGN_UP and result.pending_confirmation:
        return "info", "Please check your email to confirm your account"
    if mode == SIGN_IN:
        return "success", "Signed in successfully"
    return "success", "Account created successfully"


def render_auth_form(on_submit: AuthSubmit):
    """Render the form; ``on_submit(mode, email, password)`` performs the auth call."""
    if "auth_mode" not in st.session_state:
        st.session_state.auth_mode = SIGN_IN
    mode = st.session_state.auth_mode
    is_login = mode == SIGN_IN

    st.subheader("Sign In" if is_login else "Create Account")
    with st.form("auth_form", clear_on_submit=False):
        email = st.text_input("Email", placeholder="Email")
        password = st.text_input(
            "Password", type="password", placeholder="Password",
            help=f"At least {MIN_PASSWORD_LENGTH} characters",
        )
        submitted = st.form_submit_button("Sign In" if is_login else "Sign Up", use_container_width=True)

    if submitted:
        with st.spinner("Loading..."):
            result = on_submit(mode, email, password)
        kind, message = auth_feedback(mode, result)
        if result.ok and result.session is not None:
            st.toast(message, icon="✅")
            st.rerun()
        getattr(st, kind)(message)

    toggle_label = "Need an account? Sign Up" if is_login else "Already have an account? Sign In"
    if st.button(toggle_label, key="auth_toggle"):
        st.session_state.auth_mode = SIGN_UP if is_login else SIGN_IN
        st.rerun()
