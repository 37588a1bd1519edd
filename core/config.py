# =============================================================================
# Configuration for Nine Picture Grid
# =============================================================================

import logging
import os
from typing import Any, Mapping, Optional

import streamlit as st
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import ConfigurationError
from models.constants import SUPABASE_SECRETS_SECTION
from models.data_models import BackendConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _secrets() -> Mapping[str, Any]:
    # Streamlit secrets act like a dict but raise when no secrets file exists
    try:
        secrets_obj = getattr(st, "secrets", {}) or {}
        secrets_obj.get(SUPABASE_SECRETS_SECTION, None)
        return secrets_obj
    except Exception:
        return {}


def get_backend_config(secrets: Optional[Mapping[str, Any]] = None,
                       environ: Optional[Mapping[str, str]] = None) -> BackendConfig:
    """Resolve the Supabase URL and anon key from secrets, then the environment."""
    secrets = _secrets() if secrets is None else secrets
    environ = os.environ if environ is None else environ

    url = None
    key = None
    section = secrets.get(SUPABASE_SECRETS_SECTION, None)
    if section:
        url = section.get("url", None)
        key = section.get("anon_key", None)
    url = url or secrets.get("supabase_url", None) or environ.get("SUPABASE_URL")
    key = key or secrets.get("supabase_anon_key", None) or environ.get("SUPABASE_ANON_KEY")

    if not url or not key:
        raise ConfigurationError(
            "Supabase is not configured. Set [supabase] url and anon_key in "
            ".streamlit/secrets.toml or SUPABASE_URL / SUPABASE_ANON_KEY in the environment."
        )
    try:
        return BackendConfig(url=url, anon_key=key)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid Supabase configuration: {e}") from e


def configure_logging(level: Optional[str] = None) -> None:
    """Set up console logging for server-side debugging."""
    level_name = (level or os.environ.get("GRIDAPP_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)


def image_url_optimization_enabled(secrets: Optional[Mapping[str, Any]] = None,
                                   environ: Optional[Mapping[str, str]] = None) -> bool:
    """WebP/quality URL rewriting is opt-in; plain public URLs are served by default."""
    secrets = _secrets() if secrets is None else secrets
    environ = os.environ if environ is None else environ
    value = secrets.get("optimize_image_urls", None)
    if value is None:
        value = environ.get("GRIDAPP_OPTIMIZE_IMAGE_URLS", "")
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")
