# =============================================================================
# Data Models for Nine Picture Grid
# =============================================================================

import json
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_details(details: Any) -> Optional[str]:
    """Serialize a structured details payload to indented multi-line text."""
    if details is None:
        return None
    if isinstance(details, str):
        return details
    return json.dumps(details, indent=2, default=str, ensure_ascii=False)


class LogType(str, Enum):
    """Closed set of debug log entry types."""
    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"
    ERROR = "error"


class LogEntry(BaseModel):
    """One notable application event shown in the debug console."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utc_now)
    message: str = Field(..., min_length=1)
    type: LogType = LogType.INFO
    details: Optional[str] = None

    @classmethod
    def create(cls, message: str, type: Any = LogType.INFO, details: Any = None) -> "LogEntry":
        """Build an entry stamped with the current time; structured details are serialized."""
        return cls(message=message, type=LogType(type), details=format_details(details))

    def label(self) -> str:
        return f"[{self.type.value.upper()}] {self.message}"


class NetworkRequestRecord(BaseModel):
    """A single outbound HTTP call observed by the network logging transport."""
    model_config = ConfigDict(frozen=True)

    url: str
    method: str = "GET"
    status: Optional[int] = None
    duration_ms: int = Field(0, ge=0)
    request_headers: Dict[str, str] = Field(default_factory=dict)
    response_headers: Dict[str, str] = Field(default_factory=dict)
    request_body: Optional[str] = None
    response_body: Optional[str] = None
    is_backend: bool = False
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def failed(self) -> bool:
        return self.error is not None

    def status_class(self) -> str:
        """Bucket the status code the way the network panel colours it."""
        if self.status is None:
            return "unknown"
        if 200 <= self.status < 300:
            return "success"
        if 300 <= self.status < 400:
            return "redirect"
        if self.status >= 400:
            return "error"
        return "unknown"


class StorageObject(BaseModel):
    """File descriptor returned by a bucket listing."""
    name: str
    id: Optional[str] = None
    updated_at: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class User(BaseModel):
    id: str
    email: Optional[str] = None
    role: Optional[str] = None
    aud: Optional[str] = None
    confirmed_at: Optional[str] = None
    last_sign_in_at: Optional[str] = None


class Session(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: Optional[int] = None
    user: User

    def is_expired(self, now: Optional[float] = None, margin: int = 0) -> bool:
        """True once ``expires_at`` (epoch seconds) is within ``margin`` of ``now``."""
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return self.expires_at - margin <= now


class AuthResult(BaseModel):
    """Outcome of a sign-in or sign-up call."""
    user: Optional[User] = None
    session: Optional[Session] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.user is not None

    @property
    def pending_confirmation(self) -> bool:
        """A sign-up that created the user but returned no session awaits email confirmation."""
        return self.ok and self.session is None


class ActionResult(BaseModel):
    """Outcome of a grid action, rendered by the UI as a toast."""
    ok: bool
    title: str
    message: str
    images: List[Optional[str]] = Field(default_factory=list)


class BackendConfig(BaseModel):
    """Connection settings for the hosted backend."""
    url: str
    anon_key: str

    @field_validator("url")
    @classmethod
    def normalize_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("backend url must not be empty")
        return v

    @field_validator("anon_key")
    @classmethod
    def require_key(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("anon key must not be empty")
        return v

    @property
    def masked_key(self) -> str:
        if len(self.anon_key) <= 16:
            return "*" * len(self.anon_key)
        return f"{self.anon_key[:8]}...{self.anon_key[-8:]}"
