from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .loader import get_float_env, get_int_env, get_list_env, get_str_env

DEFAULT_UPLOAD_EXTENSIONS = (".jsonl", ".txt", ".csv", ".pdf", ".docx")
DEFAULT_UPLOAD_MAX_FILE_BYTES = 20 * 1024 * 1024

THREAD_STORE_BACKENDS = ("sqlite", "json")


@dataclass(kw_only=True)
class GatewayConfiguration:
    """Runtime settings for the assistant gateway."""

    openai_api_key: str = ""
    openai_base_url: Optional[str] = None
    assistant_id: Optional[str] = None

    # Run polling; worst case latency is roughly attempts * interval.
    poll_interval: float = 1.0
    max_poll_attempts: int = 30

    upload_extensions: tuple[str, ...] = DEFAULT_UPLOAD_EXTENSIONS
    upload_max_file_bytes: int = DEFAULT_UPLOAD_MAX_FILE_BYTES
    upload_purpose: str = "assistants"

    chat_log_dir: str = "logs"

    thread_store_backend: str = "sqlite"
    thread_db_path: str = "gateway.db"
    thread_json_path: str = "threads/threads.json"

    cache_ttl: float = 300.0
    cache_max_entries: int = 256
    cache_sweep_interval: float = 60.0

    allowed_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])

    def __post_init__(self) -> None:
        if self.thread_store_backend not in THREAD_STORE_BACKENDS:
            raise ValueError(
                f"THREAD_STORE_BACKEND must be one of {', '.join(THREAD_STORE_BACKENDS)}, "
                f"got {self.thread_store_backend!r}"
            )
        if self.max_poll_attempts < 1:
            raise ValueError("RUN_MAX_POLL_ATTEMPTS must be at least 1")
        if self.poll_interval < 0:
            raise ValueError("RUN_POLL_INTERVAL must not be negative")
        self.upload_extensions = tuple(_normalise_extension(ext) for ext in self.upload_extensions)

    @classmethod
    def from_env(cls) -> "GatewayConfiguration":
        return cls(
            openai_api_key=get_str_env("OPENAI_API_KEY"),
            openai_base_url=get_str_env("OPENAI_BASE_URL") or None,
            assistant_id=get_str_env("ASSISTANT_ID") or None,
            poll_interval=get_float_env("RUN_POLL_INTERVAL", 1.0),
            max_poll_attempts=get_int_env("RUN_MAX_POLL_ATTEMPTS", 30),
            upload_extensions=tuple(get_list_env("UPLOAD_ALLOWED_EXTENSIONS", list(DEFAULT_UPLOAD_EXTENSIONS))),
            upload_max_file_bytes=get_int_env("UPLOAD_MAX_FILE_BYTES", DEFAULT_UPLOAD_MAX_FILE_BYTES),
            upload_purpose=get_str_env("UPLOAD_PURPOSE", "assistants"),
            chat_log_dir=get_str_env("CHAT_LOG_DIR", "logs"),
            thread_store_backend=get_str_env("THREAD_STORE_BACKEND", "sqlite").lower(),
            thread_db_path=get_str_env("THREAD_DB_PATH", "gateway.db"),
            thread_json_path=get_str_env("THREAD_JSON_PATH", "threads/threads.json"),
            cache_ttl=get_float_env("RESPONSE_CACHE_TTL", 300.0),
            cache_max_entries=get_int_env("RESPONSE_CACHE_MAX_ENTRIES", 256),
            cache_sweep_interval=get_float_env("RESPONSE_CACHE_SWEEP_INTERVAL", 60.0),
            allowed_origins=get_list_env("ALLOWED_ORIGINS", ["http://localhost:3000"]),
        )


def _normalise_extension(ext: str) -> str:
    ext = ext.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"
