from pydantic import BaseModel, Field


class ConfigResponse(BaseModel):
    """Public, non-secret settings exposed to the front-end."""

    assistant_configured: bool = Field(..., description="Whether a default assistant is set")
    upload_extensions: list[str] = Field(..., description="Extensions accepted for directory uploads")
    upload_max_file_bytes: int = Field(..., description="Per-file upload size limit")
    poll_interval: float = Field(..., description="Seconds between run status polls")
    max_poll_attempts: int = Field(..., description="Run status polls before giving up")
    thread_store_backend: str = Field(..., description="Conversation store in use")
