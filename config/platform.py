import os
import tempfile
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


def detect_platform() -> Literal["vercel", "railway", "fly", "generic"]:
    """Auto-detect deployment platform based on environment variables."""
    if os.getenv("VERCEL"):
        return "vercel"
    if os.getenv("RAILWAY_ENVIRONMENT_ID"):
        return "railway"
    if os.getenv("FLY_APP_NAME"):
        return "fly"
    return "generic"


def get_port() -> int:
    """Get port from environment, with platform-specific defaults."""
    return int(os.getenv("PORT", "8080"))


def get_host() -> str:
    """Get host binding address."""
    return os.getenv("HOST", "0.0.0.0")


def get_tmp_dir() -> str:
    """Serverless platforms only allow writes below /tmp."""
    if tmp_dir := os.getenv("TMP_DIR"):
        return tmp_dir
    return tempfile.gettempdir()


SUPPORTED_FORMATS = (
    "aac", "aiff", "aif", "flac", "mp3", "m4a", "m4b",
    "oga", "ogg", "opus", "wav", "wma",
)


class AppConfig(BaseModel):
    """Immutable runtime configuration handed to every component."""

    model_config = ConfigDict(frozen=True)

    version: str = "0.1.0"
    platform: str = "generic"

    # Upstream service account
    tonie_email: str = ""
    tonie_password: str = ""
    tonie_token_url: str = (
        "https://login.tonies.com/auth/realms/tonies/protocol/openid-connect/token"
    )
    tonie_client_id: str = "my-tonies"
    tonie_api_base: str = "https://api.tonie.cloud/v2"
    user_agent: str = "tonie-uploader/1.0"

    # Shared secret for the frontend
    app_password: str = ""

    # Upload limits
    max_upload_bytes: int = 1073741824  # 1 GB
    max_remote_bytes: int = 536870912  # 512 MB, tmp storage quota
    max_filename_length: int = 128
    supported_formats: tuple[str, ...] = SUPPORTED_FORMATS

    # Remote audio
    tmp_dir: str = tempfile.gettempdir()
    download_timeout_seconds: float = 60.0

    debug_title_marker: str = "DEBUG"
    strict_multipart: bool = False

    @classmethod
    def from_env(cls, overrides: Optional[dict] = None) -> "AppConfig":
        values = {
            "platform": detect_platform(),
            "tonie_email": os.getenv("TONIE_EMAIL", ""),
            "tonie_password": os.getenv("TONIE_PASSWORD", ""),
            "app_password": os.getenv("APP_PASSWORD", ""),
            "tmp_dir": get_tmp_dir(),
            "download_timeout_seconds": float(os.getenv("DOWNLOAD_TIMEOUT", "60")),
            "strict_multipart": os.getenv("STRICT_MULTIPART", "false").lower() == "true",
        }
        if api_base := os.getenv("TONIE_API_BASE"):
            values["tonie_api_base"] = api_base.rstrip("/")
        if token_url := os.getenv("TONIE_TOKEN_URL"):
            values["tonie_token_url"] = token_url
        if client_id := os.getenv("TONIE_CLIENT_ID"):
            values["tonie_client_id"] = client_id
        values.update(overrides or {})
        return cls(**values)

    def missing_settings(self) -> list[str]:
        """Names of required settings that are empty."""
        missing = []
        if not self.tonie_email:
            missing.append("TONIE_EMAIL")
        if not self.tonie_password:
            missing.append("TONIE_PASSWORD")
        if not self.app_password:
            missing.append("APP_PASSWORD")
        return missing


class Config:
    """Global process settings."""

    PLATFORM = detect_platform()
    PORT = get_port()
    HOST = get_host()
    VERSION = "0.1.0"

    # Feature flags
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"
