"""
Configuration management for the shorts worker.

Centralizes all configuration loading from environment variables
and provides type-safe access to configuration values.
"""

import os
from typing import Dict, Any, Optional
from dataclasses import dataclass


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class WorkerConfig:
    """Configuration for the shorts worker"""

    # Storage settings
    STORAGE_TYPE: str = "s3"  # s3, local
    STORAGE_CONFIG: Dict[str, Any] = None
    JOB_STORE_KEY: str = "shorts/_jobs.json"
    POST_META_KEY: str = "posts/_meta.json"

    # Queue settings
    POLL_INTERVAL_MS: int = 15000
    MAX_RETRIES: int = 3
    BACKOFF_BASE_MS: int = 2000
    BACKOFF_CAP_MS: int = 60000
    DEFAULT_MAX_DURATION: int = 45
    MAX_DURATION_LIMIT: int = 180

    # Transcription settings
    ENABLE_TRANSCRIPTION: bool = True
    TRANSCRIBE_MODEL: str = "whisper-1"
    MAX_LINE_CHARS: int = 42

    # Render settings
    FFMPEG_PATH: str = "ffmpeg"
    ENCODER_TIMEOUT_SEC: int = 600
    RENDER_FPS: int = 30
    VISUALIZATION: str = "spectrum"  # spectrum, waves
    BRAND_TEXT: Optional[str] = None
    BAR_COLOR: str = "#052962"
    BACKGROUND_COLOR: str = "#101418"
    FONT_FILE: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"

    # HTTP server
    ENABLE_HTTP_SERVER: bool = False
    HTTP_PORT: int = 8000

    # Data directory
    DATA_DIR: str = "/app/data"

    @classmethod
    def from_env(cls) -> 'WorkerConfig':
        """Load configuration from environment variables"""
        config = cls()

        # Storage configuration
        config.STORAGE_TYPE = os.getenv("STORAGE_TYPE", "s3")
        config.STORAGE_CONFIG = cls._parse_storage_config()
        config.JOB_STORE_KEY = os.getenv("JOB_STORE_KEY", "shorts/_jobs.json")
        config.POST_META_KEY = os.getenv("POST_META_KEY", "posts/_meta.json")

        # Queue settings
        config.POLL_INTERVAL_MS = int(os.getenv("WORKER_POLL_MS", "15000"))
        config.MAX_RETRIES = int(os.getenv("WORKER_MAX_RETRIES", "3"))
        config.BACKOFF_BASE_MS = int(os.getenv("WORKER_BACKOFF_BASE_MS", "2000"))
        config.BACKOFF_CAP_MS = int(os.getenv("WORKER_BACKOFF_CAP_MS", "60000"))
        config.DEFAULT_MAX_DURATION = int(os.getenv("DEFAULT_MAX_DURATION", "45"))
        config.MAX_DURATION_LIMIT = int(os.getenv("MAX_DURATION_LIMIT", "180"))

        # Transcription settings
        config.ENABLE_TRANSCRIPTION = _env_bool("ENABLE_TRANSCRIPTION", "true")
        config.TRANSCRIBE_MODEL = os.getenv("TRANSCRIBE_MODEL", "whisper-1")
        config.MAX_LINE_CHARS = int(os.getenv("MAX_LINE_CHARS", "42"))

        # Render settings
        config.FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
        config.ENCODER_TIMEOUT_SEC = int(os.getenv("ENCODER_TIMEOUT_SEC", "600"))
        config.RENDER_FPS = int(os.getenv("RENDER_FPS", "30"))
        config.VISUALIZATION = os.getenv("VISUALIZATION", "spectrum")
        config.BRAND_TEXT = os.getenv("BRAND_TEXT") or None
        config.BAR_COLOR = os.getenv("BAR_COLOR", "#052962")
        config.BACKGROUND_COLOR = os.getenv("BACKGROUND_COLOR", "#101418")
        config.FONT_FILE = os.getenv("FONT_FILE") or None

        # Logging
        config.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # HTTP server
        config.ENABLE_HTTP_SERVER = _env_bool("WORKER_DEV_HTTP", "false")
        config.HTTP_PORT = int(os.getenv("WORKER_HTTP_PORT", "8000"))

        # Data directory
        config.DATA_DIR = os.getenv("DATA_DIR", "/app/data")

        return config

    @classmethod
    def _parse_storage_config(cls) -> Dict[str, Any]:
        """Parse storage specific configuration"""
        storage_type = os.getenv("STORAGE_TYPE", "s3")

        if storage_type == "s3":
            return {
                "bucket": os.getenv("S3_BUCKET"),
                "endpoint": os.getenv("S3_ENDPOINT") or None,
                "region": os.getenv("AWS_REGION", "auto"),
                "access_key_id": os.getenv("S3_ACCESS_KEY_ID") or None,
                "secret_access_key": os.getenv("S3_SECRET_ACCESS_KEY") or None,
                "public_base": os.getenv("S3_PUBLIC_BASE", ""),
            }
        elif storage_type == "local":
            return {
                "root": os.getenv("LOCAL_STORE_DIR", os.path.join(os.getenv("DATA_DIR", "/app/data"), "store")),
                "public_base": os.getenv("LOCAL_PUBLIC_BASE", ""),
            }
        else:
            return {}

    def validate(self) -> None:
        """Validate configuration and raise errors for missing required values"""
        if self.STORAGE_CONFIG is None:
            self.STORAGE_CONFIG = {}

        if self.STORAGE_TYPE not in ("s3", "local"):
            raise ValueError(f"Unsupported storage type: {self.STORAGE_TYPE}")

        required_vars = []

        if self.STORAGE_TYPE == "s3" and not self.STORAGE_CONFIG.get("bucket"):
            required_vars.append("S3_BUCKET")

        if self.STORAGE_TYPE == "local" and not self.STORAGE_CONFIG.get("root"):
            required_vars.append("LOCAL_STORE_DIR")

        if required_vars:
            raise ValueError(f"Missing required environment variables: {', '.join(required_vars)}")

        if self.VISUALIZATION not in ("spectrum", "waves"):
            raise ValueError(f"Unsupported visualization: {self.VISUALIZATION}")

        if self.MAX_RETRIES < 1:
            raise ValueError("WORKER_MAX_RETRIES must be at least 1")

        if self.MAX_LINE_CHARS < 1:
            raise ValueError("MAX_LINE_CHARS must be at least 1")
