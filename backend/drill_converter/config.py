# backend/drill_converter/config.py
import os
from dataclasses import dataclass
from typing import Optional

ALLOWED_MIME_TYPES = ("audio/mpeg", "audio/wav", "audio/mp4", "audio/m4a")
MAX_UPLOAD_BYTES = 50 * 1024 * 1024  # 50MB


@dataclass
class Settings:
    upload_dir: str = "uploads"
    step_delay: float = 2.0  # seconds per simulated step
    total_steps: int = 10
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    store_backend: str = "memory"  # memory | sqlite
    database_url: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            upload_dir=os.environ.get("DRILL_UPLOAD_DIR", "uploads"),
            step_delay=float(os.environ.get("DRILL_STEP_DELAY", "2.0")),
            total_steps=int(os.environ.get("DRILL_TOTAL_STEPS", "10")),
            max_upload_bytes=int(os.environ.get("DRILL_MAX_UPLOAD_BYTES", str(MAX_UPLOAD_BYTES))),
            store_backend=os.environ.get("DRILL_STORE_BACKEND", "memory"),
            database_url=os.environ.get("DRILL_DATABASE_URL"),
            log_level=os.environ.get("DRILL_LOG_LEVEL", "INFO"),
            log_file=os.environ.get("DRILL_LOG_FILE"),
        )

    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        db_path = os.path.join(os.path.abspath(self.upload_dir), "conversions.db")
        return f"sqlite:///{db_path}"
