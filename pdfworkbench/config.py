"""Runtime settings read from the environment (and an optional .env file)."""

import os
import logging
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    thumbnail_dpi: int = 72
    thumbnail_max_width: int = 200
    thumbnail_max_height: int = 280
    max_upload_mb: int = 25
    max_files_per_session: int = 20
    batch_max_workers: int = 1
    session_ttl_minutes: int = 60
    log_level: str = "INFO"
    producer: str = "PDF Workbench"

    @property
    def thumbnail_size(self) -> Tuple[int, int]:
        return self.thumbnail_max_width, self.thumbnail_max_height

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


def load_settings() -> Settings:
    return Settings(
        thumbnail_dpi=int(os.getenv("THUMBNAIL_DPI", "72")),
        thumbnail_max_width=int(os.getenv("THUMBNAIL_MAX_WIDTH", "200")),
        thumbnail_max_height=int(os.getenv("THUMBNAIL_MAX_HEIGHT", "280")),
        max_upload_mb=int(os.getenv("MAX_UPLOAD_MB", "25")),
        max_files_per_session=int(os.getenv("MAX_FILES_PER_SESSION", "20")),
        batch_max_workers=max(1, int(os.getenv("BATCH_MAX_WORKERS", "1"))),
        session_ttl_minutes=int(os.getenv("SESSION_TTL_MINUTES", "60")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        producer=os.getenv("APP_PRODUCER", "PDF Workbench"),
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
    logging.getLogger().setLevel(getattr(logging, settings.log_level, logging.INFO))
