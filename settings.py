import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    uploads_dir: Path
    log_level: str
    image_fetch_timeout: float
    default_llm_provider: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read configuration from the environment (and a local .env file, if any)."""
    load_dotenv()
    return Settings(
        uploads_dir=Path(os.getenv("LESSON_UPLOADS_DIR", "uploads")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        image_fetch_timeout=float(os.getenv("IMAGE_FETCH_TIMEOUT", "10")),
        default_llm_provider=os.getenv("DEFAULT_LLM_PROVIDER", "openai"),
    )
