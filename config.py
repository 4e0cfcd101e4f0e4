import logging
import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_API_URL = "http://localhost:5000/api/v1"
DEFAULT_TOKEN_PATH = Path.home() / ".marketplace-dashboard" / "token.json"


@dataclass(frozen=True)
class Settings:
    api_url: str = DEFAULT_API_URL
    token_path: Path = DEFAULT_TOKEN_PATH
    debounce_seconds: float = 0.3
    poll_interval_seconds: float = 30.0
    page_size: int = 10
    log_level: str = "INFO"

    @property
    def media_url(self) -> str:
        # Uploaded files are served from the API host, outside the versioned prefix
        return self.api_url.replace("/api/v1", "")


def load_settings() -> Settings:
    return Settings(
        api_url=os.getenv("API_URL", DEFAULT_API_URL).rstrip("/"),
        token_path=Path(os.getenv("TOKEN_PATH", str(DEFAULT_TOKEN_PATH))).expanduser(),
        debounce_seconds=int(os.getenv("SEARCH_DEBOUNCE_MS", "300")) / 1000,
        poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", "30")),
        page_size=int(os.getenv("PAGE_SIZE", "10")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
