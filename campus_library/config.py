import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


def _default_db_file() -> str:
    return str(Path.home() / ".campus-library" / "library.db")


@dataclass
class Settings:
    # Database settings
    db_file: str = os.getenv("LIBRARY_DB_FILE") or _default_db_file()

    # Read cache window and debounced save delay (milliseconds)
    cache_ttl_ms: int = int(os.getenv("LIBRARY_CACHE_TTL_MS", "500"))
    save_delay_ms: int = int(os.getenv("LIBRARY_SAVE_DELAY_MS", "300"))

    # Lending settings
    loan_days: int = int(os.getenv("LIBRARY_LOAN_DAYS", "14"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Management System")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LIBRARY_LOG_LEVEL", "WARNING").upper()
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")


settings = Settings()
