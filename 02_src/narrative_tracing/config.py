"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "narrative_traces.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"

DEFAULT_ORIGIN_SYSTEM = "langchain"


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve NARRATIVE_TRACE_DB to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


@dataclass
class Settings:
    """Environment-provided defaults for the tracing stack."""

    story_id: str | None = None
    session_id: str | None = None
    trace_id: str | None = None
    db_path: PathLike = DEFAULT_DB_PATH
    origin_system: str = DEFAULT_ORIGIN_SYSTEM
    log_level: str = "INFO"
    api_host: str = "localhost"
    api_port: int = 8000


def load_settings() -> Settings:
    """Read settings from the process environment."""
    return Settings(
        story_id=os.getenv("NARRATIVE_STORY_ID") or None,
        session_id=os.getenv("COAIAPY_SESSION_ID") or None,
        trace_id=os.getenv("COAIAPY_TRACE_ID") or None,
        db_path=resolve_db_path(os.getenv("NARRATIVE_TRACE_DB")),
        origin_system=os.getenv("NARRATIVE_ORIGIN_SYSTEM", DEFAULT_ORIGIN_SYSTEM),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        api_host=os.getenv("API_HOST", "localhost"),
        api_port=int(os.getenv("API_PORT", "8000")),
    )
