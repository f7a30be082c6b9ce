from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

_FALSY = {"0", "false", "False", "no", "off"}


def load_dotenv(env_path: Path | None = None) -> list[str]:
    """Export KEY=VALUE pairs from ``.env`` in the working directory.

    Variables already present in the environment win. Returns the names that
    were exported.
    """
    env_path = env_path or Path.cwd() / ".env"
    if not env_path.is_file():
        return []
    loaded = []
    for line in env_path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.strip().removeprefix("export ").partition("=")
        key, value = key.strip(), value.strip().strip("\"'")
        if not sep or not key or key.startswith("#") or not value or key in os.environ:
            continue
        os.environ[key] = value
        loaded.append(key)
    return loaded


class Settings(BaseModel):
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    redis_url: Optional[str] = None

    max_history_messages: int = 20
    context_messages: int = 30

    host: str = "127.0.0.1"
    port: int = 8002
    port_tries: int = 20
    reload: bool = True
    log_level: str = "info"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            redis_url=os.getenv("REDIS_URL") or None,
            max_history_messages=int(os.getenv("MAX_HISTORY_MESSAGES", "20")),
            context_messages=int(os.getenv("CONTEXT_MESSAGES", "30")),
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "8002")),
            port_tries=int(os.getenv("PORT_TRIES", "20")),
            reload=os.getenv("RELOAD", "1") not in _FALSY,
            log_level=os.getenv("LOG_LEVEL", "info"),
        )
