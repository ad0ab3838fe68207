# hlsrelay/config.py
import os
from dataclasses import dataclass
from typing import Mapping, Optional


# --- CONFIGURATION ---
DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"
DEFAULT_REFERER = "https://rapid-cloud.co/"


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once at startup and never mutated."""

    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    public_url: Optional[str] = None
    default_referer: str = DEFAULT_REFERER
    max_redirects: int = 5
    playlist_timeout: float = 30.0
    segment_timeout: float = 60.0
    chunk_size: int = 65536
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        public_url = env.get("PUBLIC_URL", "").strip().rstrip("/") or None

        return cls(
            port=int(env.get("PORT", DEFAULT_PORT)),
            host=env.get("HOST", DEFAULT_HOST),
            public_url=public_url,
            default_referer=env.get("DEFAULT_REFERER", DEFAULT_REFERER),
            max_redirects=int(env.get("MAX_REDIRECTS", 5)),
            playlist_timeout=float(env.get("PLAYLIST_TIMEOUT", 30)),
            segment_timeout=float(env.get("SEGMENT_TIMEOUT", 60)),
            chunk_size=int(env.get("CHUNK_SIZE", 65536)),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
