"""
SalesIQ — Configuration

Centralised settings from environment variables.
All tuneable constants live here — zero magic numbers in other files.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
import certifi

os.environ.setdefault("SSL_CERT_FILE", certifi.where())
os.environ.setdefault("REQUESTS_CA_BUNDLE", certifi.where())

load_dotenv()

VERSION = "1.0.0"

# Bump to invalidate cached analyses whenever the result shape changes
CACHE_VERSION = "v2"


def resolve_api_key() -> Optional[str]:
    """Read the Gemini key at call time. API_KEY takes precedence."""
    return os.getenv("API_KEY") or os.getenv("GEMINI_API_KEY") or None


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerConfig:
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8080"))
    cors_origins: tuple[str, ...] = (
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    )


# ---------------------------------------------------------------------------
# Gemini analysis
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AnalysisConfig:
    """Model selection and sampling for the single analysis request."""
    model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    # Slightly above 0 for more natural coaching language
    temperature: float = float(os.getenv("GEMINI_TEMPERATURE", "0.1"))
    response_mime_type: str = "application/json"


# ---------------------------------------------------------------------------
# Pipeline tunables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineConfig:
    # Minimum visible delay before a cache hit flips to SUCCESS (seconds)
    cache_hit_delay: float = float(os.getenv("SALESIQ_CACHE_HIT_DELAY", "0.3"))
    # Upper bound on cached sessions; 0 keeps everything for the process lifetime
    max_sessions: int = int(os.getenv("SALESIQ_MAX_SESSIONS", "0"))


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StorageConfig:
    # Empty → in-memory only (no persistence collaborator)
    data_dir: str = os.getenv("SALESIQ_DATA_DIR", "")
    # Empty → a temporary directory owned by the server lifespan
    upload_dir: str = os.getenv("SALESIQ_UPLOAD_DIR", "")
    media_url_prefix: str = "/media"

    @property
    def persistence_enabled(self) -> bool:
        return bool(self.data_dir)


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------

server_cfg = ServerConfig()
analysis_cfg = AnalysisConfig()
pipeline_cfg = PipelineConfig()
storage_cfg = StorageConfig()
