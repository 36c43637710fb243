"""
Configuration and data path helpers for bedtime-story-generator.

Directory structure:
data/
 ├── stories.db                # Story store (SQLite)
 ├── media/                    # Generated assets
 │   ├── images/               # Cover art
 │   └── audio/                # Narration
 └── story_vectors/            # Embedding index, one pair per namespace
     ├── bedtime-ai.faiss
     └── bedtime-ai.json

Environment Variables:
- APP_ENV: "production" selects the production vector namespace (default: development)
- BEDTIME_DATA_DIR: Override data root (default: <project>/data)
- STORY_DB_PATH: Override story database path
- MEDIA_DIR: Override generated media directory
- PUBLIC_MEDIA_BASE_URL: URL prefix for media files (default: /media)
- STORY_MAX_ATTEMPTS: Retry ceiling per story (default: 3)
- DAILY_STORY_USER_ID: Owner of the daily public story (default: unset)
- STORY_MODEL: Text model spec (default: gpt-4o)
- IMAGE_MODEL / IMAGE_SIZE: Cover art model and size
- TTS_MODEL / TTS_VOICE: Narration model and voice
- EMBED_PROVIDER / EMBED_MODEL / EMBED_DIMENSIONS: Embedding backend
- LOG_LEVEL / LOG_DIR: Logging

Values are read at call time so tests can override them with monkeypatch.
"""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger("bedtime_story_generator")

# Vector namespaces keep environments from reading each other's stories
PRODUCTION_NAMESPACE = "bedtime-ai"
DEVELOPMENT_NAMESPACE = "bedtime-ai-dev"

# =============================================================================
# Environment Variable Helpers
# =============================================================================

def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    val = os.getenv(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    elif val in ("false", "0", "no", "off"):
        return False
    return default


def _get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return int(val)
        except ValueError:
            logger.warning(f"[Config] Invalid integer for {key}: {val}, using default: {default}")
    return default

# =============================================================================
# Environment
# =============================================================================

def get_app_env() -> str:
    """Deployment environment name."""
    return os.getenv("APP_ENV", "development").lower()


def is_production() -> bool:
    return get_app_env() == "production"


def get_vector_namespace() -> str:
    """
    Vector index namespace for the current environment.

    Returns:
        "bedtime-ai" in production, "bedtime-ai-dev" otherwise
    """
    return PRODUCTION_NAMESPACE if is_production() else DEVELOPMENT_NAMESPACE

# =============================================================================
# Paths
# =============================================================================

def get_project_root() -> Path:
    """
    Get the project root directory.

    File is at bedtime/infra/config.py, so project root is 2 levels up.
    """
    return Path(__file__).parent.parent.parent.resolve()


def get_data_root() -> Path:
    """Get the data root directory."""
    env_path = os.getenv("BEDTIME_DATA_DIR")
    if env_path:
        return Path(env_path).resolve()
    return get_project_root() / "data"


def get_story_db_path() -> Path:
    """Get the story database path."""
    env_path = os.getenv("STORY_DB_PATH")
    if env_path:
        return Path(env_path).resolve()
    return get_data_root() / "stories.db"


def get_media_dir() -> Path:
    """Get the generated media root."""
    env_path = os.getenv("MEDIA_DIR")
    if env_path:
        return Path(env_path).resolve()
    return get_data_root() / "media"


def get_public_media_base_url() -> str:
    """URL prefix under which media files are served."""
    return os.getenv("PUBLIC_MEDIA_BASE_URL", "/media").rstrip("/")


def get_story_vectors_dir() -> Path:
    """Get the story vector index directory."""
    return get_data_root() / "story_vectors"


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_logs_dir() -> Path:
    """Get the logs directory."""
    return Path(os.getenv("LOG_DIR", "logs"))


def ensure_data_directories() -> dict:
    """
    Create data directories if they don't exist.

    Returns:
        Mapping of directory name to path
    """
    directories = {
        "data": get_data_root(),
        "media": get_media_dir(),
        "story_vectors": get_story_vectors_dir(),
    }
    for name, path in directories.items():
        path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"[Config] Ensured {name} directory: {path}")
    return directories

# =============================================================================
# Pipeline and Model Settings
# =============================================================================

def get_max_attempts() -> int:
    """Retry ceiling for a story's pipeline."""
    return _get_env_int("STORY_MAX_ATTEMPTS", 3)


def get_story_model() -> str:
    return os.getenv("STORY_MODEL", "gpt-4o")


def get_image_settings() -> dict:
    return {
        "model": os.getenv("IMAGE_MODEL", "dall-e-3"),
        "size": os.getenv("IMAGE_SIZE", "1792x1024"),
    }


def get_tts_settings() -> dict:
    return {
        "model": os.getenv("TTS_MODEL", "tts-1"),
        "voice": os.getenv("TTS_VOICE", "nova"),
    }


def get_embedding_settings() -> dict:
    return {
        "provider": os.getenv("EMBED_PROVIDER", "openai").lower(),
        "model": os.getenv("EMBED_MODEL", "text-embedding-3-small"),
        "dimensions": _get_env_int("EMBED_DIMENSIONS", 512),
    }


def is_embedding_sync_enabled() -> bool:
    """Whether text changes are re-embedded into the vector index."""
    return _get_env_bool("EMBEDDING_SYNC_ENABLED", True)


def get_daily_story_user_id() -> Optional[str]:
    """Account that owns the daily public story, if one is configured."""
    return os.getenv("DAILY_STORY_USER_ID") or None
