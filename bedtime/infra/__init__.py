"""
Infrastructure module - configuration, paths, logging and provider clients.
"""

from .config import (
    get_project_root,
    get_data_root,
    get_story_db_path,
    get_media_dir,
    get_story_vectors_dir,
    get_vector_namespace,
    get_max_attempts,
    ensure_data_directories,
)

from .logging_config import setup_logging

from .clients import get_openai_client

__all__ = [
    # config
    "get_project_root",
    "get_data_root",
    "get_story_db_path",
    "get_media_dir",
    "get_story_vectors_dir",
    "get_vector_namespace",
    "get_max_attempts",
    "ensure_data_directories",
    # logging
    "setup_logging",
    # clients
    "get_openai_client",
]
