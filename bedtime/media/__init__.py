"""
Media module - cover art and narration for finished stories.
"""

from .storage import FileStorage
from .image import generate_image, fetch_image_bytes
from .audio import generate_audio

__all__ = [
    "FileStorage",
    "generate_image",
    "fetch_image_bytes",
    "generate_audio",
]
