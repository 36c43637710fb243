"""
Local file storage for generated media.

Files are written under MEDIA_DIR and referenced by their path relative
to it. Only relative paths are persisted on the Story; public URLs are
built at read time.
"""

import logging
import uuid
from io import BytesIO
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from bedtime.infra.config import get_media_dir, get_public_media_base_url
from bedtime.pipeline.errors import GenerationTransportError

logger = logging.getLogger(__name__)


class FileStorage:
    """Durable storage for cover images and narration audio."""

    def __init__(self, root: Optional[Path] = None, public_base_url: Optional[str] = None):
        """
        Initialize storage.

        Args:
            root: Directory files are written under (default: MEDIA_DIR)
            public_base_url: URL prefix for public file URLs
        """
        self.root = Path(root) if root is not None else get_media_dir()
        self.public_base_url = (
            public_base_url.rstrip("/") if public_base_url is not None
            else get_public_media_base_url()
        )

    def _write(self, relative_path: str, data: bytes) -> str:
        target = self.root / relative_path
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            target.write_bytes(data)
        except OSError as e:
            logger.error(f"[FileStorage] Write failed for {target}: {e}")
            raise GenerationTransportError(f"could not store {relative_path}: {e}") from e

        logger.debug(f"[FileStorage] Wrote {len(data)} bytes to {target}")
        return relative_path

    def write_file(self, filename: str, data: bytes) -> str:
        """
        Store a file under audio/.

        Args:
            filename: File name, e.g. "<story_id>.mp3"
            data: File contents

        Returns:
            Relative path of the stored file
        """
        return self._write(f"audio/{filename}", data)

    def write_image(self, filename: str, data: bytes) -> dict:
        """
        Store an image under images/ with a unique prefix.

        Args:
            filename: Base file name, e.g. "cover.png"
            data: Encoded image bytes

        Returns:
            Dict with path, width, height and format

        Raises:
            GenerationTransportError: If the bytes are not a readable image
        """
        try:
            with Image.open(BytesIO(data)) as image:
                width, height = image.size
                image_format = (image.format or "").lower() or None
        except (UnidentifiedImageError, OSError) as e:
            raise GenerationTransportError(f"generated image could not be decoded: {e}") from e

        path = self._write(f"images/{uuid.uuid4().hex}-{filename}", data)
        return {
            "path": path,
            "width": width,
            "height": height,
            "format": image_format,
        }

    def absolute_path(self, relative_path: str) -> Path:
        """Resolve a stored relative path on disk."""
        return self.root / relative_path

    def public_url(self, relative_path: Optional[str]) -> Optional[str]:
        """Turn a stored relative path into a public URL."""
        if relative_path is None:
            return None
        return f"{self.public_base_url}/{relative_path.lstrip('/')}"
