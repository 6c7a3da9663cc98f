"""
Asset loading for badges, decals, icons, film overlays and default part photos.
"""

from pathlib import Path
from typing import Callable, Dict, Optional, Set

from PIL import Image
from loguru import logger

from .errors import DecodeFailureError, OverlayAssetMissingError
from .surface import decode_image


Fetcher = Callable[[str], Optional[bytes]]


class AssetLibrary:
    """Resolves asset references and caches the decoded images."""

    def __init__(self, root: str = "assets", fetcher: Optional[Fetcher] = None):
        self.root = Path(root)
        self.fetcher = fetcher
        self._image_cache: Dict[str, Image.Image] = {}
        self.missing: Set[str] = set()

    def resolve_path(self, ref: str) -> Path:
        """Map a catalog reference ('/assets/badges/logo1.png') to a file path."""
        rel = ref.lstrip('/')
        if rel.startswith('assets/'):
            rel = rel[len('assets/'):]
        return self.root / rel

    def fetch_bytes(self, ref: str) -> Optional[bytes]:
        """Raw bytes for a reference, via the injected fetcher or the assets directory."""
        if self.fetcher is not None:
            try:
                data = self.fetcher(ref)
            except Exception as e:
                logger.warning(f"Asset fetcher failed for {ref}: {e}")
                data = None
            if data:
                return data

        path = self.resolve_path(ref)
        if not path.exists():
            logger.warning(f"Asset not found: {path}")
            return None

        try:
            return path.read_bytes()
        except OSError as e:
            logger.warning(f"Failed to read asset {path}: {e}")
            return None

    def load(self, ref: str) -> Image.Image:
        """Decoded RGBA image for a reference; raises OverlayAssetMissingError."""
        if ref in self._image_cache:
            return self._image_cache[ref]

        data = self.fetch_bytes(ref)
        if data is None:
            raise OverlayAssetMissingError(ref, str(self.resolve_path(ref)))

        try:
            image = decode_image(data, ref)
        except DecodeFailureError as e:
            raise OverlayAssetMissingError(ref, str(self.resolve_path(ref))) from e

        self._image_cache[ref] = image
        logger.debug(f"Loaded asset: {ref} ({image.size})")
        return image

    def try_load(self, ref: Optional[str]) -> Optional[Image.Image]:
        """Like load(), but logs and returns None for a missing asset."""
        if not ref:
            return None
        try:
            return self.load(ref)
        except OverlayAssetMissingError as e:
            logger.warning(f"{e.message}, skipping overlay step")
            self.missing.add(ref)
            return None

    def clear(self) -> None:
        """Drop cached images and the record of missing references."""
        self._image_cache.clear()
        self.missing.clear()
