"""
Pytest configuration and fixtures for Catalog Composer tests.

Provides shared fixtures, test configuration, and synthetic images
(device cutouts, white-backdrop accessory photos, badge and overlay assets)
for running tests across the entire package.
"""

import io

import pytest
from pathlib import Path
from PIL import Image, ImageDraw

from catalog_composer.assets import AssetLibrary
from catalog_composer.config import AppConfig, reset_config


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    return buffer.getvalue()


def make_device(size=(400, 800), box=(100, 100, 300, 700), color=(200, 200, 200, 255)) -> Image.Image:
    """Transparent cutout with one opaque rectangle standing in for the phone."""
    image = Image.new('RGBA', size, (0, 0, 0, 0))
    ImageDraw.Draw(image).rectangle((box[0], box[1], box[2] - 1, box[3] - 1), fill=color)
    return image


def make_solid(size, color) -> Image.Image:
    return Image.new('RGBA', size, color)


@pytest.fixture(autouse=True)
def _fresh_global_config():
    """Never let a memoized config leak between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def png():
    """Encode a PIL image as PNG bytes."""
    return encode_png


@pytest.fixture
def assets_dir(tmp_path) -> Path:
    """Asset tree with badges, decals, icons, films and a default part photo."""
    root = tmp_path / "assets"
    for sub in ("badges", "overlays", "films", "parts"):
        (root / sub).mkdir(parents=True)

    make_solid((100, 50), (0, 128, 0, 255)).save(root / "badges" / "logo1.png")
    make_solid((100, 50), (0, 0, 255, 255)).save(root / "badges" / "logo2.png")
    make_solid((40, 40), (0, 0, 255, 255)).save(root / "overlays" / "crack.png")
    make_solid((20, 20), (255, 0, 0, 255)).save(root / "overlays" / "no-power.png")

    # Opaque bezel strip with translucent haze on both sides
    film = Image.new('RGBA', (140, 800), (0, 0, 0, 0))
    ImageDraw.Draw(film).rectangle((0, 0, 139, 799), fill=(180, 220, 255, 60))
    ImageDraw.Draw(film).rectangle((20, 0, 119, 799), fill=(255, 140, 0, 255))
    film.save(root / "films" / "tempered-glass.png")

    part = Image.new('RGBA', (300, 300), (255, 255, 255, 255))
    ImageDraw.Draw(part).rectangle((50, 75, 249, 224), fill=(30, 30, 30, 255))
    part.save(root / "parts" / "charging-port.png")

    return root


@pytest.fixture
def config(tmp_path, assets_dir) -> AppConfig:
    """Engine configuration pointing at the temporary assets."""
    return AppConfig(
        ENVIRONMENT='testing',
        ASSETS_DIR=str(assets_dir),
        OUTPUT_DIR=str(tmp_path / "output"),
        LOG_FILE=str(tmp_path / "logs" / "composer.log"),
    )


@pytest.fixture
def assets(config) -> AssetLibrary:
    return AssetLibrary(config.ASSETS_DIR)


@pytest.fixture
def device_image() -> Image.Image:
    """400x800 cutout, phone occupying x 100-300, y 100-700."""
    return make_device()


@pytest.fixture
def back_image() -> Image.Image:
    """Back photo of the same phone, framed slightly wider."""
    return make_device(box=(80, 120, 320, 680), color=(90, 90, 90, 255))


@pytest.fixture
def white_logo_image() -> Image.Image:
    """300x300 white backdrop with a 200x150 logo at (50, 75)."""
    image = Image.new('RGBA', (300, 300), (255, 255, 255, 255))
    ImageDraw.Draw(image).rectangle((50, 75, 249, 224), fill=(20, 60, 160, 255))
    return image
