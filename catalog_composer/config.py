"""
Configuration management for the catalog compositing engine
Loads settings from YAML files with environment variable overrides
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Optional
from pydantic import BaseModel, ValidationError
from loguru import logger


class AppConfig(BaseModel):
    """Main application configuration"""

    ENVIRONMENT: str = "development"

    # Paths
    ASSETS_DIR: str = "assets"
    CATALOG_FILE: str = "config/catalog.yaml"
    OUTPUT_DIR: str = "output"
    FONT_PATH: Optional[str] = None  # Falls back to DejaVuSans, then Pillow's default

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/composer.log"

    # Canvas
    CANVAS_SIZE: int = 800
    BACKGROUND_COLOR: str = "#ffffff"
    BASE_DRAW_BLUR: float = 0.2
    COMPOSE_DRAW_BLUR: float = 0.15

    # Bounds detection
    ALPHA_THRESHOLD: int = 10
    FILM_ALPHA_THRESHOLD: int = 160  # ignores translucent haze on tempered glass
    ALPHA_BOUNDS_PADDING_PX: int = 0
    WHITE_BG_THRESHOLD: int = 248
    LEFT_WHITE_CROP_THRESHOLD: int = 240
    LEFT_WHITE_CROP_PADDING_PX: int = 4

    # Alpha refinement
    REFINE_RADIUS: int = 1
    REFINE_BOOST: float = 1.05

    # Layout
    EDGE_BADGE_MARGIN_RATIO: float = 0.03
    CENTER_BADGE_GAP_RATIO: float = 0.02
    FILM_MIN_OVERLAP_PX: int = 6
    SKU_MAX_FONT_PX: int = 40
    SKU_MIN_FONT_PX: int = 12
    SKU_MARGIN_PX: int = 40
    SKU_Y_RATIO: float = 0.06
    SKU_COLOR: str = "#111111"

    # Batch
    ITEM_TIMEOUT_S: float = 30.0
    CUTOUT_DEVICE_IMAGES: bool = False
    CHECK_DEVICE_BACKDROP: bool = True
    WHITE_BACKDROP_MIN_RATIO: float = 0.6


# Environment variables that may replace a settings value
ENV_OVERRIDES = ('LOG_LEVEL', 'ASSETS_DIR', 'CATALOG_FILE', 'OUTPUT_DIR', 'FONT_PATH')


def load_yaml_config(file_path: str) -> Dict:
    """Settings mapping from one YAML file; empty when absent or unreadable."""
    path = Path(file_path)
    if not path.exists():
        logger.debug(f"No settings file at {file_path}")
        return {}

    try:
        data = yaml.safe_load(path.read_text(encoding='utf-8'))
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Could not read settings from {file_path}: {e}")
        return {}

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.error(f"Settings file {file_path} must hold a mapping, got {type(data).__name__}")
        return {}
    return data


def load_config(environment: str = "development") -> AppConfig:
    """
    Build the configuration in layers, later ones winning:
    settings.yaml, settings_<environment>.yaml, then environment variables.
    """
    settings: Dict = {}
    for file_name in ("settings.yaml", f"settings_{environment}.yaml"):
        settings.update(load_yaml_config(f"config/{file_name}"))

    settings['ENVIRONMENT'] = os.getenv('COMPOSER_ENV', environment)
    for key in ENV_OVERRIDES:
        value = os.getenv(key)
        if value is not None:
            settings[key] = value

    try:
        return AppConfig(**settings)
    except ValidationError as e:
        logger.error(f"Invalid settings for {environment}, using defaults: {e}")
        return AppConfig()


_config_instance = None


def get_config() -> AppConfig:
    """Get the global configuration instance"""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config(os.getenv('COMPOSER_ENV', 'development'))
    return _config_instance


def reset_config() -> None:
    """Forget the memoized configuration (used after settings change)"""
    global _config_instance
    _config_instance = None
