"""
Catalog Composer - compositing engine for phone-repair catalog images
Turns device and accessory photos into standardized 800x800 product composites
"""

import os
from pathlib import Path
from typing import Optional

from loguru import logger
from dotenv import load_dotenv

from .config import AppConfig, load_config
from .catalog import load_catalog
from .orchestrator import BackgroundRemover, BatchOrchestrator, create_orchestrator


__version__ = "0.3.0"


def create_composer(environment: Optional[str] = None,
                    remove_background: Optional[BackgroundRemover] = None) -> BatchOrchestrator:
    """Composer factory: configuration, logging and catalog in one call"""

    # Load environment variables
    load_dotenv()

    environment = environment or os.getenv('COMPOSER_ENV', 'development')
    config = load_config(environment)

    # Configure logging
    setup_logging(config)

    # Ensure output directories exist
    setup_directories(config)

    catalog = load_catalog(config.CATALOG_FILE)
    orchestrator = create_orchestrator(catalog, config, remove_background=remove_background)

    logger.info(f"Catalog Composer initialized in {environment} mode with {len(catalog)} products")

    return orchestrator


def setup_logging(config: AppConfig):
    """Configure loguru logging"""
    log_file = config.LOG_FILE

    # Ensure logs directory exists
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_file,
        rotation="1 day",
        retention="30 days",
        level=config.LOG_LEVEL,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}"
    )


def setup_directories(config: AppConfig):
    """Ensure required directories exist"""
    for dir_path in (config.OUTPUT_DIR, Path(config.LOG_FILE).parent):
        Path(dir_path).mkdir(parents=True, exist_ok=True)
