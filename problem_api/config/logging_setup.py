"""
Configurable logging setup for the problem service.

Loads the logging configuration from a YAML file.
"""
import logging
import logging.config
from pathlib import Path
from typing import Optional

import yaml


def setup_logging(config_path: Optional[str] = None, default_level: int = logging.INFO):
    """
    Configure logging from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.
                     If None, uses problem_api/config/logging_config.yaml
        default_level: Level used when the configuration cannot be loaded
    """
    if config_path is None:
        config_path = Path(__file__).parent / "logging_config.yaml"

    config_path = Path(config_path)

    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)

            logs_dir = Path("logs")
            logs_dir.mkdir(exist_ok=True)

            logging.config.dictConfig(config)

            logger = logging.getLogger(__name__)
            logger.info(f"Logging configured from: {config_path}")

        except Exception as e:
            logging.basicConfig(
                level=default_level,
                format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
            logging.error(f"Error loading logging configuration: {e}")
            logging.warning("Using default logging configuration")
    else:
        logging.basicConfig(
            level=default_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        logging.warning(f"Logging configuration file not found: {config_path}")
        logging.info("Using default logging configuration")
