"""
Shared utilities for the screening application.

Provides:
- Configuration file loading
- Logging setup
"""
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import yaml


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration overrides from a YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Configuration dictionary (empty for an empty file)
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")
    return config


def setup_logging(
    output_dir: Optional[Path],
    name: str = "app",
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Set up application logging.

    Creates a console handler and, when output_dir is given, a timestamped
    file handler.

    Args:
        output_dir: Directory for log files (None for console only)
        name: Logger name; module loggers under this package propagate to it
        level: Logging level

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Clear existing handlers (Streamlit reruns the entry point)
    logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_format = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        log_file = output_dir / f"{name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_format = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    return logger
