"""
Runtime configuration for the portal autofill engine.
Timeouts and delays are expressed in milliseconds.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

# ------------- CONFIG -----------------
DEFAULT_ACTION_TIMEOUT = 15000
DEFAULT_NAVIGATION_TIMEOUT = 45000
DEFAULT_SETTLE_TIMEOUT = 5000
INTERACTION_DELAY_MS = 300
SELECT_SETTLE_MS = 2000
MAX_DISCOVERY_PASSES = 3
HARD_STEP_CEILING = 20
SCROLL_STEP_PX = 300
MAX_SCROLL_STEPS = 60

SAMPLE_FILES_DIR = "archivos_prueba"
SAMPLE_FILE_NAMES = ["documento_prueba.pdf", "archivo_prueba.pdf", "test.pdf", "prueba.pdf"]

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(module)s.%(funcName)s:%(lineno)d] - %(message)s'

logger = logging.getLogger(__name__)


def default_config() -> Dict[str, Any]:
    return {
        "field_delay_ms": INTERACTION_DELAY_MS,
        "select_settle_ms": SELECT_SETTLE_MS,
        "pass_delay_ms": 1000,
        "section_settle_ms": 800,
        "radio_settle_ms": 1500,
        "upload_settle_ms": 1000,
        "dialog_wait_ms": 1000,
        "tab_settle_ms": 1000,
        "scroll_step_px": SCROLL_STEP_PX,
        "scroll_delay_ms": 80,
        "scroll_return_ms": 500,
        "max_scroll_steps": MAX_SCROLL_STEPS,
        "advance_timeout_ms": 8000,
        "advance_poll_ms": 500,
        "settle_timeout_ms": DEFAULT_SETTLE_TIMEOUT,
        "action_timeout_ms": DEFAULT_ACTION_TIMEOUT,
        "navigation_timeout_ms": DEFAULT_NAVIGATION_TIMEOUT,
        "max_discovery_passes": MAX_DISCOVERY_PASSES,
        "hard_step_ceiling": HARD_STEP_CEILING,
        "sample_files_dir": SAMPLE_FILES_DIR,
        "sample_file_names": list(SAMPLE_FILE_NAMES),
        "date_literal": "2030-12-31",
        "masked_date_literal": "31/12/2030",
        "dialog_definitions": [],
    }


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Returns the default config merged with the JSON overrides found at `path`."""
    config = default_config()
    if not path:
        return config
    config_file = Path(path)
    if not config_file.exists():
        logger.warning(f"Config file {config_file} not found. Using defaults.")
        return config
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            overrides = json.load(f)
    except json.JSONDecodeError:
        logger.error(f"Error decoding JSON from {config_file}. Using defaults.")
        return config
    except OSError as e:
        logger.error(f"Error reading config from {config_file}: {e}. Using defaults.")
        return config

    if not isinstance(overrides, dict):
        logger.error(f"Config file {config_file} must hold a JSON object. Using defaults.")
        return config
    unknown = sorted(set(overrides) - set(config))
    if unknown:
        logger.warning(f"Ignoring unknown config keys: {unknown}")
    config.update({k: v for k, v in overrides.items() if k in config})
    logger.info(f"Config loaded from {config_file}")
    return config


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = "portal_autofill.log") -> None:
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file, mode='w', encoding='utf-8'))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
