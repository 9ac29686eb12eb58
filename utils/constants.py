"""Constants file."""

import os
import sys
from pathlib import Path

APP_NAME = "MPC Fill Order Importer"


def _default_base_dir() -> Path:
    """Return the writable base directory for config/cache/logging."""
    if getattr(sys, "frozen", False):
        local_appdata = os.getenv("LOCALAPPDATA")
        if local_appdata:
            return Path(local_appdata) / APP_NAME
        return Path.home() / ".mpcfill_order_importer"
    return Path(__file__).resolve().parent.parent


BASE_DATA_DIR = _default_base_dir()
CONFIG_DIR = BASE_DATA_DIR / "config"
CACHE_DIR = BASE_DATA_DIR / "cache"
LOGS_DIR = BASE_DATA_DIR / "logs"


CONFIG_FILE = CONFIG_DIR / "config.json"
IMAGE_CACHE_DIR = CACHE_DIR / "mpc_images"

"""MPC Fill image service settings."""

# Google Apps Script endpoint that answers ?id=<drive id> with a base64 image body
MPC_FILL_IMAGE_URL = (
    "https://script.google.com/macros/s/"
    "AKfycbw8laScKBfxda2Wb0g63gkYDBdy8NWNxINoC4xDOwnCQ3JMFdruam1MdmNmN4wI5k4/exec"
)
MPC_FILL_ID_PARAM = "id"
MAX_WORKERS = 6  # Concurrent fetches against the script endpoint
MIN_WORKERS = 1
MAX_WORKERS_LIMIT = 32
REQUEST_TIMEOUT = 30  # Seconds
USER_AGENT = "MPCFillOrderImporter/1.0"

"""Card defaults shared by the parser and the card model."""

CARD_WIDTH_MM = 83
CARD_HEIGHT_MM = 118

DEFAULT_QUANTITY = 0
DEFAULT_BRACKET = 0
DEFAULT_STOCK = "Unknown"
DEFAULT_FOIL = False
DEFAULT_CARDBACK = "DefaultCardBack"

DEFAULT_CARD_NAME = "Unknown"
DEFAULT_CARD_ID = "Unknown"
DEFAULT_CARD_DESCRIPTION = "No Description"
DEFAULT_CARD_QUERY = "Default Query"
DEFAULT_BLEED_CHECKED = True
DEFAULT_GLOBAL_BLEED = False

# High resolution target: poker size (2.5in x 3.5in) at 600 DPI
HIGH_RES_DPI = 600
HIGH_RES_SIZE = (int(2.5 * HIGH_RES_DPI), int(3.5 * HIGH_RES_DPI))
DEFAULT_ENCODE_FORMAT = "JPEG"
DEFAULT_ENCODE_QUALITY = 90

__all__ = [
    "APP_NAME",
    "BASE_DATA_DIR",
    "CONFIG_DIR",
    "CACHE_DIR",
    "LOGS_DIR",
    "CONFIG_FILE",
    "IMAGE_CACHE_DIR",
    "MPC_FILL_IMAGE_URL",
    "MPC_FILL_ID_PARAM",
    "MAX_WORKERS",
    "MIN_WORKERS",
    "MAX_WORKERS_LIMIT",
    "REQUEST_TIMEOUT",
    "USER_AGENT",
    "CARD_WIDTH_MM",
    "CARD_HEIGHT_MM",
    "DEFAULT_QUANTITY",
    "DEFAULT_BRACKET",
    "DEFAULT_STOCK",
    "DEFAULT_FOIL",
    "DEFAULT_CARDBACK",
    "DEFAULT_CARD_NAME",
    "DEFAULT_CARD_ID",
    "DEFAULT_CARD_DESCRIPTION",
    "DEFAULT_CARD_QUERY",
    "DEFAULT_BLEED_CHECKED",
    "DEFAULT_GLOBAL_BLEED",
    "HIGH_RES_DPI",
    "HIGH_RES_SIZE",
    "DEFAULT_ENCODE_FORMAT",
    "DEFAULT_ENCODE_QUALITY",
]
