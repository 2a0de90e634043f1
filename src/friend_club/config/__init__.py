"""Application configuration"""

import logging
from dotenv import load_dotenv

from .loader import load_raw_config
from .core import Core
from .cache import Cache
from .stream import Stream
from .reconcile import Reconcile

load_dotenv()

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(format=LOG_FORMAT, datefmt=DATE_FORMAT, level=logging.INFO)
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

_RAW_CONFIG = load_raw_config()

core = Core(_RAW_CONFIG)
cache = Cache(_RAW_CONFIG)
stream = Stream(_RAW_CONFIG)
reconcile = Reconcile(_RAW_CONFIG)


class Config:
    core = core
    cache = cache
    stream = stream
    reconcile = reconcile


__all__ = ["core", "cache", "stream", "reconcile", "Config"]
