import os

from .loader import section


class Cache:
    def __init__(self, config: dict | None = None) -> None:
        cache_cfg = section(config, "cache")
        self.CACHE_LENGTH: int = int(cache_cfg.get("cache_length", os.getenv("CACHE_LENGTH", "20")))
        self.RECENT_LIMIT: int = int(cache_cfg.get("recent_limit", os.getenv("RECENT_LIMIT", "20")))
        # Empty disables the on-disk snapshot; the cache then starts empty on every boot.
        self.SNAPSHOT_PATH: str = str(cache_cfg.get("snapshot_path", os.getenv("CACHE_SNAPSHOT_PATH", "")))

        if self.CACHE_LENGTH <= 0:
            raise ValueError("CACHE_LENGTH must be a positive integer")
        if self.RECENT_LIMIT <= 0:
            raise ValueError("RECENT_LIMIT must be a positive integer")
