import os

from .loader import section

DEFAULT_JETSTREAM_URL = "wss://jetstream2.us-east.bsky.network/subscribe"
DEFAULT_COLLECTION = "is.keith.fc.message"


class Stream:
    def __init__(self, config: dict | None = None) -> None:
        cfg = section(config, "stream")

        self.JETSTREAM_URL: str = str(cfg.get("jetstream_url", os.getenv("JETSTREAM_URL", DEFAULT_JETSTREAM_URL)))
        self.COLLECTION: str = str(cfg.get("collection", os.getenv("FC_COLLECTION", DEFAULT_COLLECTION)))
        self.BACKOFF_BASE: float = float(cfg.get("backoff_base", os.getenv("BACKOFF_BASE", "1.0")))
        self.BACKOFF_MAX: float = float(cfg.get("backoff_max", os.getenv("BACKOFF_MAX", "30.0")))
        self.HEARTBEAT: float = float(cfg.get("heartbeat", os.getenv("STREAM_HEARTBEAT", "30.0")))

        required = [
            ("JETSTREAM_URL", self.JETSTREAM_URL),
            ("FC_COLLECTION", self.COLLECTION),
        ]
        missing = [name for name, val in required if not val]
        if missing:
            raise ValueError(f"Missing stream settings: {', '.join(missing)}")
        if self.BACKOFF_BASE <= 0 or self.BACKOFF_MAX < self.BACKOFF_BASE:
            raise ValueError("BACKOFF_BASE must be > 0 and BACKOFF_MAX >= BACKOFF_BASE")
