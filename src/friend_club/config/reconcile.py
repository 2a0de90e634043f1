import os

from .loader import section


class Reconcile:
    def __init__(self, config: dict | None = None) -> None:
        cfg = section(config, "reconcile")
        self.INTERVAL: float = float(cfg.get("interval", os.getenv("RECONCILE_INTERVAL", "300")))
        self.SWEEP_LIMIT: int = int(cfg.get("sweep_limit", os.getenv("RECONCILE_SWEEP_LIMIT", "100")))

        if self.INTERVAL <= 0:
            raise ValueError("RECONCILE_INTERVAL must be positive")
        if not 1 <= self.SWEEP_LIMIT <= 100:
            raise ValueError("RECONCILE_SWEEP_LIMIT must be between 1 and 100")
