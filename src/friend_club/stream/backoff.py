"""Exponential reconnect delays for the firehose client."""

from __future__ import annotations

from dataclasses import dataclass, field

from friend_club.config import stream as stream_cfg


@dataclass
class Backoff:
    """Doubling delay from ``base`` up to ``cap`` seconds.

    ``next_delay`` returns the delay for the current attempt and then counts
    the attempt; ``reset`` is called after every successful connection.
    """

    base: float = field(default_factory=lambda: stream_cfg.BACKOFF_BASE)
    cap: float = field(default_factory=lambda: stream_cfg.BACKOFF_MAX)
    attempts: int = 0

    def peek(self) -> float:
        # Clamp the exponent so long outages don't overflow the float.
        return min(self.base * (2 ** min(self.attempts, 32)), self.cap)

    def next_delay(self) -> float:
        delay = self.peek()
        self.attempts += 1
        return delay

    def reset(self) -> None:
        self.attempts = 0
