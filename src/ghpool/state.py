from dataclasses import dataclass, field
from typing import Any


@dataclass
class Credential:
    token: str = field(repr=False)
    handle: Any = field(default=None, repr=False)
    remaining: int = 5000
    reset_at: float = 0.0

    def reset_if_due(self, now: float, quota: int, window: float) -> bool:
        if now > self.reset_at:
            self.remaining = quota
            self.reset_at = now + window
            return True
        return False

    def usable(self, margin: int) -> bool:
        return self.remaining > margin
