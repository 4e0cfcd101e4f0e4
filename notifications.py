import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, List, Literal

logger = logging.getLogger(__name__)

Level = Literal["success", "error", "info"]


@dataclass
class Toast:
    level: Level
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier:
    """Bounded feed of transient notifications, newest last."""

    def __init__(self, limit: int = 50):
        self._toasts: Deque[Toast] = deque(maxlen=limit)

    def push(self, level: Level, message: str) -> Toast:
        toast = Toast(level, message)
        self._toasts.append(toast)
        log = logger.warning if level == "error" else logger.info
        log("toast %s: %s", level, message)
        return toast

    def success(self, message: str) -> Toast:
        return self.push("success", message)

    def error(self, message: str) -> Toast:
        return self.push("error", message)

    def info(self, message: str) -> Toast:
        return self.push("info", message)

    def latest(self) -> List[Toast]:
        return list(self._toasts)

    def drain(self) -> List[Dict]:
        drained = [asdict(t) for t in self._toasts]
        self._toasts.clear()
        return drained
