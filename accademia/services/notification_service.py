"""Notification service — structured alerts for denials and audit failures.

Notices are logged, kept in a bounded in-process buffer for the control
center, and fanned out on a Redis channel. Delivery is best effort: no
ordering, and a Redis outage never reaches the caller.
"""

import json
import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from accademia.core.config import settings
from accademia.services.cache_service import CacheService, cache_service

logger = logging.getLogger("accademia.alerts")


@dataclass(frozen=True)
class Notice:
    category: str
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationService:
    """Emits notices to the log, the recent-alerts buffer and Redis."""

    def __init__(
        self,
        cache: Optional[CacheService] = None,
        channel: Optional[str] = None,
        buffer_size: Optional[int] = None,
    ):
        self.cache = cache
        self.channel = channel or settings.ALERT_CHANNEL
        self._recent: deque = deque(maxlen=buffer_size or settings.ALERT_BUFFER_SIZE)
        self._lock = threading.Lock()

    def emit(self, category: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> Notice:
        notice = Notice(category=category, message=message, metadata=dict(metadata or {}))
        logger.warning("[%s] %s %s", category, message, notice.metadata)

        with self._lock:
            self._recent.append(notice)

        if self.cache is not None:
            payload = json.dumps(asdict(notice), default=str)
            if not self.cache.publish(self.channel, payload):
                logger.debug("Alert channel unavailable, notice kept locally")
        return notice

    def recent(self, limit: int = 50) -> List[Notice]:
        """Most recent notices, newest first."""
        with self._lock:
            items = list(self._recent)
        return items[::-1][:limit]


notification_service = NotificationService(cache=cache_service)
