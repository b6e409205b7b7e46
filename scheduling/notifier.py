import logging
import threading
from collections import defaultdict

from models import db
from models.notification import Notification

logger = logging.getLogger(__name__)

SEVERITIES = ("info", "warning")


class ConnectionRegistry:
    """Live push channels per user, scoped to this process.

    A transport (e.g. a WebSocket handler) registers a ``send(payload)``
    callable when a client connects and unregisters it on close.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._senders = defaultdict(list)

    def register(self, user_id, send):
        with self._lock:
            self._senders[user_id].append(send)

    def unregister(self, user_id, send):
        with self._lock:
            senders = self._senders.get(user_id, [])
            if send in senders:
                senders.remove(send)
            if not senders:
                self._senders.pop(user_id, None)

    def connected(self, user_id) -> bool:
        with self._lock:
            return bool(self._senders.get(user_id))

    def push(self, user_id, payload) -> int:
        with self._lock:
            senders = list(self._senders.get(user_id, []))

        delivered = 0
        for send in senders:
            try:
                send(payload)
                delivered += 1
            except Exception:
                logger.warning("Dropping dead push channel for user %s", user_id, exc_info=True)
                self.unregister(user_id, send)
        return delivered


class Notifier:
    """Stores a notification for the inbox and pushes it to live connections."""

    def __init__(self, registry: ConnectionRegistry = None, session=None):
        self.registry = registry or ConnectionRegistry()
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def notify(self, user_id, message: str, severity: str = "info") -> Notification:
        if severity not in SEVERITIES:
            raise ValueError(f"Unknown severity {severity!r}")

        row = Notification(user_id=user_id, message=message, type=severity)
        self.session.add(row)
        self.session.commit()

        self.registry.push(user_id, row.to_dict())
        return row
