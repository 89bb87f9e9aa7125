from __future__ import annotations

import socket
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class InstanceIdentity:
    instance_id: str
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    hostname: str = field(default_factory=socket.gethostname)
    started_at: str = field(default_factory=utc_now)


class RequestTally:
    """In-memory count of requests served by this process.

    Not shared with other instances and lost on restart.
    """

    def __init__(self) -> None:
        self.lock = Lock()
        self._count = 0

    def increment(self) -> int:
        with self.lock:
            self._count += 1
            return self._count

    def reset(self) -> None:
        with self.lock:
            self._count = 0

    @property
    def value(self) -> int:
        with self.lock:
            return self._count
