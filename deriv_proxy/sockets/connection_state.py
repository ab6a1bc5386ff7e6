"""
Per-connection state owned by a client bridge
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from .models import AccountInfo


@dataclass(frozen=True)
class ConnectionHandle:
    """Opaque identifier of one accepted client connection"""
    index: int

    def __str__(self):
        return f"conn-{self.index}"


@dataclass
class PendingRequest:
    request_id: int
    resolver: asyncio.Future
    created_at: float = field(default_factory=time.time)


class ConnectionState:
    """
    Represents one live client connection and its paired upstream socket
    """
    def __init__(self, handle: ConnectionHandle, session_id: Optional[str], upstream=None):
        """
        Initialize a new connection state

        Args:
            handle: Registry handle for the connection
            session_id: Session the client presented, None for anonymous clients
            upstream: The upstream stream, attached once opened
        """
        self.handle = handle
        self.session_id = session_id
        self.upstream = upstream
        self.subscribed: Set[str] = set()
        self.subscription_ids: Dict[str, Set[str]] = {}  # symbol -> set of upstream subscription ids
        self.authorized = False
        self.account_info: Optional[AccountInfo] = None
        self.pending_requests: Dict[int, PendingRequest] = {}
        self.last_activity = time.time()

    @property
    def upstream_open(self) -> bool:
        return self.upstream is not None and self.upstream.is_connected

    @property
    def ready(self) -> bool:
        return self.authorized and self.upstream_open

    def __str__(self):
        return f"Client({self.handle}{'✓' if self.authorized else ''})"
