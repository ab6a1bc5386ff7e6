"""
Registry of live client connections
"""
import itertools
import logging
import threading
from typing import Callable, Dict, List, Optional

from .connection_state import ConnectionHandle, ConnectionState

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Tracks the state of every live client connection by handle

    All access goes through one lock, so registration, deregistration and
    lookups from independent connection lifecycles never interleave.
    """
    def __init__(self):
        self._connections: Dict[ConnectionHandle, ConnectionState] = {}
        self._lock = threading.RLock()
        self._indices = itertools.count(1)

    def allocate_handle(self) -> ConnectionHandle:
        with self._lock:
            return ConnectionHandle(next(self._indices))

    def register(self, handle: ConnectionHandle, state: ConnectionState):
        """
        Add a connection

        Args:
            handle: The handle allocated for the connection
            state: The connection's state

        Raises:
            ValueError: if the handle is already registered
        """
        with self._lock:
            if handle in self._connections:
                raise ValueError(f"Connection {handle} is already registered")
            self._connections[handle] = state
        logger.info(f"New connection: {state}")

    def deregister(self, handle: ConnectionHandle) -> Optional[ConnectionState]:
        with self._lock:
            state = self._connections.pop(handle, None)
        if state is not None:
            logger.info(f"Removed client: {state}")
        return state

    def get(self, handle: ConnectionHandle) -> Optional[ConnectionState]:
        with self._lock:
            return self._connections.get(handle)

    def find(self, predicate: Callable[[ConnectionState], bool]) -> Optional[ConnectionState]:
        """
        Return the first registered state matching predicate, in registration order
        """
        for state in self.snapshot():
            if predicate(state):
                return state
        return None

    def snapshot(self) -> List[ConnectionState]:
        with self._lock:
            return list(self._connections.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)
