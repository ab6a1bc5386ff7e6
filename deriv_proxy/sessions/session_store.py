"""
In-memory session store mapping session ids to upstream auth tokens
"""
import logging
import threading
import uuid
from typing import Dict, Optional

from deriv_proxy.errors import ValidationError

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Holds session id -> token pairs for the lifetime of the process.

    Nothing is persisted: sessions are lost on restart and never expire.
    """
    def __init__(self):
        self._tokens: Dict[str, str] = {}
        self._lock = threading.Lock()

    def create(self, token: str) -> str:
        """
        Store a token under a freshly generated session id

        Args:
            token: The upstream API token

        Returns:
            The new session id
        """
        if not token:
            raise ValidationError("token missing")

        session_id = str(uuid.uuid4())
        with self._lock:
            self._tokens[session_id] = token
        logger.info(f"Created session {session_id}")
        return session_id

    def lookup(self, session_id: Optional[str]) -> Optional[str]:
        if not session_id:
            return None
        with self._lock:
            return self._tokens.get(session_id)

    def delete(self, session_id: Optional[str]):
        if not session_id:
            return
        with self._lock:
            removed = self._tokens.pop(session_id, None)
        if removed is not None:
            logger.info(f"Deleted session {session_id}")

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._tokens

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
