"""
Admission check for socket upgrade requests at the proxy path
"""
import logging
from dataclasses import dataclass
from typing import Optional

from starlette.requests import cookie_parser

from .session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Admission:
    accepted: bool
    session_id: Optional[str] = None


REJECTED = Admission(accepted=False)


class UpgradeGate:
    """
    Decides whether a socket upgrade is admitted and which session it carries
    """
    def __init__(self, session_store: SessionStore, proxy_path: str = "/client-proxy",
                 cookie_name: str = "SESSION_ID"):
        self.session_store = session_store
        self.proxy_path = proxy_path.rstrip("/")
        self.cookie_name = cookie_name

    def admit(self, path: str, cookie_header: Optional[str]) -> Admission:
        """
        Check an upgrade request

        Args:
            path: Request path of the upgrade
            cookie_header: Raw Cookie header, if any

        Returns:
            REJECTED when the path is outside the proxy route, otherwise an
            accepted admission. Missing or unknown sessions are admitted
            anonymously with session_id None.
        """
        if not self._matches_route(path or ""):
            logger.warning(f"Rejected upgrade outside proxy route: {path}")
            return REJECTED

        session_id = None
        if cookie_header:
            session_id = cookie_parser(cookie_header).get(self.cookie_name) or None

        if session_id and self.session_store.lookup(session_id) is None:
            logger.info(f"Upgrade with unknown session {session_id}, admitting anonymously")
            session_id = None

        return Admission(accepted=True, session_id=session_id)

    def _matches_route(self, path: str) -> bool:
        return path == self.proxy_path or path.startswith(self.proxy_path + "/") \
            or path.startswith(self.proxy_path + "?")
