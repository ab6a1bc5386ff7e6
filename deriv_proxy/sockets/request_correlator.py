"""
Correlation of trade submissions with asynchronous upstream replies
"""
import asyncio
import itertools
import logging
from typing import Any, Dict, Optional

from websockets.exceptions import WebSocketException

from deriv_proxy.data_layer.protocol import buy_request
from deriv_proxy.errors import RequestTimeout, SendFailure, UpstreamUnavailable
from .connection_registry import ConnectionRegistry
from .connection_state import ConnectionState, PendingRequest

logger = logging.getLogger(__name__)

BROADCAST = "broadcast"
FIFO = "fifo"


class RequestCorrelator:
    """
    Issues trade requests on a session's ready connection and matches replies

    Each request carries a req_id that the upstream echoes back, so a reply
    with a known req_id settles exactly that request. Replies without a req_id
    are settled by the uncorrelated policy: "broadcast" hands the reply to every
    pending request on the connection, "fifo" to the oldest one only.
    """
    def __init__(self, registry: ConnectionRegistry, request_timeout: float = 30.0,
                 uncorrelated_policy: str = BROADCAST):
        if uncorrelated_policy not in (BROADCAST, FIFO):
            raise ValueError(f"Unknown uncorrelated reply policy: {uncorrelated_policy}")
        self.registry = registry
        self.request_timeout = request_timeout
        self.uncorrelated_policy = uncorrelated_policy
        self._request_ids = itertools.count(1)

    def find_ready(self, session_id: Optional[str]) -> Optional[ConnectionState]:
        if not session_id:
            return None
        return self.registry.find(lambda state: state.session_id == session_id and state.ready)

    async def submit(self, session_id: str, symbol: str, stake: float) -> Dict[str, Any]:
        """
        Send a buy request upstream and wait for its reply

        Args:
            session_id: Session whose connection carries the trade
            symbol: Trading symbol
            stake: Price to pay

        Returns:
            The upstream reply

        Raises:
            UpstreamUnavailable: no ready, authorized connection for the session,
                or the connection was lost before a reply arrived
            SendFailure: the upstream write raised
            RequestTimeout: no reply within request_timeout
        """
        state = self.find_ready(session_id)
        if state is None:
            raise UpstreamUnavailable("deriv connection not ready")

        request_id = next(self._request_ids)
        resolver = asyncio.get_running_loop().create_future()
        state.pending_requests[request_id] = PendingRequest(request_id, resolver)

        try:
            try:
                await state.upstream.send(buy_request(symbol, stake, request_id))
            except (ConnectionError, OSError, WebSocketException) as e:
                logger.error(f"Failed to send trade request {request_id} on {state}: {e}")
                raise SendFailure(str(e)) from e

            logger.info(f"Trade request {request_id} for {symbol} sent on {state}")
            try:
                return await asyncio.wait_for(resolver, timeout=self.request_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Trade request {request_id} timed out on {state}")
                raise RequestTimeout(
                    f"No reply to trade request within {self.request_timeout:g}s"
                ) from None
        finally:
            state.pending_requests.pop(request_id, None)

    def resolve(self, state: ConnectionState, reply: Dict[str, Any]) -> int:
        """
        Settle pending requests on a connection with an upstream trade reply

        Returns:
            Number of requests settled
        """
        self._prune(state)
        if not state.pending_requests:
            return 0

        req_id = reply.get("req_id")
        if req_id is not None:
            pending = state.pending_requests.pop(req_id, None)
            if pending is None:
                logger.debug(f"Reply for unknown request {req_id} on {state}")
                return 0
            return self._settle(pending, reply)

        if self.uncorrelated_policy == FIFO:
            oldest = next(iter(state.pending_requests))
            return self._settle(state.pending_requests.pop(oldest), reply)

        pending_requests = list(state.pending_requests.values())
        state.pending_requests.clear()
        return sum(self._settle(pending, reply) for pending in pending_requests)

    def fail_all(self, state: ConnectionState, error: Exception) -> int:
        pending_requests = list(state.pending_requests.values())
        state.pending_requests.clear()
        failed = 0
        for pending in pending_requests:
            if not pending.resolver.done():
                pending.resolver.set_exception(error)
                failed += 1
        if failed:
            logger.info(f"Failed {failed} pending trade request(s) on {state}: {error}")
        return failed

    @staticmethod
    def _settle(pending: PendingRequest, reply: Dict[str, Any]) -> int:
        if pending.resolver.done():
            return 0
        pending.resolver.set_result(reply)
        return 1

    @staticmethod
    def _prune(state: ConnectionState):
        for request_id in [rid for rid, p in state.pending_requests.items() if p.resolver.done()]:
            del state.pending_requests[request_id]
