"""
Client connection handling: state, registry, bridge and trade correlation
"""
from .client_bridge import BridgeState, ClientBridge
from .connection_registry import ConnectionRegistry
from .connection_state import ConnectionHandle, ConnectionState, PendingRequest
from .outbound_queue import OutboundQueue
from .request_correlator import RequestCorrelator

__all__ = [
    'BridgeState',
    'ClientBridge',
    'ConnectionHandle',
    'ConnectionRegistry',
    'ConnectionState',
    'OutboundQueue',
    'PendingRequest',
    'RequestCorrelator',
]
