"""
Session bookkeeping and upgrade admission
"""
from .session_store import SessionStore
from .upgrade_gate import Admission, UpgradeGate

__all__ = [
    'Admission',
    'SessionStore',
    'UpgradeGate',
]
