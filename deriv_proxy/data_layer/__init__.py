"""
Upstream Deriv API access
"""
from .upstream_stream import UpstreamStream

__all__ = [
    'UpstreamStream',
]
