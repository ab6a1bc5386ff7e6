"""
Deriv client proxy: per-session bridge between browser sockets and the Deriv API
"""
__version__ = "1.0.0"
