"""
Utilities for neptune_sigv4.
"""

from __future__ import annotations

from .ssl_ import create_ssl_context, ssl_wrap_socket

__all__ = ("create_ssl_context", "ssl_wrap_socket")
