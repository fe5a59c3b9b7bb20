"""
Web UI Module - FastAPI status API
==================================

This module provides a read-only HTTP view of the running bot:
- Overall status and rule table sizes
- Per-channel state
- Loaded rule keys
"""

from .app import create_app, serve_app
from .routes import router

__all__ = [
    "create_app",
    "serve_app",
    "router",
]
