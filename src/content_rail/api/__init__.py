"""
CONTENT RAIL - API Module

FastAPI server exposing:
- Content registration and lookup
- Escrow deposit and withdrawal
- Content access purchases
- Creator earnings withdrawal
- Signed event log and metrics
"""

from .server import app, create_app

__all__ = ["app", "create_app"]
