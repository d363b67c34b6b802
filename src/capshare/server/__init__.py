"""HTTP server for capshare (stdlib http.server, JSON bodies)."""
from __future__ import annotations

from capshare.server.app import CapShareHandler, CapShareHTTPServer, create_server, run_server

__all__ = ["CapShareHTTPServer", "CapShareHandler", "create_server", "run_server"]
