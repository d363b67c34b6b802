"""HTTP server for capshare using stdlib http.server.

Routes:
    GET    /health                              health check
    POST   /objects                             upload an object
    POST   /objects/{id}/share                  delegate capabilities
    POST   /objects/{id}/revoke                 revoke a delegation
    GET    /objects/{id}?proof=&action=view     authorise a view
    GET    /objects/{id}/download?proof=        authorise and fetch bytes
    GET    /objects/{id}/delegations?owner_id=  list delegations (owner only)
    GET    /owners/{owner}/objects              list an owner's objects

Usage:
    python -m capshare.server.app --port 8080
    python -m capshare.server.app --host 127.0.0.1 --port 9000 --key-file issuer.key
"""
from __future__ import annotations

import argparse
import json
import logging
import re
import urllib.parse
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path

from capshare.config import CapShareConfig
from capshare.server import routes
from capshare.service import ShareService

logger = logging.getLogger(__name__)

_SEGMENT = r"([^/]+)"
_OBJECT_PATTERN = re.compile(rf"^/objects/{_SEGMENT}$")
_SHARE_PATTERN = re.compile(rf"^/objects/{_SEGMENT}/share$")
_REVOKE_PATTERN = re.compile(rf"^/objects/{_SEGMENT}/revoke$")
_DOWNLOAD_PATTERN = re.compile(rf"^/objects/{_SEGMENT}/download$")
_DELEGATIONS_PATTERN = re.compile(rf"^/objects/{_SEGMENT}/delegations$")
_OWNER_OBJECTS_PATTERN = re.compile(rf"^/owners/{_SEGMENT}/objects$")


class CapShareHTTPServer(HTTPServer):
    """HTTPServer that carries the :class:`ShareService` its handlers use."""

    def __init__(self, server_address: tuple[str, int], service: ShareService) -> None:
        super().__init__(server_address, CapShareHandler)
        self.service = service


class CapShareHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the capshare server.

    All request bodies are JSON. Responses are JSON except a successful
    download, which streams the object bytes.
    """

    server: CapShareHTTPServer

    def log_message(self, format: str, *args: object) -> None:
        """Route access logs through the Python logging system."""
        logger.debug(format, *args)

    @property
    def service(self) -> ShareService:
        return self.server.service

    # ── GET ───────────────────────────────────────────────────────────────────

    def do_GET(self) -> None:
        """Handle all GET requests by routing on the URL path."""
        parsed = urllib.parse.urlparse(self.path)
        path = parsed.path.rstrip("/")
        params = urllib.parse.parse_qs(parsed.query)

        try:
            if path == "/health":
                self._send_json(*routes.handle_health(self.service))
                return

            match = _DOWNLOAD_PATTERN.match(path)
            if match:
                self._send_download(
                    *routes.handle_download(
                        self.service, _unquote(match.group(1)), self._first_param(params, "proof")
                    )
                )
                return

            match = _DELEGATIONS_PATTERN.match(path)
            if match:
                include_inactive = self._first_param(params, "include_inactive") in ("1", "true")
                self._send_json(
                    *routes.handle_list_delegations(
                        self.service,
                        _unquote(match.group(1)),
                        self._first_param(params, "owner_id"),
                        include_inactive,
                    )
                )
                return

            match = _OWNER_OBJECTS_PATTERN.match(path)
            if match:
                self._send_json(*routes.handle_list_by_owner(self.service, _unquote(match.group(1))))
                return

            match = _OBJECT_PATTERN.match(path)
            if match:
                self._send_json(
                    *routes.handle_access(
                        self.service,
                        _unquote(match.group(1)),
                        self._first_param(params, "proof"),
                        self._first_param(params, "action"),
                    )
                )
                return
        except Exception:
            logger.exception("Unhandled error serving GET %s", path)
            self._send_json(500, {"error": "Internal error", "detail": "Unexpected server error."})
            return

        self._send_json(404, {"error": "Not found", "detail": f"No route for GET {path}"})

    # ── POST ──────────────────────────────────────────────────────────────────

    def do_POST(self) -> None:
        """Handle all POST requests by routing on the URL path."""
        parsed = urllib.parse.urlparse(self.path)
        path = parsed.path.rstrip("/")

        body = self._read_json_body()
        if body is None:
            return

        try:
            if path == "/objects":
                self._send_json(*routes.handle_upload(self.service, body))
                return

            match = _SHARE_PATTERN.match(path)
            if match:
                self._send_json(*routes.handle_share(self.service, _unquote(match.group(1)), body))
                return

            match = _REVOKE_PATTERN.match(path)
            if match:
                self._send_json(*routes.handle_revoke(self.service, _unquote(match.group(1)), body))
                return
        except Exception:
            logger.exception("Unhandled error serving POST %s", path)
            self._send_json(500, {"error": "Internal error", "detail": "Unexpected server error."})
            return

        self._send_json(404, {"error": "Not found", "detail": f"No route for POST {path}"})

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _send_json(self, status: int, data: dict[str, object]) -> None:
        """Serialize *data* to JSON and send an HTTP response with *status*."""
        body = json.dumps(data, default=str).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_download(self, status: int, data: dict[str, object]) -> None:
        """Stream object bytes on success, or fall back to a JSON error body."""
        if status != 200:
            self._send_json(status, data)
            return
        content = data["content"]
        assert isinstance(content, bytes)
        filename = str(data["filename"]).replace('"', "")
        self.send_response(200)
        self.send_header("Content-Type", str(data["content_type"]))
        self.send_header("Content-Disposition", f'attachment; filename="{filename}"')
        self.send_header("Content-Length", str(len(content)))
        self.end_headers()
        self.wfile.write(content)

    def _read_json_body(self) -> dict[str, object] | None:
        """Read and parse the JSON request body.

        Returns None (and sends a 400 error response) if parsing fails.
        """
        try:
            content_length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            content_length = -1
        if content_length < 0:
            self._send_json(400, {"error": "Invalid request", "detail": "Bad Content-Length header."})
            return None
        if content_length == 0:
            return {}

        raw = self.rfile.read(content_length)
        try:
            parsed = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            self._send_json(400, {"error": "Invalid JSON", "detail": str(exc)})
            return None
        if not isinstance(parsed, dict):
            self._send_json(400, {"error": "Invalid JSON", "detail": "Body must be a JSON object."})
            return None
        return parsed

    @staticmethod
    def _first_param(params: dict[str, list[str]], key: str) -> str | None:
        """Return the first value for *key* from query parameters, or None."""
        values = params.get(key)
        return values[0] if values else None


def _unquote(segment: str) -> str:
    return urllib.parse.unquote(segment)


def create_server(
    service: ShareService,
    host: str = "0.0.0.0",
    port: int = 8080,
) -> CapShareHTTPServer:
    """Create (but do not start) the capshare HTTP server.

    Parameters
    ----------
    service:
        The service instance every request is handled against.
    host:
        Bind address (default ``"0.0.0.0"``, all interfaces).
    port:
        TCP port to listen on (default 8080).
    """
    server = CapShareHTTPServer((host, port), service)
    logger.info("capshare server created at http://%s:%d (issuer %s)", host, port, service.issuer)
    return server


def run_server(service: ShareService, host: str = "0.0.0.0", port: int = 8080) -> None:
    """Create and run the capshare HTTP server (blocking)."""
    server = create_server(service, host=host, port=port)
    logger.info("Serving capshare on http://%s:%d (Ctrl-C to stop)", host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down capshare server.")
    finally:
        server.server_close()


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="capshare HTTP server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8080, help="TCP port")
    parser.add_argument("--key-file", type=Path, default=None, help="Issuer key file")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (defaults to CAPSHARE_LOG_LEVEL or INFO)",
    )
    return parser


if __name__ == "__main__":
    args = _build_arg_parser().parse_args()
    overrides: dict[str, object] = {}
    if args.key_file is not None:
        overrides["issuer_key_path"] = args.key_file
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    config = CapShareConfig(**overrides)
    logging.basicConfig(level=getattr(logging, config.log_level))
    run_server(ShareService.from_config(config), host=args.host, port=args.port)
