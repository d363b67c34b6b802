"""Tests for capshare.server.app: HTTP handler integration over a live socket."""
from __future__ import annotations

import base64
import http.client
import json
import threading
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Iterator

import pytest

from capshare.server.app import CapShareHTTPServer, _build_arg_parser, create_server
from capshare.service import ShareService

PHOTO = b"\x89PNG fake image"


# ---------------------------------------------------------------------------
# Fixtures and helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def server() -> Iterator[CapShareHTTPServer]:
    srv = create_server(ShareService.in_memory(), host="127.0.0.1", port=0)
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    try:
        yield srv
    finally:
        srv.shutdown()
        srv.server_close()
        thread.join(timeout=5)


def _url(server: CapShareHTTPServer, path: str) -> str:
    host, port = server.server_address[:2]
    return f"http://{host}:{port}{path}"


def _request(
    server: CapShareHTTPServer,
    method: str,
    path: str,
    body: object | None = None,
    raw: bytes | None = None,
) -> tuple[int, bytes, dict[str, str]]:
    data = raw if raw is not None else (json.dumps(body).encode("utf-8") if body is not None else None)
    request = urllib.request.Request(_url(server, path), data=data, method=method)
    if data is not None:
        request.add_header("Content-Type", "application/json")
    try:
        with urllib.request.urlopen(request, timeout=5) as response:
            return response.status, response.read(), dict(response.headers)
    except urllib.error.HTTPError as exc:
        return exc.code, exc.read(), dict(exc.headers)


def _json(server: CapShareHTTPServer, method: str, path: str, body: object | None = None) -> tuple[int, dict[str, object]]:
    status, payload, _ = _request(server, method, path, body)
    return status, json.loads(payload)


def _upload_and_share(server: CapShareHTTPServer, capabilities: list[str]) -> tuple[str, str]:
    status, obj = _json(
        server,
        "POST",
        "/objects",
        {
            "owner_id": "alice",
            "filename": "pic.png",
            "content_base64": base64.b64encode(PHOTO).decode("ascii"),
        },
    )
    assert status == 201
    subject_id = str(obj["id"])
    status, shared = _json(
        server,
        "POST",
        f"/objects/{subject_id}/share",
        {"owner_id": "alice", "grantee_id": "bob", "capabilities": capabilities},
    )
    assert status == 201
    return subject_id, str(shared["proof"])


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestCreateServer:
    def test_server_carries_service(self) -> None:
        service = ShareService.in_memory()
        srv = create_server(service, host="127.0.0.1", port=0)
        try:
            assert isinstance(srv, CapShareHTTPServer)
            assert srv.service is service
        finally:
            srv.server_close()

    def test_arg_parser_defaults(self) -> None:
        args = _build_arg_parser().parse_args([])
        assert args.host == "0.0.0.0"
        assert args.port == 8080
        assert args.key_file is None


class TestHTTPRoutes:
    def test_health(self, server: CapShareHTTPServer) -> None:
        status, data = _json(server, "GET", "/health")
        assert status == 200
        assert data["service"] == "capshare"

    def test_unknown_route_is_404(self, server: CapShareHTTPServer) -> None:
        status, data = _json(server, "GET", "/nowhere")
        assert status == 404
        assert data["error"] == "Not found"

    def test_invalid_json_is_400(self, server: CapShareHTTPServer) -> None:
        status, payload, _ = _request(server, "POST", "/objects", raw=b"{not json")
        assert status == 400
        assert json.loads(payload)["error"] == "Invalid JSON"

    def test_non_object_json_is_400(self, server: CapShareHTTPServer) -> None:
        status, _, _ = _request(server, "POST", "/objects", body=[1, 2])
        assert status == 400

    @pytest.mark.parametrize("length", ["abc", "-5"])
    def test_bad_content_length_is_400(self, server: CapShareHTTPServer, length: str) -> None:
        host, port = server.server_address[:2]
        conn = http.client.HTTPConnection(host, port, timeout=5)
        try:
            conn.putrequest("POST", "/objects")
            conn.putheader("Content-Length", length)
            conn.endheaders()
            response = conn.getresponse()
            assert response.status == 400
            assert json.loads(response.read())["detail"] == "Bad Content-Length header."
        finally:
            conn.close()

    def test_view_access_flow(self, server: CapShareHTTPServer) -> None:
        subject_id, proof = _upload_and_share(server, ["view"])
        query = urllib.parse.urlencode({"proof": proof, "action": "view"})
        status, data = _json(server, "GET", f"/objects/{subject_id}?{query}")
        assert status == 200
        assert data["granted"] is True

    def test_download_streams_bytes(self, server: CapShareHTTPServer) -> None:
        subject_id, proof = _upload_and_share(server, ["download"])
        query = urllib.parse.urlencode({"proof": proof})
        status, payload, headers = _request(server, "GET", f"/objects/{subject_id}/download?{query}")
        assert status == 200
        assert payload == PHOTO
        assert headers["Content-Type"] == "image/png"
        assert 'filename="pic.png"' in headers["Content-Disposition"]

    def test_revoke_flow(self, server: CapShareHTTPServer) -> None:
        subject_id, proof = _upload_and_share(server, ["view"])
        status, data = _json(
            server,
            "POST",
            f"/objects/{subject_id}/revoke",
            {"owner_id": "alice", "grantee_id": "bob"},
        )
        assert status == 200
        assert data["success"] is True

        query = urllib.parse.urlencode({"proof": proof})
        status, data = _json(server, "GET", f"/objects/{subject_id}?{query}")
        assert status == 403
        assert data["reason"] == "revoked"

    def test_owner_listing(self, server: CapShareHTTPServer) -> None:
        subject_id, _ = _upload_and_share(server, ["view"])
        status, data = _json(server, "GET", "/owners/alice/objects")
        assert status == 200
        objects = data["objects"]
        assert isinstance(objects, list)
        assert objects[0]["id"] == subject_id

    def test_delegation_listing(self, server: CapShareHTTPServer) -> None:
        subject_id, _ = _upload_and_share(server, ["view"])
        status, data = _json(
            server, "GET", f"/objects/{subject_id}/delegations?owner_id=alice&include_inactive=true"
        )
        assert status == 200
        delegations = data["delegations"]
        assert isinstance(delegations, list)
        assert delegations[0]["grantee"] == "bob"
