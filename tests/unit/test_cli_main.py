"""Tests for capshare.cli.main: CLI commands via Click test runner."""
from __future__ import annotations

import datetime
from pathlib import Path

import pytest
from click.testing import CliRunner

from capshare.cli.main import cli
from capshare.delegation import CapabilityAuthority, InMemoryDelegationStore, IssuerKey

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def key() -> IssuerKey:
    return IssuerKey.generate()


@pytest.fixture()
def encoded_proof(key: IssuerKey) -> str:
    authority = CapabilityAuthority(InMemoryDelegationStore(), key)
    proof = authority.issue(
        "alice", "bafk1", "alice", "bob", ["view"], datetime.timedelta(days=1)
    )
    return proof.encode()


# ---------------------------------------------------------------------------
# Root CLI
# ---------------------------------------------------------------------------


class TestRootCLI:
    def test_help_exits_zero(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "keygen" in result.output

    def test_version_command(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert "capshare" in result.output.lower()
        assert "0.1.0" in result.output


# ---------------------------------------------------------------------------
# keygen
# ---------------------------------------------------------------------------


class TestKeygen:
    def test_writes_loadable_key(self, runner: CliRunner, tmp_path: Path) -> None:
        output = tmp_path / "issuer.key"
        result = runner.invoke(cli, ["keygen", str(output)])
        assert result.exit_code == 0
        assert "did:key:" in result.output
        assert IssuerKey.from_file(output).did.startswith("did:key:z")

    def test_refuses_to_overwrite(self, runner: CliRunner, tmp_path: Path) -> None:
        output = tmp_path / "issuer.key"
        output.write_text("keep me", encoding="utf-8")
        result = runner.invoke(cli, ["keygen", str(output)])
        assert result.exit_code == 1
        assert output.read_text(encoding="utf-8") == "keep me"

    def test_force_overwrites(self, runner: CliRunner, tmp_path: Path) -> None:
        output = tmp_path / "issuer.key"
        output.write_text("old", encoding="utf-8")
        result = runner.invoke(cli, ["keygen", str(output), "--force"])
        assert result.exit_code == 0
        assert output.read_text(encoding="utf-8") != "old"


# ---------------------------------------------------------------------------
# inspect
# ---------------------------------------------------------------------------


class TestInspect:
    def test_valid_proof_passes(self, runner: CliRunner, encoded_proof: str) -> None:
        result = runner.invoke(cli, ["inspect", encoded_proof])
        assert result.exit_code == 0
        assert "Delegation proof" in result.output
        assert "bafk1" in result.output
        assert "PASS" in result.output

    def test_expected_issuer_matches(
        self, runner: CliRunner, encoded_proof: str, key: IssuerKey
    ) -> None:
        result = runner.invoke(cli, ["inspect", encoded_proof, "--issuer", key.did])
        assert result.exit_code == 0

    def test_issuer_mismatch_fails(self, runner: CliRunner, encoded_proof: str) -> None:
        other = IssuerKey.generate().did
        result = runner.invoke(cli, ["inspect", encoded_proof, "--issuer", other])
        assert result.exit_code == 1
        assert "FAIL" in result.output

    def test_garbage_fails(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["inspect", "garbage!"])
        assert result.exit_code == 1
        assert "FAIL" in result.output


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


class TestServe:
    def test_help(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["serve", "--help"])
        assert result.exit_code == 0
        assert "--key-file" in result.output

    def test_invalid_environment_exits(
        self, runner: CliRunner, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CAPSHARE_DEFAULT_TTL_DAYS", "never")
        result = runner.invoke(cli, ["serve"])
        assert result.exit_code == 1
        assert "CAPSHARE_" in result.output

    def test_runs_server_with_overrides(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls: list[tuple[object, str, int]] = []

        def fake_run_server(service: object, host: str, port: int) -> None:
            calls.append((service, host, port))

        monkeypatch.setattr("capshare.server.app.run_server", fake_run_server)
        key_file = tmp_path / "issuer.key"
        result = runner.invoke(
            cli, ["serve", "--host", "127.0.0.1", "--port", "9000", "--key-file", str(key_file)]
        )
        assert result.exit_code == 0, result.output
        assert key_file.exists()
        assert [(host, port) for _, host, port in calls] == [("127.0.0.1", 9000)]
