"""
CLI Tests - Commands, Output and Exit Codes
"""

import json
import logging
from datetime import timedelta

import pytest
from click.testing import CliRunner

from conftest import FakeAuthority, FakeDevice


@pytest.fixture
def env(tmp_path, monkeypatch):
    """Isolated working directory and settings."""
    monkeypatch.chdir(tmp_path)
    for var in (
        "CK_VAULT_TOKEN",
        "CK_VAULT_ROLE_ID",
        "CK_VAULT_SECRET_ID",
        "CK_ROUTEROS_ADDRESS",
        "CK_ROUTEROS_USERNAME",
        "CK_SMTP_HOST",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("CK_STORE_PATH", str(tmp_path / "store.json"))
    monkeypatch.setenv("CK_PROFILE_OUTPUT_DIR", str(tmp_path / "profiles"))
    monkeypatch.setenv("CK_ENVIRONMENT", "development")
    yield tmp_path

    # The CLI binds the certkeeper logger to the runner's captured stderr
    logger = logging.getLogger("certkeeper")
    logger.handlers.clear()
    logger.propagate = True


@pytest.fixture
def fake_authority(monkeypatch):
    import certkeeper.cli as cli_module

    from certkeeper.identity.models import utcnow

    authority = FakeAuthority(clock=utcnow)
    monkeypatch.setattr(cli_module, "build_authority", lambda settings: authority)
    return authority


def _seed(store_path, kind="users", name="alice", days=200):
    from certkeeper.identity.models import RECORD_TYPES, RecordKind
    from certkeeper.identity.models import utcnow
    from certkeeper.identity.store import CertificateStore

    now = utcnow()
    store = CertificateStore.load(store_path)
    store.put(
        RECORD_TYPES[RecordKind(kind)](
            name=name,
            serial_number="seed-serial",
            created_at=now - timedelta(days=10),
            last_renewed_at=now - timedelta(days=10),
            expires_at=now + timedelta(days=days),
            ttl="8760h",
        )
    )
    store.save()


class TestClientCommand:

    def test_issue(self, env, fake_authority):
        from certkeeper.cli import cli

        result = CliRunner().invoke(cli, ["client", "alice", "--email", "alice@example.com", "--ttl", "720h"])

        assert result.exit_code == 0, result.output
        assert "alice: issued" in result.output
        assert "Profile:" in result.output
        assert fake_authority.calls[0][2] == "720h"

        document = json.loads((env / "store.json").read_text())
        assert document["users"]["alice"]["email"] == "alice@example.com"
        assert (env / "profiles" / "alice.ovpn").exists()

    def test_noop(self, env, fake_authority):
        from certkeeper.cli import cli

        _seed(env / "store.json", days=200)

        result = CliRunner().invoke(cli, ["client", "alice"])

        assert result.exit_code == 0, result.output
        assert "alice: noop" in result.output
        assert fake_authority.calls == []

    def test_threshold_override(self, env, fake_authority):
        from certkeeper.cli import cli

        _seed(env / "store.json", days=200)

        result = CliRunner().invoke(cli, ["client", "alice", "--threshold", "365"])

        assert result.exit_code == 0, result.output
        assert "alice: renewed" in result.output

    def test_authority_failure_exits_1(self, env, fake_authority):
        from certkeeper.cli import cli

        fake_authority.fail_issue = True

        result = CliRunner().invoke(cli, ["client", "alice"])

        assert result.exit_code == 1
        assert "FAILED" in result.output

    def test_missing_vault_credentials_exits_2(self, env):
        from certkeeper.cli import cli

        result = CliRunner().invoke(cli, ["client", "alice"])

        assert result.exit_code == 2
        assert "CK_VAULT_TOKEN" in result.output

    def test_corrupt_store_exits_2(self, env, fake_authority):
        from certkeeper.cli import cli

        (env / "store.json").write_text("[]")

        result = CliRunner().invoke(cli, ["client", "alice"])

        assert result.exit_code == 2
        assert "CK_STORE_CORRUPT" in result.output
        assert fake_authority.calls == []


class TestServerCommand:

    def test_issue_and_sync(self, env, fake_authority, monkeypatch):
        import certkeeper.cli as cli_module

        device = FakeDevice()
        monkeypatch.setattr(cli_module, "build_device", lambda settings, address: device)

        result = CliRunner().invoke(cli_module.cli, ["server", "vpn-gw", "--device-address", "10.0.0.1"])

        assert result.exit_code == 0, result.output
        assert "vpn-gw: synced" in result.output
        assert device.pushed[0].name == "vpn-gw"

    def test_sync_failure_is_a_warning(self, env, fake_authority, monkeypatch):
        import certkeeper.cli as cli_module
        from certkeeper.errors import DeviceConnectionError

        device = FakeDevice(error=DeviceConnectionError("10.0.0.1", "timed out"))
        monkeypatch.setattr(cli_module, "build_device", lambda settings, address: device)

        result = CliRunner().invoke(cli_module.cli, ["server", "vpn-gw"])

        assert result.exit_code == 0, result.output
        assert "Warning: Device sync failed" in result.output
        assert "vpn-gw: issued" in result.output

    def test_device_requires_username(self, env, fake_authority):
        from certkeeper.cli import cli

        result = CliRunner().invoke(cli, ["server", "vpn-gw", "--device-address", "10.0.0.1"])

        assert result.exit_code == 2
        assert "CK_ROUTEROS_USERNAME" in result.output


class TestListAndDelete:

    def test_list(self, env):
        from certkeeper.cli import cli

        _seed(env / "store.json", "users", "alice", days=200)
        _seed(env / "store.json", "servers", "vpn-gw", days=5)

        result = CliRunner().invoke(cli, ["list"])

        assert result.exit_code == 0, result.output
        assert "users (1)" in result.output
        assert "servers (1)" in result.output
        assert "healthy" in result.output
        assert "critical" in result.output

    def test_list_one_kind(self, env):
        from certkeeper.cli import cli

        _seed(env / "store.json", "users", "alice")

        result = CliRunner().invoke(cli, ["list", "--kind", "servers"])

        assert "servers (0)" in result.output
        assert "alice" not in result.output

    def test_delete(self, env):
        from certkeeper.cli import cli

        _seed(env / "store.json", "users", "alice")
        profile = env / "profiles" / "alice.ovpn"
        profile.parent.mkdir()
        profile.write_text("old")

        result = CliRunner().invoke(cli, ["delete", "alice", "--kind", "users"])

        assert result.exit_code == 0, result.output
        assert json.loads((env / "store.json").read_text())["users"] == {}
        assert not profile.exists()

    def test_delete_missing_exits_1(self, env):
        from certkeeper.cli import cli

        _seed(env / "store.json", "users", "alice")
        before = json.loads((env / "store.json").read_text())["users"]

        result = CliRunner().invoke(cli, ["delete", "bob", "--kind", "users"])

        assert result.exit_code == 1
        assert json.loads((env / "store.json").read_text())["users"] == before
