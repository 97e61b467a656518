"""Tests for the CLI subcommand handlers.

Handlers run against a memory-store container, so every command goes
through the real facade and drivers with a fake command runner.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest

from hostplane.certificates.material import generate_self_signed
from hostplane.cli.commands import run_command, run_versions
from hostplane.cli.commands.dns import run_dns
from hostplane.cli.commands.domain import run_domain
from hostplane.cli.commands.renewal import run_renew
from hostplane.cli.commands.ssl import run_csr, run_ssl, run_verify
from hostplane.cli.main import _build_parser
from hostplane.core.errors import HostplaneError, RecordValidationError, UnknownDomainError

PROVISION = ["domain", "provision", "example.com", "--user", "alice", "--uid", "1001", "--gid", "1001"]


def _args(*argv: str):
    return _build_parser().parse_args(["-c", "config.yaml", *argv])


def _json(capsys):
    return json.loads(capsys.readouterr().out)


@pytest.fixture()
def provisioned(container, capsys):
    assert run_domain(container, _args(*PROVISION)) == 0
    capsys.readouterr()
    return container


# ---------------------------------------------------------------------------
# domain
# ---------------------------------------------------------------------------


class TestDomainCommands:
    def test_provision(self, container, capsys):
        assert run_domain(container, _args(*PROVISION)) == 0
        out = _json(capsys)
        assert out["workflow"] == "provision"
        assert out["succeeded"] is True
        domain = container.domains.find_by_name("example.com")
        assert domain.document_root == "/home/alice/example.com/public_html"

    def test_provision_failure_exit_code(self, container, runner, capsys):
        runner.fail("apache2ctl")
        assert run_domain(container, _args(*PROVISION, "--no-ssl")) == 1
        assert _json(capsys)["steps"][2]["outcome"] == "failed"

    def test_provision_resolves_account(self, container, capsys):
        entry = MagicMock(pw_uid=1500, pw_gid=1500)
        with patch("hostplane.cli.commands.domain.pwd.getpwnam", return_value=entry):
            run_domain(container, _args("domain", "provision", "example.org", "--user", "bob", "--no-ssl"))
        account = container.domains.find_by_name("example.org").account
        assert (account.uid, account.home_dir) == (1500, "/home/bob")

    def test_provision_unknown_user(self, container):
        with (
            patch("hostplane.cli.commands.domain.pwd.getpwnam", side_effect=KeyError("bob")),
            pytest.raises(HostplaneError, match="no system user 'bob'"),
        ):
            run_domain(container, _args("domain", "provision", "example.org", "--user", "bob"))

    def test_show(self, provisioned, capsys):
        assert run_domain(provisioned, _args("domain", "show", "example.com")) == 0
        out = _json(capsys)
        assert out["zone_serial"] == 2025031401
        assert out["vhost"] is True
        assert out["certificate"]["status"] == "installed"

    def test_update_needs_a_change(self, provisioned, capsys):
        assert run_domain(provisioned, _args("domain", "update", "example.com")) == 1
        assert "nothing to update" in capsys.readouterr().err

    def test_update(self, provisioned, capsys):
        assert run_domain(provisioned, _args("domain", "update", "example.com", "--php", "8.3")) == 0
        assert _json(capsys)["php_version"] == "8.3"

    def test_subdomains(self, provisioned, capsys):
        run_domain(provisioned, _args("domain", "subdomain-add", "example.com", "blog"))
        assert _json(capsys)["subdomain"] == "blog.example.com"
        run_domain(provisioned, _args("domain", "subdomain-remove", "example.com", "blog"))
        assert _json(capsys)["removed"] is True

    def test_deprovision(self, provisioned, capsys):
        assert run_domain(provisioned, _args("domain", "deprovision", "example.com")) == 0
        assert _json(capsys)["succeeded"] is True

    def test_missing_subcommand(self, container, capsys):
        assert run_domain(container, _args("domain")) == 1
        assert "expected one of" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# dns
# ---------------------------------------------------------------------------


class TestDnsCommands:
    def test_add_list_remove(self, provisioned, capsys):
        add = ("example.com", "--name", "api", "--type", "a", "--content", "192.0.2.7")
        assert run_dns(provisioned, _args("dns", "add-record", *add)) == 0
        assert _json(capsys)["ttl"] == 3600

        run_dns(provisioned, _args("dns", "records", "example.com"))
        assert {"name": "api", "type": "A", "content": "192.0.2.7", "ttl": 3600, "priority": None} in _json(capsys)

        assert run_dns(provisioned, _args("dns", "remove-record", *add)) == 0
        assert run_dns(provisioned, _args("dns", "remove-record", *add)) == 1

    def test_unknown_type(self, provisioned):
        with pytest.raises(RecordValidationError, match="unknown record type 'XYZ'"):
            run_dns(provisioned, _args("dns", "add-record", "example.com", "--type", "XYZ", "--content", "x"))

    def test_no_zone(self, container, capsys):
        rc = run_dns(container, _args("dns", "add-record", "nope.test", "--type", "A", "--content", "192.0.2.1"))
        assert rc == 1
        assert "nope.test has no DNS zone" in capsys.readouterr().err

    def test_reset_and_check(self, provisioned, capsys):
        run_dns(provisioned, _args("dns", "reset", "example.com"))
        assert _json(capsys) == {"zone": "example.com", "serial": 2025031402}
        assert run_dns(provisioned, _args("dns", "check", "example.com")) == 0


# ---------------------------------------------------------------------------
# ssl
# ---------------------------------------------------------------------------


class TestSslCommands:
    def test_issue_forced(self, provisioned, capsys):
        assert run_ssl(provisioned, _args("ssl", "issue", "example.com", "--force", "--no-www")) == 0
        out = _json(capsys)
        assert out["hostnames"] == ["example.com"]
        assert out["status"] == "installed"

    def test_info(self, provisioned, capsys):
        run_ssl(provisioned, _args("ssl", "info", "example.com"))
        assert _json(capsys)["subject"] == "example.com"

    def test_upload(self, provisioned, tmp_path, clock, capsys):
        pem, key = generate_self_signed(["example.com"], now=clock.now(), key_type="ec256")
        (tmp_path / "c.pem").write_text(pem)
        (tmp_path / "k.pem").write_text(key)
        args = _args("ssl", "upload", "example.com", "--cert", str(tmp_path / "c.pem"), "--key", str(tmp_path / "k.pem"))
        assert run_ssl(provisioned, args) == 0
        assert _json(capsys)["kind"] == "custom"

    def test_upload_unreadable(self, provisioned, tmp_path, capsys):
        args = _args("ssl", "upload", "example.com", "--cert", str(tmp_path / "x"), "--key", str(tmp_path / "y"))
        assert run_ssl(provisioned, args) == 1
        assert "No such file" in capsys.readouterr().err

    def test_uninstall_and_revoke(self, provisioned, capsys):
        run_ssl(provisioned, _args("ssl", "revoke", "example.com"))
        assert _json(capsys)["status"] == "revoked"
        run_ssl(provisioned, _args("ssl", "uninstall", "example.com"))
        assert _json(capsys)["removed"] is True

    def test_unknown_domain(self, container):
        with pytest.raises(UnknownDomainError):
            run_ssl(container, _args("ssl", "info", "nope.test"))


class TestOfflineSslCommands:
    def test_verify(self, tmp_path, clock, capsys):
        pem, key = generate_self_signed(["example.com"], now=clock.now(), key_type="ec256")
        _, other = generate_self_signed(["example.com"], now=clock.now(), key_type="ec256")
        (tmp_path / "c.pem").write_text(pem)
        (tmp_path / "k.pem").write_text(key)
        (tmp_path / "o.pem").write_text(other)
        assert run_verify(_args("ssl", "verify", "--cert", str(tmp_path / "c.pem"), "--key", str(tmp_path / "k.pem"))) == 0
        assert _json(capsys) == {"match": True}
        assert run_verify(_args("ssl", "verify", "--cert", str(tmp_path / "c.pem"), "--key", str(tmp_path / "o.pem"))) == 1

    def test_verify_against_chain(self, tmp_path, clock, capsys):
        pem, key = generate_self_signed(["example.com"], now=clock.now(), key_type="ec256")
        stranger, _ = generate_self_signed(["ca.example.net"], now=clock.now(), key_type="ec256")
        (tmp_path / "c.pem").write_text(pem)
        (tmp_path / "k.pem").write_text(key)
        (tmp_path / "s.pem").write_text(stranger)
        base = ["ssl", "verify", "--cert", str(tmp_path / "c.pem"), "--key", str(tmp_path / "k.pem")]
        assert run_verify(_args(*base, "--chain", str(tmp_path / "c.pem"))) == 0
        assert _json(capsys) == {"match": True}
        assert run_verify(_args(*base, "--chain", str(tmp_path / "s.pem"))) == 1
        assert _json(capsys) == {"match": False}

    def test_csr_to_stdout(self, capsys):
        assert run_csr(_args("ssl", "csr", "example.com", "--san", "www.example.com", "--country", "DE")) == 0
        out = _json(capsys)
        assert out["csr"].startswith("-----BEGIN CERTIFICATE REQUEST-----")
        assert "PRIVATE KEY" in out["key"]

    def test_csr_to_files(self, tmp_path, capsys):
        csr, key = tmp_path / "req.csr", tmp_path / "req.key"
        run_csr(_args("ssl", "csr", "example.com", "--out-csr", str(csr), "--out-key", str(key)))
        assert _json(capsys) == {"csr": str(csr), "key": str(key)}
        assert csr.read_text().startswith("-----BEGIN CERTIFICATE REQUEST-----")
        assert key.stat().st_mode & 0o777 == 0o600


# ---------------------------------------------------------------------------
# renew / versions
# ---------------------------------------------------------------------------


class TestRenewAndVersions:
    def test_renew_dry_run(self, provisioned, clock, capsys):
        clock.advance(days=340)
        assert run_renew(provisioned, _args("renew", "--dry-run")) == 0
        out = _json(capsys)
        assert out["dry_run"] is True
        assert out["candidates"] == ["example.com"]

    def test_renew_failure_exit_code(self, provisioned, clock, runner, capsys):
        clock.advance(days=340)
        runner.fail("apache2ctl")
        assert run_renew(provisioned, _args("renew")) == 1
        assert "example.com" in _json(capsys)["failed"]

    def test_versions(self, container, runner, capsys):
        runner.respond("apache2ctl", "Server version: Apache/2.4.58 (Ubuntu)\n")
        assert run_versions(container, _args("versions")) == 0
        out = _json(capsys)
        assert out["web_server"] == {"driver": "apache", "version": "2.4.58"}
        assert out["dns"] == "bind"


# ---------------------------------------------------------------------------
# run_command dispatch
# ---------------------------------------------------------------------------


class TestRunCommand:
    def test_offline_commands_skip_container(self, capsys):
        with patch("hostplane.cli.commands.build_container") as build:
            assert run_command(MagicMock(), _args("ssl", "csr", "example.com")) == 0
        build.assert_not_called()

    def test_handler_error_is_reported(self, capsys):
        container = MagicMock()
        container.provisioning.find_domain.side_effect = UnknownDomainError("Unknown domain 'nope.test'")
        with patch("hostplane.cli.commands.build_container", return_value=container):
            assert run_command(MagicMock(), _args("domain", "show", "nope.test")) == 1
        assert "error: Unknown domain 'nope.test'" in capsys.readouterr().err
        container.shutdown.assert_called_once()

    def test_startup_failure(self, capsys):
        with patch("hostplane.cli.commands.build_container", side_effect=HostplaneError("apache2ctl not found")):
            assert run_command(MagicMock(), _args("versions")) == 1
        assert "apache2ctl not found" in capsys.readouterr().err

    def test_build_container_runs_startup_check(self, tmp_config_file):
        from hostplane.cli.commands import build_container
        from hostplane.config import HostplaneConfig

        config = HostplaneConfig(config_file=tmp_config_file)
        with patch("hostplane.app.context.Container") as container_cls:
            container = build_container(config)
        container_cls.assert_called_once_with(config.settings, None)
        container.startup_check.assert_called_once()
