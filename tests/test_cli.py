"""Tests for the contract-provider CLI."""

import json

import pytest
from click.testing import CliRunner
from kubernetes.config.config_exception import ConfigException

from contractprovider.cli import main as cli_main
from contractprovider.cli.main import cli
from contractprovider.config import StorageBackend
from contractprovider.storage import render_bundle

ENV_VARS = (
    "STORAGE", "SECRET_NAME", "LOCAL_PATH", "COMMON_NAME", "PKI_ADDRESS", "PKI_API_KEY",
    "REPO_ADDRESS", "REPO_API_KEY", "REPO_CA_PATH", "FETCH_INTERVAL", "FETCH_JITTER",
    "IDENTITY_PATH", "REQUEST_TIMEOUT", "CONFLICT_RETRIES", "FETCH_CONCURRENCY", "DEBUG",
)


@pytest.fixture
def runner(monkeypatch):
    """Create CLI test runner with a clean environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return CliRunner()


@pytest.fixture
def captured(monkeypatch):
    """Replace the provider run and record the configuration it receives."""
    configs = []

    def fake_run_provider(config):
        configs.append(config)
        return 0

    monkeypatch.setattr(cli_main, "run_provider", fake_run_provider)
    return configs


class TestCLI:
    """Tests for top-level CLI behaviour."""

    def test_cli_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "contract provider" in result.output
        assert "run" in result.output
        assert "show" in result.output

    def test_cli_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "1.0.0" in result.output

    def test_run_help_lists_env_vars(self, runner):
        result = runner.invoke(cli, ["run", "--help"])
        assert result.exit_code == 0
        assert "PKI_ADDRESS" in result.output
        assert "FETCH_INTERVAL" in result.output


class TestRunCommand:
    """Tests for the run command."""

    def test_requires_addresses(self, runner, captured):
        result = runner.invoke(cli, ["run"])
        assert result.exit_code == 2
        assert "--pki-address" in result.output
        assert captured == []

    def test_options(self, runner, captured):
        result = runner.invoke(cli, [
            "run",
            "--pki-address", "http://pki:8080/",
            "--repo-address", "http://repo:8081",
            "--storage", "kubernetes",
            "--fetch-interval", "5min",
        ])
        assert result.exit_code == 0, result.output
        config = captured[0]
        assert config.pki_address == "http://pki:8080"
        assert config.storage is StorageBackend.KUBERNETES
        assert config.secret_name == "wirepact-contracts"
        assert config.common_name == "wirepact-contract-provider"
        assert config.fetch_interval == 300
        assert not config.one_shot

    def test_environment(self, runner, captured):
        result = runner.invoke(cli, ["run"], env={
            "PKI_ADDRESS": "http://pki:8080",
            "REPO_ADDRESS": "http://repo:8081",
            "REPO_API_KEY": "foobar",
            "SECRET_NAME": "contracts",
            "CONFLICT_RETRIES": "5",
        })
        assert result.exit_code == 0, result.output
        config = captured[0]
        assert config.repo_api_key == "foobar"
        assert config.secret_name == "contracts"
        assert config.conflict_retries == 5
        assert config.one_shot
        assert config.storage is StorageBackend.LOCAL

    def test_invalid_interval(self, runner, captured):
        result = runner.invoke(cli, [
            "run", "--pki-address", "http://pki", "--repo-address", "http://repo",
            "--fetch-interval", "soon",
        ])
        assert result.exit_code == 2
        assert "Invalid configuration" in result.output
        assert captured == []

    def test_zero_jitter(self, runner, captured):
        result = runner.invoke(cli, ["run"], env={
            "PKI_ADDRESS": "http://pki:8080",
            "REPO_ADDRESS": "http://repo:8081",
            "FETCH_INTERVAL": "5min",
            "FETCH_JITTER": "0",
        })
        assert result.exit_code == 0, result.output
        assert captured[0].fetch_jitter == 0

    def test_invalid_storage(self, runner, captured):
        result = runner.invoke(cli, [
            "run", "--pki-address", "http://pki", "--repo-address", "http://repo",
            "--storage", "s3",
        ])
        assert result.exit_code == 2

    def test_exit_code_is_passed_through(self, runner, monkeypatch):
        monkeypatch.setattr(cli_main, "run_provider", lambda config: 1)
        result = runner.invoke(cli, ["run", "--pki-address", "http://pki", "--repo-address", "http://repo"])
        assert result.exit_code == 1


class TestShowCommand:
    """Tests for the show command."""

    def test_show_json(self, runner, tmp_path, make_set, cert_a, cert_b, ca):
        path = tmp_path / "contracts.pem"
        path.write_bytes(render_bundle(make_set({"B": cert_b, "A": cert_a}, revision="9")))

        result = runner.invoke(cli, ["show", "--local-path", str(path), "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["store"] == f"local:{path}"
        assert data["revision"] == "9"
        assert [c["id"] for c in data["contracts"]] == ["A", "B"]
        assert data["contracts"][0]["subject"] == "participant-a"
        assert data["contracts"][0]["trust_zone"] == ca.trust_zone

    def test_show_table(self, runner, tmp_path, make_set, cert_a):
        path = tmp_path / "contracts.pem"
        path.write_bytes(render_bundle(make_set({"A": cert_a})))

        result = runner.invoke(cli, ["show", "--local-path", str(path)])

        assert result.exit_code == 0, result.output
        assert "participant-a" in result.output
        assert "Total contracts: 1" in result.output

    def test_show_missing_store(self, runner, tmp_path):
        result = runner.invoke(cli, ["show", "--local-path", str(tmp_path / "none.pem")])
        assert result.exit_code == 0
        assert "No contracts stored" in result.output

    def test_show_missing_store_json(self, runner, tmp_path):
        result = runner.invoke(cli, ["show", "--local-path", str(tmp_path / "none.pem"), "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["contracts"] == []

    def test_show_store_error(self, runner, monkeypatch):
        def no_cluster():
            raise ConfigException("no kubeconfig")

        monkeypatch.setattr(
            "contractprovider.storage.kubernetes_provider.load_client_configuration", no_cluster
        )
        result = runner.invoke(cli, ["show", "--storage", "kubernetes", "--namespace", "mesh"])
        assert result.exit_code == 1
        assert "Error:" in result.output
