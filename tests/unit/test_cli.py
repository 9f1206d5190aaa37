"""
Unit tests for sol_arb/cli.py

Startup validation and exit codes; the async run is replaced.
"""

import logging
from unittest.mock import AsyncMock

import pytest

from fakes import FakeClient

from sol_arb import cli
from sol_arb.config import ENV_VARS, ScannerConfig
from sol_arb.exceptions import RpcConnectionError

REQUIRED = {
    "PUMPSWAP_POOL": "pAMMBay6oceH9fJKBRHGP5D4bD4sWpmSwMn52FMfXEA",
    "DLMM_POOL": "LBUZKhRxPF3XUpBCjp4YzTKgLccjZhTSDM9YuVaPwxo",
    "MINT": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
    "BASE_MINT": "So11111111111111111111111111111111111111112",
}


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    # setenv first so teardown also removes values a dotenv file added
    for var in ENV_VARS.values():
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)
    monkeypatch.setattr(cli.logging_config, "setup", lambda level: None)


@pytest.fixture
def required_env(monkeypatch):
    for var, value in REQUIRED.items():
        monkeypatch.setenv(var, value)


@pytest.fixture
def recorded_run(monkeypatch):
    calls = []

    async def fake_run_mode(config, keypair, mode, cycles):
        calls.append((config, keypair, mode, cycles))
        return 0

    monkeypatch.setattr(cli, "run_mode", fake_run_mode)
    return calls


def argv(tmp_path, *args):
    return [*args, "--env-file", str(tmp_path / "absent.env")]


class TestArguments:
    def test_help_mode(self, capsys):
        assert cli.main(["help"]) == 0
        assert "Modes:" in capsys.readouterr().out

    def test_unknown_mode(self):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["trade"])
        assert exc_info.value.code == 2

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--version"])
        assert exc_info.value.code == 0
        assert "sol-arb" in capsys.readouterr().out


class TestStartup:
    """Fatal startup errors and the happy path."""

    def test_config_error(self, tmp_path, capsys, recorded_run):
        assert cli.main(argv(tmp_path)) == 1

        err = capsys.readouterr().err
        assert "Config error: PUMPSWAP_POOL environment variable is required" in err
        assert recorded_run == []

    def test_wallet_error(self, tmp_path, monkeypatch, required_env, recorded_run):
        bad_file = tmp_path / "id.json"
        bad_file.write_text("not json")
        monkeypatch.setenv("KEYPAIR_PATH", str(bad_file))

        assert cli.main(argv(tmp_path)) == 1
        assert recorded_run == []

    def test_live_mode_requires_wallet(
        self, tmp_path, monkeypatch, required_env, recorded_run, caplog
    ):
        monkeypatch.setenv("DRY_RUN", "false")

        assert cli.main(argv(tmp_path)) == 1
        assert "No wallet configured" in caplog.text
        assert recorded_run == []

    def test_dry_run_without_wallet(self, tmp_path, required_env, recorded_run):
        assert cli.main(argv(tmp_path, "monitor", "--cycles", "5")) == 0

        config, keypair, mode, cycles = recorded_run[0]
        assert isinstance(config, ScannerConfig)
        assert keypair is None
        assert mode == "monitor"
        assert cycles == 5

    def test_env_file_is_loaded(self, tmp_path, recorded_run):
        env_file = tmp_path / "scanner.env"
        env_file.write_text(
            "".join(f"{var}={value}\n" for var, value in REQUIRED.items())
        )

        assert cli.main(["analysis", "--env-file", str(env_file)]) == 0

        config = recorded_run[0][0]
        assert config.mint == REQUIRED["MINT"]
        assert recorded_run[0][2] == "analysis"

    def test_log_level_flag_overrides_env(self, tmp_path, monkeypatch, required_env):
        levels = []
        monkeypatch.setattr(cli.logging_config, "setup", levels.append)
        monkeypatch.setattr(cli, "run_mode", AsyncMock(return_value=0))
        monkeypatch.setenv("LOG_LEVEL", "error")

        cli.main(argv(tmp_path, "--log-level", "debug"))

        assert levels == [logging.DEBUG]

    def test_keyboard_interrupt(self, tmp_path, monkeypatch, required_env):
        monkeypatch.setattr(
            cli, "run_mode", AsyncMock(side_effect=KeyboardInterrupt)
        )

        assert cli.main(argv(tmp_path)) == 0


class TestRunMode:
    """Connection handling around a run."""

    def _config(self):
        return ScannerConfig(
            pumpswap_pool=REQUIRED["PUMPSWAP_POOL"],
            dlmm_pool=REQUIRED["DLMM_POOL"],
            mint=REQUIRED["MINT"],
            base_mint=REQUIRED["BASE_MINT"],
        )

    @pytest.mark.asyncio
    async def test_unreachable_rpc(self, monkeypatch):
        monkeypatch.setattr(
            cli,
            "connect_with_retry",
            AsyncMock(side_effect=RpcConnectionError("Failed after 3 attempts")),
        )

        assert await cli.run_mode(self._config(), None, "scan", 1) == 1

    @pytest.mark.asyncio
    async def test_analysis_closes_client(self, monkeypatch):
        client = FakeClient()
        analysis = AsyncMock(return_value={})
        monkeypatch.setattr(cli, "connect_with_retry", AsyncMock(return_value=client))
        monkeypatch.setattr(cli, "run_analysis", analysis)

        assert await cli.run_mode(self._config(), None, "analysis", None) == 0

        analysis.assert_awaited_once()
        assert client.closed is True
