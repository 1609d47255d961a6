from typer.testing import CliRunner

from avalonhost.services import cli

runner = CliRunner()


def test_rules_table_lists_every_size():
    result = runner.invoke(cli.app, ["rules"])
    assert result.exit_code == 0
    assert "Avalon rulesets" in result.output
    assert "3-4-4-5-5" in result.output


def test_rules_for_one_size():
    result = runner.invoke(cli.app, ["rules", "--players", "7"])
    assert result.exit_code == 0
    assert "Mission 4 needs two FAIL votes" in result.output


def test_rules_rejects_unknown_size():
    result = runner.invoke(cli.app, ["rules", "--players", "4"])
    assert result.exit_code == 1
    assert "no ruleset for 4 players" in result.output


def test_simulate_is_deterministic():
    first = runner.invoke(cli.app, ["simulate", "--players", "6", "--seed", "9"])
    second = runner.invoke(cli.app, ["simulate", "--players", "6", "--seed", "9"])
    assert first.exit_code == 0
    assert "Game started" in first.output
    assert "Simulation complete: winner=" in first.output
    assert first.output == second.output


def test_simulate_rejects_unsupported_size():
    result = runner.invoke(cli.app, ["simulate", "--players", "12"])
    assert result.exit_code == 1
    assert "No ruleset defined for 12 players" in result.output


def test_serve_uses_config(monkeypatch, tmp_path):
    calls = {}

    def fake_run(app, **kwargs):
        calls["app"] = app
        calls.update(kwargs)

    config = tmp_path / "host.json"
    config.write_text('{"port": 4100, "log_level": "warning"}')
    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    monkeypatch.setattr(cli, "configure_logging", lambda level="INFO": None)
    for key in ("PORT", "AVALON_PORT", "AVALON_HOST"):
        monkeypatch.delenv(key, raising=False)

    result = runner.invoke(cli.app, ["serve", "--config", str(config), "--host", "127.0.0.1"])
    assert result.exit_code == 0
    assert calls["host"] == "127.0.0.1"
    assert calls["port"] == 4100
    assert calls["log_level"] == "warning"
    assert calls["app"].state.config.port == 4100


def test_serve_reports_bad_config(tmp_path):
    config = tmp_path / "host.json"
    config.write_text('{"room_code_length": 2}')
    result = runner.invoke(cli.app, ["serve", "--config", str(config)])
    assert result.exit_code == 1
    assert "invalid configuration" in result.output
