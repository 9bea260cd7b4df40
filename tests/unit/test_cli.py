from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from dynamic_ticketing import main as cli

runner = CliRunner()


@pytest.fixture(autouse=True)
def memory_backend(monkeypatch: pytest.MonkeyPatch, fresh_settings) -> None:
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("LOCK_TIMEOUT_MS", "2000")
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)


def test_info_shows_effective_settings() -> None:
    result = runner.invoke(cli.app, ["info"])

    assert result.exit_code == 0
    assert "backend=memory" in result.output
    assert "lock_timeout_ms=2000" in result.output
    assert "memory backend starts empty for every command" in result.output


def test_init_db_is_a_no_op_for_memory_backend() -> None:
    result = runner.invoke(cli.app, ["init-db"])

    assert result.exit_code == 0
    assert "needs no schema" in result.output
    assert "STORE_BACKEND=postgres" in result.output


def test_create_event() -> None:
    result = runner.invoke(
        cli.app,
        [
            "create-event",
            "--name",
            "Jazz Night",
            "--venue",
            "Blue Room",
            "--at",
            "2030-01-01T20:00:00",
            "--capacity",
            "50",
            "--base-price",
            "5000",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Created event 1: Jazz Night" in result.output


def test_create_event_with_invalid_bounds_exits_1() -> None:
    result = runner.invoke(
        cli.app,
        [
            "create-event",
            "--name",
            "Jazz Night",
            "--venue",
            "Blue Room",
            "--at",
            "2030-01-01",
            "--capacity",
            "50",
            "--base-price",
            "5000",
            "--floor",
            "6000",
        ],
    )

    assert result.exit_code == 1
    assert "INVALID_CONFIGURATION" in result.output


@pytest.mark.parametrize(
    "args",
    [
        ["price", "1"],
        ["breakdown", "1"],
        ["book", "1", "--contact", "fan@example.com"],
        ["bookings", "1"],
    ],
)
def test_unknown_event_exits_1(args: list[str]) -> None:
    result = runner.invoke(cli.app, args)

    assert result.exit_code == 1
    assert "EVENT_NOT_FOUND" in result.output


def test_events_empty() -> None:
    result = runner.invoke(cli.app, ["events"])

    assert result.exit_code == 0
    assert "No events to display." in result.output


def test_simulate_json(tmp_path) -> None:
    result = runner.invoke(
        cli.app,
        [
            "simulate",
            "--requests",
            "5",
            "--capacity",
            "3",
            "--concurrency",
            "5",
            "--results-dir",
            str(tmp_path),
            "--json",
        ],
    )

    assert result.exit_code == 0, result.output
    summary = json.loads(result.stdout)
    assert summary["accepted"] == 3
    assert summary["rejected"] == 2
    assert summary["invariant_holds"] is True
    assert (tmp_path / "latest.json").exists()


def test_simulate_table_without_persisting(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(cli.app, ["simulate", "--requests", "2", "--capacity", "1", "--no-persist"])

    assert result.exit_code == 0, result.output
    assert "Capacity invariant" in result.output
    assert not (tmp_path / "results").exists()


def test_main_maps_keyboard_interrupt_to_130(monkeypatch: pytest.MonkeyPatch) -> None:
    def _interrupt() -> None:
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "app", _interrupt)

    with pytest.raises(SystemExit) as excinfo:
        cli.main()

    assert excinfo.value.code == 130


def test_info_omits_memory_note_for_postgres(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STORE_BACKEND", "postgres")

    result = runner.invoke(cli.app, ["info"])

    assert result.exit_code == 0
    assert "backend=postgres" in result.output
    assert "memory backend" not in result.output
