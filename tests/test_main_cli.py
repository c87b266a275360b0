# tests/test_main_cli.py
import pytest

import main
import orchestration.cli_runner as cli_runner
from core.errors import ConfigurationError


def test_parser_outline_command():
    args = main.build_parser().parse_args(
        ["--provider", "deepseek", "outline", "40", "--requirements", "加快节奏"]
    )
    assert args.command == "outline"
    assert args.chapter == 40
    assert args.requirements == "加快节奏"
    assert args.provider == "deepseek"
    assert args.verbose is False


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        main.build_parser().parse_args([])


def test_parser_rejects_non_numeric_chapter():
    with pytest.raises(SystemExit):
        main.build_parser().parse_args(["chapter", "forty"])


def test_main_dispatches_to_runner(monkeypatch):
    seen = {}

    def fake_run(args):
        seen["command"] = args.command
        return 0

    monkeypatch.setattr(main, "run", fake_run)
    assert main.main(["-v", "usage"]) == 0
    assert seen["command"] == "usage"


def test_runner_returns_error_code_on_workbench_error(monkeypatch):
    async def failing(args):
        raise ConfigurationError("Unknown LLM provider: 'nope'.")

    monkeypatch.setattr(cli_runner, "setup_logging", lambda level=None: None)
    monkeypatch.setattr(cli_runner, "_run_with_workbench", failing)
    args = main.build_parser().parse_args(["extract"])
    assert cli_runner.run(args) == 1


def test_runner_prints_result(monkeypatch):
    printed = []

    async def succeed(args):
        return {"ok": True}

    monkeypatch.setattr(cli_runner, "setup_logging", lambda level=None: None)
    monkeypatch.setattr(cli_runner, "_run_with_workbench", succeed)
    monkeypatch.setattr(
        cli_runner.console, "print_json", lambda data=None: printed.append(data)
    )
    args = main.build_parser().parse_args(["usage"])
    assert cli_runner.run(args) == 0
    assert printed == [{"ok": True}]
