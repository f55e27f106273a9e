"""Tests for the todo-sync command line.

Each test runs main() end to end against a temporary state directory.
The connectivity probe is patched so nothing touches the network.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from todo_sync.cli import _resolve_task, build_parser, main
from todo_sync.store.models import TaskItem
from todo_sync.store.state import StateStore
from todo_sync.sync.models import SyncPassResult, SyncStatus


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv("TODO_SYNC_CONFIG", raising=False)
    monkeypatch.delenv("TODO_SYNC_CONFLICT_STRATEGY", raising=False)
    monkeypatch.setenv("TODO_SYNC_APP_KEY", "cli-test-key")
    monkeypatch.setenv("TODO_SYNC_STATE_DIR", str(tmp_path / "state"))
    with patch(
        "todo_sync.sync.connectivity.ConnectivityMonitor.probe", return_value=False
    ):
        yield tmp_path


def _logged_in(state_dir):
    StateStore(state_dir).set(
        "credential",
        {"access_token": "a", "refresh_token": "r", "expires_at": None},
    )


class TestParser:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 2
        assert "usage: todo-sync" in capsys.readouterr().out

    def test_edit_commands_accept_no_sync(self):
        args = build_parser().parse_args(["add", "--no-sync", "Buy", "milk"])
        assert args.no_sync is True
        assert args.text == ["Buy", "milk"]

    def test_unknown_strategy_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--conflict-strategy", "merge", "status"])


class TestResolveTask:
    TASKS = [TaskItem(id="a1", text="one"), TaskItem(id="b2", text="two")]

    def test_by_number(self):
        assert _resolve_task(self.TASKS, "2").text == "two"

    def test_by_id(self):
        assert _resolve_task(self.TASKS, "a1").text == "one"

    @pytest.mark.parametrize("ref", ["0", "3", "zz"])
    def test_missing(self, ref):
        with pytest.raises(KeyError):
            _resolve_task(self.TASKS, ref)


class TestTaskCommands:
    def test_add_then_list(self, cli_env, capsys):
        assert main(["add", "Buy", "milk"]) == 0
        assert main(["add", "(A) Call the bank"]) == 0
        capsys.readouterr()

        assert main(["list", "--sort"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines == ["  2  (A) Call the bank", "  1  Buy milk"]

    def test_done_toggles(self, cli_env, capsys):
        main(["add", "Buy milk"])
        assert main(["done", "1"]) == 0
        assert capsys.readouterr().out.splitlines()[-1] == "x Buy milk"

        assert main(["done", "1"]) == 0
        assert capsys.readouterr().out.splitlines()[-1] == "Buy milk"

    def test_edit_and_remove(self, cli_env, capsys):
        main(["add", "Buy milk"])
        assert main(["edit", "1", "Buy", "oat", "milk"]) == 0
        assert main(["remove", "1"]) == 0
        assert "Removed: Buy oat milk" in capsys.readouterr().out

    def test_unknown_task_is_an_error(self, cli_env, capsys):
        assert main(["done", "5"]) == 1
        assert "not found: 5" in capsys.readouterr().err

    def test_invalid_text_is_an_error(self, cli_env, capsys):
        assert main(["add", "  "]) == 1
        assert "cannot be empty" in capsys.readouterr().err

    def test_import(self, cli_env, capsys):
        source = cli_env / "old.txt"
        source.write_text("one\n\ntwo\n", encoding="utf-8")
        assert main(["import", str(source)]) == 0
        assert "Imported 2 task(s)" in capsys.readouterr().out

    def test_edit_marks_pending(self, cli_env, capsys):
        main(["add", "--no-sync", "Buy milk"])
        capsys.readouterr()
        assert main(["status", "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["pending"] == ["/todo.txt"]
        assert data["status"] == "not_connected"


class TestSyncAfterEdit:
    def test_edit_syncs_when_connected(self, cli_env):
        _logged_in(cli_env / "state")
        result = SyncPassResult(path="/todo.txt", status=SyncStatus.IDLE)
        with (
            patch(
                "todo_sync.sync.connectivity.ConnectivityMonitor.probe",
                return_value=True,
            ),
            patch(
                "todo_sync.sync.coordinator.SyncCoordinator.run_sync_pass",
                new_callable=AsyncMock,
                return_value=result,
            ) as mock_pass,
        ):
            assert main(["add", "Buy milk"]) == 0
        mock_pass.assert_awaited_once_with("/todo.txt")

    def test_no_sync_flag(self, cli_env):
        _logged_in(cli_env / "state")
        with (
            patch(
                "todo_sync.sync.connectivity.ConnectivityMonitor.probe",
                return_value=True,
            ),
            patch(
                "todo_sync.sync.coordinator.SyncCoordinator.run_sync_pass",
                new_callable=AsyncMock,
            ) as mock_pass,
        ):
            assert main(["add", "--no-sync", "Buy milk"]) == 0
        mock_pass.assert_not_awaited()

    def test_offline_edit_does_not_sync(self, cli_env):
        _logged_in(cli_env / "state")
        with patch(
            "todo_sync.sync.coordinator.SyncCoordinator.run_sync_pass",
            new_callable=AsyncMock,
        ) as mock_pass:
            assert main(["add", "Buy milk"]) == 0
        mock_pass.assert_not_awaited()


class TestFileCommands:
    def test_add_file_offline(self, cli_env, capsys):
        assert main(["add-file", "groceries"]) == 0
        captured = capsys.readouterr()
        assert "Created /groceries.txt" in captured.out
        assert "uploaded once connected" in captured.err

        assert main(["files"]) == 0
        out = capsys.readouterr().out
        assert "* groceries.txt  (pending upload)" in out
        assert "  todo.txt" in out

    def test_add_file_duplicate(self, cli_env, capsys):
        assert main(["add-file", "todo"]) == 1
        assert "already exists" in capsys.readouterr().err

    def test_use_unknown_file(self, cli_env, capsys):
        assert main(["use", "nope"]) == 1
        assert "not found: nope" in capsys.readouterr().err

    def test_use_switches_active(self, cli_env, capsys):
        main(["add-file", "work"])
        assert main(["use", "todo"]) == 0
        assert "Active file: /todo.txt" in capsys.readouterr().out

    def test_delete_requires_confirmation(self, cli_env, capsys):
        main(["add-file", "work"])
        with patch("builtins.input", return_value="n"):
            assert main(["delete-file", "work"]) == 1
        assert "Cancelled." in capsys.readouterr().err


class TestStatusAndSync:
    def test_status_text(self, cli_env, capsys):
        assert main(["status"]) == 0
        out = capsys.readouterr().out
        assert "File:   /todo.txt" in out
        assert "Status: not_connected" in out

    def test_sync_when_logged_out(self, cli_env, capsys):
        assert main(["sync", "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["path"] == "/todo.txt"
        assert data["status"] == "not_connected"

    def test_logout(self, cli_env, capsys):
        _logged_in(cli_env / "state")
        assert main(["logout"]) == 0
        assert StateStore(cli_env / "state").get("credential") is None

    def test_config_error_exit_code(self, cli_env, monkeypatch):
        monkeypatch.delenv("TODO_SYNC_APP_KEY")
        assert main(["status"]) == 1


def test_init_writes_starter_config(cli_env, capsys):
    assert main(["init"]) == 0
    path = cli_env / ".todo_sync" / "config.yml"
    assert path.exists()
    assert str(path) in capsys.readouterr().out


class TestLoggingSetup:
    def test_default_level_is_warning(self, cli_env):
        with patch("todo_sync.cli.setup_logging") as mock_setup:
            assert main(["status"]) == 0
        kwargs = mock_setup.call_args.kwargs
        assert kwargs["level"] == "WARNING"
        assert kwargs["config_log_file"] is None

    def test_config_logging_section_applied(self, cli_env):
        cfg = cli_env / ".todo_sync" / "config.yml"
        cfg.parent.mkdir()
        cfg.write_text(f"logging:\n  level: DEBUG\n  file: {cli_env / 'todo.log'}\n")

        with patch("todo_sync.cli.setup_logging") as mock_setup:
            assert main(["status"]) == 0

        kwargs = mock_setup.call_args.kwargs
        assert kwargs["level"] == "DEBUG"
        assert kwargs["config_log_file"] == str(cli_env / "todo.log")
