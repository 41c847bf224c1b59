"""
Tests for the executor — run strategies, ordering and failure policy.
"""

import time

import pytest

from src.adapters.base import CommandContext
from src.adapters.mock import MockTerminal
from src.adapters.shell.command import LocalTerminal
from src.core.engine.errors import (
    CommandExitError,
    CommandFailedError,
    CommandTimeoutError,
    TargetNotFoundError,
)
from src.core.engine.executor import STRATEGIES, Executor
from src.core.observability.leveled import CommandTranscript
from src.core.observability.redact import REDACTED

# ── Ordering ─────────────────────────────────────────────────────────


class TestSequentialOrder:
    @pytest.mark.parametrize("strategy", list(STRATEGIES))
    def test_commands_run_in_target_order(self, terminal, make_package, strategy):
        pkg = make_package(["c1", "c2", "c3", "c4"])
        Executor(terminal).run(pkg, "ubuntu:22.04", strategy)
        assert terminal.commands == ["c1", "c2", "c3", "c4"]

    def test_target_lookup_is_case_insensitive(self, terminal, make_package):
        pkg = make_package(["c1"])
        Executor(terminal).run_error_only(pkg, "UBUNTU:22.04")
        assert terminal.commands == ["c1"]

    def test_rerun_reissues_commands(self, terminal, make_package):
        pkg = make_package(["dropdb dojodb", "createdb dojodb"])
        executor = Executor(terminal)
        executor.run_error_only(pkg, "ubuntu:22.04")
        executor.run_error_only(pkg, "ubuntu:22.04")
        assert terminal.commands == ["dropdb dojodb", "createdb dojodb"] * 2


# ── Failure policy ───────────────────────────────────────────────────


class TestFatalShortCircuit:
    def test_fatal_failure_stops_error_only_run(self, terminal, make_package):
        pkg = make_package([
            "c1",
            {"text": "c2", "error_message": "Unable to install PostgreSQL", "fatal": True},
            "c3",
        ])
        terminal.fail_on("c2")
        with pytest.raises(CommandFailedError) as exc:
            Executor(terminal).run_error_only(pkg, "ubuntu:22.04")
        assert terminal.commands == ["c1", "c2"]
        assert "Unable to install PostgreSQL" in str(exc.value)
        assert exc.value.error_message == "Unable to install PostgreSQL"
        assert isinstance(exc.value.cause, CommandExitError)

    def test_non_fatal_failure_continues(self, terminal, make_package, caplog):
        pkg = make_package([
            "c1",
            {"text": "c2", "error_message": "Unable to add postgres user", "fatal": False},
            "c3",
            "c4",
        ])
        terminal.fail_on("c2")
        assert Executor(terminal).run_error_only(pkg, "ubuntu:22.04") is None
        assert terminal.commands == ["c1", "c2", "c3", "c4"]
        assert "Unable to add postgres user occurred and returned exit status 1" in caplog.text

    @pytest.mark.parametrize("method", ["run_combined", "run_stdout", "run_stderr"])
    def test_output_strategies_abort_on_any_failure(self, terminal, make_package, method):
        pkg = make_package(["c1", {"text": "c2", "fatal": False}, "c3"])
        terminal.fail_on("c2")
        with pytest.raises(CommandFailedError) as exc:
            getattr(Executor(terminal), method)(pkg, "ubuntu:22.04")
        assert terminal.commands == ["c1", "c2"]
        assert exc.value.fatal is False

    def test_silent_never_aborts(self, make_package):
        terminal = MockTerminal(error=CommandExitError(1))
        pkg = make_package([{"text": "c1", "fatal": True}, "c2"])
        assert Executor(terminal).run_silently(pkg, "ubuntu:22.04") is None
        assert terminal.commands == ["c1", "c2"]

    def test_failure_output_includes_partial(self, make_package):
        terminal = MockTerminal(output=b"good\n")
        terminal.fail_on("c2", CommandExitError(1, command="c2", output=b"half"))
        pkg = make_package(["c1", "c2"])
        with pytest.raises(CommandFailedError) as exc:
            Executor(terminal).run_combined(pkg, "ubuntu:22.04")
        assert exc.value.output == b"good\nhalf"

    def test_timeout_is_distinguishable(self, make_package):
        terminal = MockTerminal()
        terminal.fail_on("slow", CommandTimeoutError(0.05, command="slow"))
        pkg = make_package([{"text": "slow", "error_message": "DB start hung", "fatal": True}])
        with pytest.raises(CommandFailedError) as exc:
            Executor(terminal).run_error_only(pkg, "ubuntu:22.04")
        assert exc.value.timed_out
        assert "timed out" in str(exc.value)


# ── Edge cases ───────────────────────────────────────────────────────


class TestEmptyAndUnknownTargets:
    @pytest.mark.parametrize("strategy", list(STRATEGIES))
    def test_empty_target_is_not_an_error(self, terminal, make_package, strategy):
        pkg = make_package([])
        out = Executor(terminal).run(pkg, "ubuntu:22.04", strategy)
        assert out in (None, b"")
        assert terminal.call_count == 0

    @pytest.mark.parametrize("method", [
        "run_combined", "run_error_only", "run_silently", "run_stdout", "run_stderr",
    ])
    def test_unknown_target_runs_nothing(self, terminal, make_package, method):
        pkg = make_package(["c1"])
        with pytest.raises(TargetNotFoundError) as exc:
            getattr(Executor(terminal), method)(pkg, "ubuntu:20.04")
        assert terminal.call_count == 0
        assert "ubuntu:20.04" in str(exc.value)

    def test_no_prefix_matching(self, terminal, make_package):
        pkg = make_package(["c1"])
        with pytest.raises(TargetNotFoundError):
            Executor(terminal).run_error_only(pkg, "ubuntu:22")

    def test_unknown_strategy(self, terminal, make_package):
        with pytest.raises(ValueError):
            Executor(terminal).run(make_package(["c1"]), "ubuntu:22.04", "parallel")


# ── Output accumulation ──────────────────────────────────────────────


class TestOutputCapture:
    def test_combined_accumulates(self, make_package):
        terminal = MockTerminal()
        terminal.respond("a", b"first\n")
        terminal.respond("b", b"second\n")
        pkg = make_package(["a", "b"])
        out = Executor(terminal).run_combined(pkg, "ubuntu:22.04")
        assert out == b"first\nsecond\n"

    def test_output_fields_on_commands(self, make_package):
        terminal = MockTerminal(output=b"text")
        pkg = make_package(["a"])
        command = pkg.targets[0].commands[0]

        Executor(terminal).run_stdout(pkg, "ubuntu:22.04")
        assert (command.stdout, command.stderr, command.combined) == ("text", "", "")

        Executor(terminal).run_stderr(pkg, "ubuntu:22.04")
        assert (command.stdout, command.stderr, command.combined) == ("", "text", "")

        Executor(terminal).run_combined(pkg, "ubuntu:22.04")
        assert (command.stdout, command.stderr, command.combined) == ("", "", "text")

        Executor(terminal).run_error_only(pkg, "ubuntu:22.04")
        assert (command.stdout, command.stderr, command.combined) == ("", "", "")

    def test_before_and_after_text(self, terminal, make_package, capsys):
        pkg = make_package([{"text": "a", "before_text": "Starting A", "after_text": "Done A"}])
        Executor(terminal).run_error_only(pkg, "ubuntu:22.04")
        out = capsys.readouterr().out
        assert out.index("Starting A") < out.index("Done A")

    def test_quiet_suppresses_echo(self, terminal, make_package, capsys):
        pkg = make_package([{"text": "a", "before_text": "Starting A"}])
        pkg.log.quiet = True
        Executor(terminal).run_error_only(pkg, "ubuntu:22.04")
        assert "Starting A" not in capsys.readouterr().out


# ── Transcript & redaction ───────────────────────────────────────────


class TestTranscript:
    def test_transcript_written_when_enabled(self, tmp_path, make_package):
        terminal = MockTerminal(output=b"connected with hunter2")
        pkg = make_package(["psql -p hunter2"])
        pkg.add_redact("hunter2")
        transcript = CommandTranscript(tmp_path / "cmd.log", prefix="[test]")
        pkg.set_transcript(transcript)
        pkg.turn_on_transcript()

        Executor(terminal).run_combined(pkg, "ubuntu:22.04")
        transcript.close()

        content = (tmp_path / "cmd.log").read_text()
        assert f"[test] # psql -p {REDACTED}\nconnected with {REDACTED}" in content
        assert "hunter2" not in content

    def test_transcript_off_by_default(self, tmp_path, terminal, make_package):
        pkg = make_package(["a"])
        transcript = CommandTranscript(tmp_path / "cmd.log")
        pkg.set_transcript(transcript)
        Executor(terminal).run_combined(pkg, "ubuntu:22.04")
        transcript.close()
        assert (tmp_path / "cmd.log").read_text() == ""

    def test_failure_message_is_redacted(self, make_package):
        terminal = MockTerminal()
        terminal.fail_on("a", CommandExitError(1, command="a"))
        pkg = make_package([{"text": "a", "error_message": "Login with s3cret failed"}])
        pkg.add_redact("s3cret")
        with pytest.raises(CommandFailedError) as exc:
            Executor(terminal).run_combined(pkg, "ubuntu:22.04")
        assert "s3cret" not in str(exc.value)
        assert REDACTED in str(exc.value)


# ── Parent context ───────────────────────────────────────────────────


class TestParentContext:
    def test_cancelled_parent_fails_every_command(self, make_package):
        parent = CommandContext.background()
        parent.cancel()
        pkg = make_package([{"text": "echo hi", "fatal": True}])
        with pytest.raises(CommandFailedError) as exc:
            Executor(LocalTerminal(), context=parent).run_error_only(pkg, "ubuntu:22.04")
        assert "cancelled" in str(exc.value)


# ── Real terminal scenarios ──────────────────────────────────────────


class TestLocalScenarios:
    def test_fatal_abort_with_real_terminal(self, make_package):
        pkg = make_package([
            {"text": "echo ok", "error_message": "echo failed"},
            {"text": "false", "error_message": "Second step exploded", "fatal": True},
            {"text": "echo never", "error_message": "never failed"},
        ])
        with pytest.raises(CommandFailedError) as exc:
            Executor(LocalTerminal()).run_combined(pkg, "ubuntu:22.04")
        assert b"ok" in exc.value.output
        assert b"never" not in exc.value.output
        assert "Second step exploded" in str(exc.value)

    def test_timeout_with_real_terminal(self, make_package):
        pkg = make_package([
            {"text": "sleep 5", "error_message": "Sleep was cut short", "timeout": 0.05},
        ])
        start = time.monotonic()
        with pytest.raises(CommandFailedError) as exc:
            Executor(LocalTerminal()).run_combined(pkg, "ubuntu:22.04")
        elapsed = time.monotonic() - start
        assert exc.value.timed_out
        assert elapsed < 2
