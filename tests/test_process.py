import asyncio
import os
import sys

import pytest

from pipe2kube.core.services.process import Command, DryRunRunner, ProcessRunner


def _python(code: str, **kwargs) -> Command:
    return Command(tool=sys.executable, args=("-c", code), **kwargs)


def test_command_parse_splits_without_shell():
    command = Command.parse('npm run "lint all"')
    assert command.tool == "npm"
    assert command.args == ("run", "lint all")


def test_command_display_masks_secrets():
    command = Command(tool="docker", args=("login", "-p", "hunter2"), secrets=("hunter2",))
    assert "hunter2" not in command.display()


def test_runner_passes_stdin_and_captures_output():
    command = _python("import sys; print(sys.stdin.read().upper())", stdin="hello")
    result = asyncio.run(ProcessRunner(echo=False).run(command))
    assert result.ok
    assert result.stdout.strip() == "HELLO"


def test_runner_returns_non_zero_exit_without_raising():
    result = asyncio.run(ProcessRunner(echo=False).run(_python("import sys; sys.exit(3)")))
    assert not result.ok
    assert result.exit_code == 3


def test_runner_respects_expected_exit_codes():
    command = _python("import sys; sys.exit(3)", expected_exit_codes=(0, 3))
    assert asyncio.run(ProcessRunner(echo=False).run(command)).ok


def test_runner_reports_missing_tool():
    result = asyncio.run(ProcessRunner(echo=False).run(Command(tool="pipe2kube-no-such-tool")))
    assert result.exit_code == 127
    assert not result.ok


def test_runner_kills_on_timeout():
    command = _python("import time; time.sleep(10)", timeout=0.3)
    result = asyncio.run(ProcessRunner(echo=False).run(command))
    assert result.timed_out
    assert not result.ok


def test_dry_run_records_and_succeeds():
    runner = DryRunRunner(echo=False)
    result = asyncio.run(runner.run(Command(tool="kubectl", args=("apply", "-f", "x.yaml"))))
    assert result.ok
    assert runner.commands[0].args == ("apply", "-f", "x.yaml")


def test_cancelled_run_kills_the_process(tmp_path):
    pid_file = tmp_path / "pid"
    command = _python(
        f"import os, time; open({str(pid_file)!r}, 'w').write(str(os.getpid())); time.sleep(30)"
    )

    async def scenario():
        task = asyncio.ensure_future(ProcessRunner(echo=False).run(command))
        for _ in range(200):
            await asyncio.sleep(0.05)
            if pid_file.exists() and pid_file.read_text():
                break
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return int(pid_file.read_text())

    pid = asyncio.run(scenario())
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
