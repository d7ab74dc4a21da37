import asyncio
import click
from typing import List, Optional

from pipe2kube.core import config

from .models import Command, ProcessResult

EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124


class ProcessRunner:
    """
    Запускает внешние процессы (без shell) и возвращает ProcessResult.
    Ненулевой код возврата — это значение, а не исключение:
    решать, что с ним делать, должен вызывающий компонент.
    """

    def __init__(self, default_timeout: Optional[float] = None, echo: bool = True) -> None:
        self.default_timeout = default_timeout or config.COMMAND_TIMEOUT
        self.echo = echo

    async def run(self, command: Command) -> ProcessResult:
        if self.echo:
            click.echo(f"$ {command.display()}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *command.argv,
                stdin=asyncio.subprocess.PIPE if command.stdin is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            return ProcessResult(command=command, exit_code=EXIT_NOT_FOUND, stderr=str(e))

        stdin = command.stdin.encode() if command.stdin is not None else None
        timeout = command.timeout or self.default_timeout
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(stdin), timeout=timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            return ProcessResult(
                command=command,
                exit_code=EXIT_TIMEOUT,
                stderr=f"command timed out after {timeout:g}s",
                timed_out=True,
            )
        except asyncio.CancelledError:
            # отмена задачи останавливает и процесс
            await _kill(proc)
            raise

        return ProcessResult(
            command=command,
            exit_code=proc.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )


async def _kill(proc) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        # процесс успел завершиться сам
        pass
    await proc.wait()


class DryRunRunner:
    """
    Ничего не запускает: печатает команды и считает каждую успешной.
    """

    def __init__(self, stdout: str = "", echo: bool = True) -> None:
        self.stdout = stdout
        self.echo = echo
        self.commands: List[Command] = []

    async def run(self, command: Command) -> ProcessResult:
        self.commands.append(command)
        if self.echo:
            click.echo(f"[dry-run] $ {command.display()}")
        return ProcessResult(
            command=command,
            exit_code=command.expected_exit_codes[0],
            stdout=self.stdout,
        )
