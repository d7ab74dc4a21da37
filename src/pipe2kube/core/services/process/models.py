import shlex
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Tuple

from pipe2kube.utils import mask


class Command(BaseModel):
    """
    Один вызов внешней утилиты.

    tool               — исполняемый файл (docker, kubectl, npm ...);
    args               — аргументы без shell-интерпретации;
    expected_exit_codes — коды, которые считаются успехом;
    stdin              — что отдать процессу на stdin (например, пароль registry);
    secrets            — значения, которые надо скрыть при выводе команды.
    """

    model_config = ConfigDict(frozen=True)

    tool: str
    args: Tuple[str, ...] = ()
    expected_exit_codes: Tuple[int, ...] = (0,)
    stdin: Optional[str] = Field(default=None, repr=False)
    timeout: Optional[float] = None
    secrets: Tuple[str, ...] = Field(default=(), repr=False)

    @classmethod
    def parse(cls, line: str, **kwargs) -> "Command":
        parts = shlex.split(line)
        if not parts:
            raise ValueError("empty command line")
        return cls(tool=parts[0], args=tuple(parts[1:]), **kwargs)

    @property
    def argv(self) -> Tuple[str, ...]:
        return (self.tool, *self.args)

    def display(self) -> str:
        return mask(shlex.join(self.argv), self.secrets)


class ProcessResult(BaseModel):
    command: Command
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.exit_code in self.command.expected_exit_codes

    @property
    def output(self) -> str:
        return mask((self.stdout + self.stderr).strip(), self.command.secrets)
