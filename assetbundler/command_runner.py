"""Process execution for the external editor, with a recording variant for dry runs and tests."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Callable, Dict, Iterable, Iterator, List, Mapping, Sequence
import os
import shlex
import subprocess
import threading

OutputCallback = Callable[[str, str], None]


@dataclass
class CommandResult:
    """Outcome of one external process: exit code plus the full captured transcript."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    def iter_lines(self, *, skip_prefixes: Sequence[str] = ()) -> Iterator[tuple[str, str]]:
        """Yield ``(stream, line)`` pairs, dropping blank lines and lines with an ignored prefix."""

        for stream, text in (("stdout", self.stdout), ("stderr", self.stderr)):
            for line in text.splitlines():
                stripped = line.rstrip()
                if not stripped.strip():
                    continue
                if any(stripped.lstrip().startswith(prefix) for prefix in skip_prefixes):
                    continue
                yield stream, stripped


class CommandError(RuntimeError):
    """Raised when a command fails and the caller asked for ``check``."""

    def __init__(self, result: CommandResult):
        message = (
            f"Command failed with exit code {result.returncode}: "
            f"{' '.join(map(shlex.quote, result.command))}\n"
            f"stdout: {result.stdout}\n"
            f"stderr: {result.stderr}"
        )
        super().__init__(message)
        self.result = result


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        on_output: OutputCallback | None = None,
    ) -> CommandResult:
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return " ".join(shlex.quote(str(part)) for part in command)


def _drain(stream: IO[str], sink: List[str], name: str, on_output: OutputCallback | None) -> None:
    for line in iter(stream.readline, ""):
        sink.append(line)
        if on_output is not None:
            on_output(name, line.rstrip("\n"))
    stream.close()


class SubprocessCommandRunner(CommandRunner):
    """Runs commands via :mod:`subprocess`, draining stdout and stderr concurrently."""

    @staticmethod
    def _merge_environment(env: Mapping[str, str] | None) -> Dict[str, str] | None:
        if env is None:
            return None
        merged = os.environ.copy()
        merged.update(env)
        return merged

    def _finalize(self, result: CommandResult, *, check: bool) -> CommandResult:
        if check and result.returncode != 0:
            raise CommandError(result)
        return result

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        on_output: OutputCallback | None = None,
    ) -> CommandResult:
        merged_env = self._merge_environment(env)
        if on_output is None:
            # communicate() reads both pipes together, so neither can fill up.
            process = subprocess.run(
                [str(part) for part in command],
                cwd=str(cwd) if cwd else None,
                env=merged_env,
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
            )
            return self._finalize(
                CommandResult(
                    command=command,
                    returncode=process.returncode,
                    stdout=process.stdout or "",
                    stderr=process.stderr or "",
                ),
                check=check,
            )

        stdout_lines: List[str] = []
        stderr_lines: List[str] = []
        with subprocess.Popen(
            [str(part) for part in command],
            cwd=str(cwd) if cwd else None,
            env=merged_env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        ) as process:
            readers = [
                threading.Thread(target=_drain, args=(process.stdout, stdout_lines, "stdout", on_output), daemon=True),
                threading.Thread(target=_drain, args=(process.stderr, stderr_lines, "stderr", on_output), daemon=True),
            ]
            for reader in readers:
                reader.start()
            returncode = process.wait()
            for reader in readers:
                reader.join()

        return self._finalize(
            CommandResult(
                command=command,
                returncode=returncode,
                stdout="".join(stdout_lines),
                stderr="".join(stderr_lines),
            ),
            check=check,
        )


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str] = field(default_factory=dict)


class RecordingCommandRunner(CommandRunner):
    """Records commands instead of executing them and answers with a canned result."""

    def __init__(self, *, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.commands: List[RecordedCommand] = []
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        on_output: OutputCallback | None = None,
    ) -> CommandResult:
        self.commands.append(
            RecordedCommand(
                command=[str(part) for part in command],
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env else {},
            )
        )
        result = CommandResult(
            command=list(command),
            returncode=self.returncode,
            stdout=self.stdout,
            stderr=self.stderr,
        )
        if check and result.returncode != 0:
            raise CommandError(result)
        return result

    def iter_formatted(self) -> Iterable[str]:
        for record in self.commands:
            parts: List[str] = ["[dry-run]"]
            if record.cwd:
                parts.append(f"(cwd={record.cwd})")
            parts.append(self.format_command(record.command))
            yield " ".join(parts)
