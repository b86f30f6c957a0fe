"""Materialize asset directories into the workspace by copy, symlink, hardlink or junction."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict
import os
import shutil
import stat
import sys

from .command_runner import CommandError, CommandRunner, SubprocessCommandRunner
from .console import Console
from .environment import current_platform
from .errors import ConfigurationError


class LinkMethod(str, Enum):
    COPY = "copy"
    SYMLINK = "symlink"
    HARDLINK = "hardlink"
    JUNCTION = "junction"

    @classmethod
    def parse(cls, value: "str | LinkMethod") -> "LinkMethod":
        if isinstance(value, LinkMethod):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if member.value == text:
                return member
        valid = ", ".join(member.value for member in cls)
        raise ConfigurationError(f"Unknown link method '{value}'. Valid values are: {valid}")


class LinkStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    UNSUPPORTED_ON_PLATFORM = "unsupported_on_platform"
    PERMISSION_DENIED = "permission_denied"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class LinkResult:
    status: LinkStatus
    path: Path
    message: str = ""
    reused: bool = False

    @property
    def ok(self) -> bool:
        return self.status is LinkStatus.OK

    @classmethod
    def success(cls, path: Path, *, reused: bool = False) -> "LinkResult":
        return cls(LinkStatus.OK, path, reused=reused)

    @classmethod
    def failure(cls, status: LinkStatus, path: Path, message: str) -> "LinkResult":
        return cls(status, path, message)


_ERROR_PRIVILEGE_NOT_HELD = 1314


def _clear_readonly(function: Callable[..., object], path: str, _excinfo: object) -> None:
    os.chmod(path, stat.S_IWRITE | stat.S_IREAD)
    function(path)


class FileOperations:
    """Filesystem primitives used while staging; replaced by fakes in tests."""

    def exists(self, path: Path) -> bool:
        raise NotImplementedError

    def make_dirs(self, path: Path) -> None:
        raise NotImplementedError

    def remove(self, path: Path) -> None:
        raise NotImplementedError

    def copy_file(self, source: Path, target: Path) -> None:
        raise NotImplementedError

    def copy_tree(self, source: Path, target: Path) -> None:
        raise NotImplementedError

    def symlink_directory(self, source: Path, target: Path) -> None:
        raise NotImplementedError

    def hardlink_tree(self, source: Path, target: Path) -> None:
        raise NotImplementedError

    def create_junction(self, source: Path, target: Path) -> None:
        raise NotImplementedError

    def write_text(self, path: Path, content: str) -> None:
        raise NotImplementedError


class SystemFileOperations(FileOperations):
    def __init__(self, *, command_runner: CommandRunner | None = None) -> None:
        self.command_runner = command_runner or SubprocessCommandRunner()

    def exists(self, path: Path) -> bool:
        return path.exists() or path.is_symlink()

    def make_dirs(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def remove(self, path: Path) -> None:
        """Remove a file, link or directory tree, clearing read-only bits that block deletion."""

        if path.is_symlink() or path.is_file():
            if not os.access(path, os.W_OK) and not path.is_symlink():
                os.chmod(path, stat.S_IWRITE | stat.S_IREAD)
            path.unlink()
            return
        if _is_junction(path):
            os.rmdir(path)
            return
        if path.is_dir():
            if sys.version_info >= (3, 12):
                shutil.rmtree(path, onexc=_clear_readonly)
            else:
                shutil.rmtree(path, onerror=_clear_readonly)

    def copy_file(self, source: Path, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)

    def copy_tree(self, source: Path, target: Path) -> None:
        shutil.copytree(source, target, symlinks=False)

    def symlink_directory(self, source: Path, target: Path) -> None:
        os.symlink(source, target, target_is_directory=True)

    def hardlink_tree(self, source: Path, target: Path) -> None:
        target.mkdir(parents=True, exist_ok=True)
        for root, directories, files in os.walk(source):
            relative = Path(root).relative_to(source)
            for name in directories:
                (target / relative / name).mkdir(parents=True, exist_ok=True)
            for name in files:
                os.link(Path(root) / name, target / relative / name)

    def create_junction(self, source: Path, target: Path) -> None:
        try:
            self.command_runner.run(["cmd", "/c", "mklink", "/J", str(target), str(source)], check=True)
        except CommandError as exc:
            raise OSError(str(exc)) from exc

    def write_text(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


def _is_junction(path: Path) -> bool:
    checker = getattr(os.path, "isjunction", None)
    return bool(checker and checker(path))


def normalize_source(path: Path) -> str:
    return os.path.normcase(os.path.abspath(os.path.normpath(str(path))))


class AssetLinker:
    """Links asset sources into target directories, at most once per distinct source."""

    def __init__(
        self,
        *,
        file_operations: FileOperations,
        console: Console,
        platform_name: str | None = None,
    ) -> None:
        self.file_operations = file_operations
        self.console = console
        self.platform_name = platform_name or current_platform()
        self._linked: Dict[str, Path] = {}

    def link_once(self, source: Path, target: Path, method: LinkMethod | str) -> LinkResult:
        key = normalize_source(source)
        existing = self._linked.get(key)
        if existing is not None:
            self.console.debug(f"Skipping already linked source {source} (staged at {existing})")
            return LinkResult.success(existing, reused=True)
        result = self.link(source, target, method)
        if result.ok:
            self._linked[key] = result.path
        return result

    def link(self, source: Path, target: Path, method: LinkMethod | str) -> LinkResult:
        link_method = LinkMethod.parse(method)
        ops = self.file_operations
        if not ops.exists(source):
            return LinkResult.failure(
                LinkStatus.NOT_FOUND, source, f"Asset directory not found: {source}"
            )
        if link_method is LinkMethod.JUNCTION and self.platform_name != "windows":
            return LinkResult.failure(
                LinkStatus.UNSUPPORTED_ON_PLATFORM,
                target,
                f"Junction links are only supported on Windows (current platform: {self.platform_name})",
            )

        try:
            if ops.exists(target):
                ops.remove(target)
            ops.make_dirs(target.parent)
            self.console.verbose(f"Linking {source} -> {target} ({link_method.value})")
            if link_method is LinkMethod.COPY:
                ops.copy_tree(source, target)
            elif link_method is LinkMethod.SYMLINK:
                ops.symlink_directory(source, target)
            elif link_method is LinkMethod.HARDLINK:
                ops.hardlink_tree(source, target)
            else:
                ops.create_junction(source, target)
        except PermissionError as exc:
            return LinkResult.failure(
                LinkStatus.PERMISSION_DENIED,
                target,
                f"Permission denied while creating {link_method.value} link {target}: {exc}",
            )
        except OSError as exc:
            if getattr(exc, "winerror", None) == _ERROR_PRIVILEGE_NOT_HELD:
                return LinkResult.failure(
                    LinkStatus.PERMISSION_DENIED,
                    target,
                    f"Creating {link_method.value} links requires elevated privileges: {exc}",
                )
            return LinkResult.failure(
                LinkStatus.FAILED,
                target,
                f"Failed to {link_method.value} {source} to {target}: {exc}",
            )
        return LinkResult.success(target)
