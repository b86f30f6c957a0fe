"""Host detection: platform names, CI markers and editor/launcher install locations."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Sequence
import os
import platform

VALID_TARGETS: tuple[str, ...] = ("windows", "mac", "linux")

_CI_VARIABLES = ("CI", "GITHUB_ACTIONS")
_FALSE_VALUES = {"", "0", "false", "no", "off"}

_SYSTEM_NAMES = {
    "windows": "windows",
    "darwin": "mac",
    "linux": "linux",
}

EDITOR_SEARCH_ROOTS: Dict[str, tuple[str, ...]] = {
    "windows": (
        r"C:\Program Files\Unity\Hub\Editor",
        r"C:\Program Files\Unity\Editor",
    ),
    "mac": (
        "/Applications/Unity/Hub/Editor",
        "~/Applications/Unity/Hub/Editor",
    ),
    "linux": (
        "~/Unity/Hub/Editor",
        "~/.local/share/Unity/Hub/Editor",
        "/opt/unity/editor",
        "/usr/share/unity",
    ),
}

EDITOR_EXECUTABLES: Dict[str, str] = {
    "windows": "Editor/Unity.exe",
    "mac": "Unity.app/Contents/MacOS/Unity",
    "linux": "Editor/Unity",
}

HUB_CANDIDATES: Dict[str, tuple[str, ...]] = {
    "windows": (
        r"C:\Program Files\Unity Hub\Unity Hub.exe",
        r"C:\Program Files (x86)\Unity Hub\Unity Hub.exe",
    ),
    "mac": ("/Applications/Unity Hub.app/Contents/MacOS/Unity Hub",),
    "linux": ("/opt/unityhub/unityhub", "/usr/bin/unityhub"),
}


def current_platform() -> str:
    system = platform.system().lower()
    return _SYSTEM_NAMES.get(system, system)


def is_ci_environment(environ: Mapping[str, str] | None = None) -> bool:
    values = os.environ if environ is None else environ
    for name in _CI_VARIABLES:
        value = values.get(name)
        if value is not None and value.strip().lower() not in _FALSE_VALUES:
            return True
    return False


@dataclass(slots=True)
class UnityLocator:
    """Finds editor and launcher executables in the standard install roots of a platform."""

    platform_name: str = field(default_factory=current_platform)
    extra_roots: List[Path] = field(default_factory=list)

    def search_roots(self) -> List[Path]:
        roots = list(self.extra_roots)
        for raw in EDITOR_SEARCH_ROOTS.get(self.platform_name, ()):
            roots.append(Path(os.path.expanduser(raw)))
        return roots

    def find_editor(self, version: str | None) -> Path | None:
        if not version:
            return None
        relative = EDITOR_EXECUTABLES.get(self.platform_name)
        if relative is None:
            return None
        for root in self.search_roots():
            candidate = root / version / relative
            if candidate.exists():
                return candidate
        return None

    def find_hub(self, candidates: Sequence[str] | None = None) -> Path | None:
        for raw in candidates or HUB_CANDIDATES.get(self.platform_name, ()):
            candidate = Path(os.path.expanduser(raw))
            if candidate.exists():
                return candidate
        return None
