"""Leveled console output shared by every component of the tool."""
from __future__ import annotations

import sys


class Console:
    """Simple console output handler with configurable verbosity.

    Levels: quiet < normal < verbose < debug
    Errors are always printed; ``silent`` suppresses everything (tests).
    """

    LEVELS = {
        "silent": -1,
        "quiet": 0,
        "normal": 1,
        "verbose": 2,
        "debug": 3,
    }

    def __init__(self, level: str = "normal") -> None:
        if level not in self.LEVELS:
            raise ValueError(
                f"Unknown verbosity '{level}'. Valid values are: "
                + ", ".join(name for name in self.LEVELS if name != "silent")
            )
        self.level_name = level
        self.level = self.LEVELS[level]

    def enabled(self, level: str) -> bool:
        return self.level >= self.LEVELS[level]

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["quiet"]:
            print(f"[ERROR] {message}", file=sys.stderr)

    def warning(self, message: str) -> None:
        if self.level >= self.LEVELS["normal"]:
            print(f"[WARN] {message}", file=sys.stderr)

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["normal"]:
            print(f"[INFO] {message}")

    def verbose(self, message: str) -> None:
        if self.level >= self.LEVELS["verbose"]:
            print(f"[VERBOSE] {message}")

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            print(f"[DEBUG] {message}")
