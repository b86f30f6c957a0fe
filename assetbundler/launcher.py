"""Start and stop the Unity Hub companion process around a build."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, List
import subprocess
import sys
import time

import psutil

from .console import Console

HUB_PROCESS_NAMES = ("unity hub", "unity hub.exe", "unityhub", "unityhub-bin")


class HubManager:
    """Tracks the launcher process; only a launcher this tool started is ever stopped."""

    def __init__(
        self,
        *,
        hub_path: Path | None,
        console: Console,
        startup_delay: float = 2.0,
        stop_timeout: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.hub_path = hub_path
        self.console = console
        self.startup_delay = startup_delay
        self.stop_timeout = stop_timeout
        self._sleep = sleep

    @staticmethod
    def _matches(process: psutil.Process) -> bool:
        name = (process.info.get("name") or "").lower()
        return name in HUB_PROCESS_NAMES

    def _find_processes(self) -> List[psutil.Process]:
        found: List[psutil.Process] = []
        for process in psutil.process_iter(["pid", "name"]):
            try:
                if self._matches(process):
                    found.append(process)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        return found

    def is_running(self) -> bool:
        return bool(self._find_processes())

    def start(self) -> None:
        if self.hub_path is None:
            raise FileNotFoundError("Unity Hub path is not configured")
        self.console.info(f"Starting Unity Hub: {self.hub_path}")
        kwargs = {}
        if sys.platform != "win32":
            kwargs["start_new_session"] = True
        subprocess.Popen(
            [str(self.hub_path)],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            **kwargs,
        )
        self._sleep(self.startup_delay)

    def stop(self) -> None:
        processes = self._find_processes()
        if not processes:
            return
        self.console.info("Stopping Unity Hub")
        for process in processes:
            try:
                process.terminate()
            except psutil.NoSuchProcess:
                continue
        _gone, alive = psutil.wait_procs(processes, timeout=self.stop_timeout)
        for process in alive:
            try:
                process.kill()
            except psutil.NoSuchProcess:
                continue
