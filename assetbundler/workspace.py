"""Temporary Unity project used as the staging area for a build."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Sequence
import os
import tempfile

from .configuration import ResolvedBundle
from .console import Console
from .errors import StagingError
from .hashing import compute_hash
from .linking import AssetLinker, FileOperations, LinkMethod
from .patterns import filter_paths

WORKSPACE_PREFIX = "AssetBundleBuilder"
JOB_FILE_NAME = "bundle_job.json"
AUTO_TARGET = "auto"
EDITOR_RESOURCES = Path(__file__).resolve().parent / "editor"


@dataclass(frozen=True, slots=True)
class Workspace:
    root: Path

    @property
    def assets_dir(self) -> Path:
        return self.root / "Assets"

    @property
    def editor_dir(self) -> Path:
        return self.assets_dir / "Editor"

    @property
    def data_dir(self) -> Path:
        return self.assets_dir / "Data"

    @property
    def job_file(self) -> Path:
        return self.root / JOB_FILE_NAME

    def bundle_path(self, identifier: str) -> str:
        return f"Assets/Data/{identifier}"


def derive_path(seed_inputs: Sequence[str], *, temp_root: Path | None = None) -> Path:
    """Same inputs always map to the same directory so a later run can reuse it."""

    digest = compute_hash("|".join(seed_inputs))
    root = temp_root if temp_root is not None else Path(tempfile.gettempdir())
    return root / f"{WORKSPACE_PREFIX}_{digest}"


def seed_for_bundle(asset_directory: Path | str, bundle_name: str, target: str | None) -> list[str]:
    return [str(asset_directory), bundle_name, target or AUTO_TARGET]


def bundled_editor_scripts(directory: Path = EDITOR_RESOURCES) -> List[Path]:
    """Editor scripts shipped with the package; the build entrypoint lives here."""

    return sorted(path for path in directory.glob("*.cs") if path.is_file())


class WorkspaceManager:
    def __init__(
        self,
        *,
        file_operations: FileOperations,
        console: Console,
        linker: AssetLinker | None = None,
        temp_root: Path | None = None,
        editor_scripts: Sequence[Path] | None = None,
    ) -> None:
        self.file_operations = file_operations
        self.console = console
        self.linker = linker or AssetLinker(file_operations=file_operations, console=console)
        self.temp_root = temp_root
        self.editor_scripts = list(editor_scripts) if editor_scripts is not None else bundled_editor_scripts()

    def derive_path(self, seed_inputs: Sequence[str]) -> Path:
        return derive_path(seed_inputs, temp_root=self.temp_root)

    def prepare(
        self,
        path: Path,
        bundles: Sequence[ResolvedBundle],
        link_method: LinkMethod | str,
        *,
        clean: bool = False,
        support_files: Iterable[Path] = (),
    ) -> Dict[str, str]:
        """Lay out the project and stage every bundle's assets.

        The bundled editor scripts are always copied into ``Assets/Editor``;
        ``support_files`` are extra user scripts copied after them. Returns the
        workspace-relative bundle path for each bundle key. Bundles sharing a
        source directory share the staged copy of the first one.
        """

        ops = self.file_operations
        workspace = Workspace(path)
        if clean and ops.exists(path):
            self.console.info(f"Cleaning existing temp project: {path}")
            self.cleanup(path, True)
        if ops.exists(path):
            self.console.verbose(f"Reusing temp project: {path}")
        else:
            self.console.info(f"Creating temporary Unity project at: {path}")

        for directory in (workspace.assets_dir, workspace.editor_dir, workspace.data_dir):
            ops.make_dirs(directory)
        self._copy_support_files(workspace, [*self.editor_scripts, *support_files])

        staged: Dict[str, str] = {}
        for bundle in bundles:
            if bundle.asset_directory is None:
                raise StagingError(f"Bundle '{bundle.key}' has no asset directory", bundle=bundle.key)
            target = workspace.data_dir / bundle.bundle_name
            result = self.linker.link_once(bundle.asset_directory, target, link_method)
            if not result.ok:
                raise StagingError(
                    f"Failed to stage bundle '{bundle.key}': {result.message}",
                    bundle=bundle.key,
                    path=result.path,
                )
            staged[bundle.key] = workspace.bundle_path(result.path.name)
        return staged

    def _copy_support_files(self, workspace: Workspace, support_files: Iterable[Path]) -> None:
        ops = self.file_operations
        for source in support_files:
            if not ops.exists(source):
                raise StagingError(f"Editor script not found: {source}", path=source)
            target = workspace.editor_dir / source.name
            if source.is_dir():
                if ops.exists(target):
                    ops.remove(target)
                ops.copy_tree(source, target)
            else:
                ops.copy_file(source, target)
            self.console.debug(f"Copied editor script {source} -> {target}")

    def cleanup(self, path: Path, should_clean: bool) -> bool:
        """Delete the workspace when requested; failures are reported as warnings."""

        if not should_clean:
            if self.file_operations.exists(path):
                self.console.debug(f"Temporary project preserved at: {path}")
            return False
        if not self.file_operations.exists(path):
            return False
        try:
            self.file_operations.remove(path)
        except OSError as exc:
            self.console.warning(f"Could not clean up temporary project {path}: {exc}")
            return False
        self.console.info(f"Cleaned up temporary project: {path}")
        return True


def iter_asset_files(source: Path) -> Iterator[str]:
    """Yield source-relative, forward-slash paths of every file below ``source``."""

    for root, directories, files in os.walk(source):
        directories.sort()
        relative = Path(root).relative_to(source)
        for name in sorted(files):
            yield (relative / name).as_posix()


def matching_assets(bundle: ResolvedBundle) -> List[str]:
    if bundle.asset_directory is None:
        return []
    return filter_paths(iter_asset_files(bundle.asset_directory), bundle.include_patterns, bundle.exclude_patterns)
