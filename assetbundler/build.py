"""Build orchestration: resolve bundles, stage the workspace, run the editor once."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence
import json

from .command_runner import CommandResult, CommandRunner
from .configuration import ResolvedBundle, ResolvedConfiguration
from .console import Console
from .launcher import HubManager
from .workspace import Workspace, WorkspaceManager, matching_assets, seed_for_bundle

ENTRYPOINT_METHOD = "ModAssetBundleBuilder.BuildBundles"
IGNORED_OUTPUT_PREFIXES = ("[Experiment",)
PLATFORM_SUFFIXES = {"windows": "win", "mac": "mac", "linux": "linux"}


class BuildState(str, Enum):
    IDLE = "idle"
    RESOLVING_BUNDLES = "resolving_bundles"
    STAGING_WORKSPACE = "staging_workspace"
    INVOKING_EXTERNAL_TOOL = "invoking_external_tool"
    INTERPRETING_RESULT = "interpreting_result"
    CLEANING_UP = "cleaning_up"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True, slots=True)
class JobDescriptor:
    """One bundle/target combination handed to the editor."""

    bundle_key: str
    bundle_name: str
    bundle_path: str
    asset_directory: Path
    output_directory: Path
    build_targets: tuple[str, ...] | None
    no_platform_suffix: bool
    filename_format: str
    include_patterns: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()
    texture_types: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    @property
    def target(self) -> str | None:
        return self.build_targets[0] if self.build_targets else None

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "bundleName": self.bundle_name,
            "bundlePath": self.bundle_path,
            "assetDirectory": str(self.asset_directory),
            "outputDirectory": str(self.output_directory),
            "buildTargets": list(self.build_targets) if self.build_targets is not None else None,
            "noPlatformSuffix": self.no_platform_suffix,
            "filenameFormat": self.filename_format,
            "includePatterns": list(self.include_patterns),
            "excludePatterns": list(self.exclude_patterns),
            "textureTypes": {
                category: {"patterns": list(patterns)} for category, patterns in self.texture_types.items()
            },
        }


def expand_jobs(bundle: ResolvedBundle, bundle_path: str) -> List[JobDescriptor]:
    """One descriptor per target, or a single suffix-less descriptor for targetless bundles."""

    if bundle.asset_directory is None:
        raise ValueError(f"Bundle '{bundle.key}' is missing its asset directory")
    targets: Sequence[tuple[str, ...] | None] = (
        [None] if bundle.targetless else [(target,) for target in bundle.targets]
    )
    return [
        JobDescriptor(
            bundle_key=bundle.key,
            bundle_name=bundle.bundle_name,
            bundle_path=bundle_path,
            asset_directory=bundle.asset_directory,
            output_directory=bundle.output_directory,
            build_targets=build_targets,
            no_platform_suffix=build_targets is None,
            filename_format=bundle.filename,
            include_patterns=bundle.include_patterns,
            exclude_patterns=bundle.exclude_patterns,
            texture_types=dict(bundle.texture_types),
        )
        for build_targets in targets
    ]


def serialize_jobs(jobs: Sequence[JobDescriptor]) -> str:
    return json.dumps({"bundles": [job.to_mapping() for job in jobs]}, indent=2)


def render_filename(template: str, bundle_name: str, target: str | None, *, no_platform_suffix: bool) -> str:
    """Apply filename placeholders the way the editor-side builder names artifacts."""

    normalized = bundle_name.replace(".", "_")
    result = template.replace("[bundle_name]", normalized)
    if no_platform_suffix or not target:
        for token in ("_[platform]", "[platform]", "_[target]", "[target]"):
            result = result.replace(token, "")
    else:
        suffix = PLATFORM_SUFFIXES.get(target, target)
        result = result.replace("[platform]", suffix).replace("[target]", suffix)
    return result.replace("[original_bundle_name]", bundle_name)


def expected_artifact(job: JobDescriptor) -> Path:
    name = render_filename(
        job.filename_format, job.bundle_name, job.target, no_platform_suffix=job.no_platform_suffix
    )
    return job.output_directory / name


def workspace_seed(bundles: Sequence[ResolvedBundle]) -> List[str]:
    combinations = [
        (bundle, target)
        for bundle in bundles
        for target in ([None] if bundle.targetless else list(bundle.targets))
    ]
    if len(combinations) == 1:
        bundle, target = combinations[0]
        return seed_for_bundle(bundle.asset_directory or "", bundle.bundle_name, target)
    content = [
        {
            "bundle": bundle.bundle_name,
            "asset_directory": str(bundle.asset_directory),
            "target": target,
            "filename": bundle.filename,
            "include": list(bundle.include_patterns),
            "exclude": list(bundle.exclude_patterns),
        }
        for bundle, target in combinations
    ]
    return [json.dumps(content, sort_keys=True)]


@dataclass(slots=True)
class BuildResult:
    success: bool
    jobs: List[JobDescriptor] = field(default_factory=list)
    workspace: Path | None = None
    returncode: int | None = None
    stdout: str = ""
    stderr: str = ""
    message: str = ""

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


class BuildOrchestrator:
    """Runs one build: every selected bundle and target in a single editor invocation."""

    def __init__(
        self,
        *,
        config: ResolvedConfiguration,
        console: Console,
        command_runner: CommandRunner,
        workspace_manager: WorkspaceManager,
        launcher: HubManager | None = None,
    ) -> None:
        self.config = config
        self.console = console
        self.command_runner = command_runner
        self.workspace_manager = workspace_manager
        self.launcher = launcher
        self.state = BuildState.IDLE
        self.history: List[BuildState] = [BuildState.IDLE]

    def _transition(self, state: BuildState) -> None:
        self.state = state
        self.history.append(state)
        self.console.debug(f"Build state: {state.value}")

    def resolve_bundles(self) -> List[ResolvedBundle]:
        self._transition(BuildState.RESOLVING_BUNDLES)
        bundles = self.config.resolve_selected()
        for bundle in bundles:
            targets = "targetless" if bundle.targetless else ", ".join(bundle.targets)
            self.console.verbose(f"Bundle '{bundle.bundle_name}' ({bundle.key}): {targets}")
        return bundles

    def workspace_path(self, bundles: Sequence[ResolvedBundle]) -> Path:
        override = self.config.temp_project_path
        if override is not None:
            return override
        return self.workspace_manager.derive_path(workspace_seed(bundles))

    def build_command(self, workspace: Workspace) -> List[str]:
        if self.config.unity_editor_path is None:
            raise ValueError("Unity executable path is not resolved")
        command = [str(self.config.unity_editor_path), "-batchmode", "-nographics", "-quit"]
        if self.config.log_file is not None:
            command.extend(["-logfile", str(self.config.log_file)])
        command.extend(
            [
                "-projectPath",
                str(workspace.root),
                "-executeMethod",
                ENTRYPOINT_METHOD,
                "-bundleConfigFile",
                str(workspace.job_file),
            ]
        )
        return command

    def _stage(self, workspace: Workspace, bundles: Sequence[ResolvedBundle]) -> List[JobDescriptor]:
        self._transition(BuildState.STAGING_WORKSPACE)
        staged = self.workspace_manager.prepare(
            workspace.root,
            bundles,
            self.config.link_method,
            clean=self.config.clean_temp_project,
            support_files=self.config.editor_scripts,
        )
        self._check_filters(bundles)
        jobs: List[JobDescriptor] = []
        for bundle in bundles:
            jobs.extend(expand_jobs(bundle, staged[bundle.key]))

        ops = self.workspace_manager.file_operations
        for directory in dict.fromkeys(job.output_directory for job in jobs):
            ops.make_dirs(directory)
        ops.write_text(workspace.job_file, serialize_jobs(jobs))
        self.console.debug(f"Wrote job file with {len(jobs)} job(s): {workspace.job_file}")
        return jobs

    def _check_filters(self, bundles: Sequence[ResolvedBundle]) -> None:
        for bundle in bundles:
            if not bundle.include_patterns and not bundle.exclude_patterns:
                continue
            matched = matching_assets(bundle)
            self.console.verbose(f"Bundle '{bundle.key}': {len(matched)} asset file(s) pass the include/exclude filters")
            if not matched:
                self.console.warning(
                    f"Bundle '{bundle.key}' include/exclude patterns match no files in {bundle.asset_directory}"
                )

    def _echo_output(self, stream: str, line: str) -> None:
        if line.strip() and not line.lstrip().startswith(IGNORED_OUTPUT_PREFIXES):
            self.console.debug(f"[unity:{stream}] {line}")

    def _invoke(self, workspace: Workspace) -> CommandResult:
        self._transition(BuildState.INVOKING_EXTERNAL_TOOL)
        command = self.build_command(workspace)
        self.console.info("Running Unity to build asset bundles")
        self.console.verbose(self.command_runner.format_command(command))
        if self.config.log_file is not None:
            self.console.info(f"Unity log will be written to: {self.config.log_file}")
        on_output = self._echo_output if self.console.enabled("debug") else None
        return self.command_runner.run(command, cwd=workspace.root, check=False, on_output=on_output)

    def _interpret(self, result: CommandResult, jobs: List[JobDescriptor], workspace: Workspace) -> BuildResult:
        self._transition(BuildState.INTERPRETING_RESULT)
        if result.succeeded:
            for job in jobs:
                self.console.verbose(f"Expected artifact: {expected_artifact(job)}")
            message = f"Built {len(jobs)} asset bundle job(s)"
            self.console.info(message)
        else:
            # The editor reports one exit code for the whole batch.
            message = f"Unity exited with code {result.returncode}; all {len(jobs)} job(s) failed"
            self.console.error(message)
            for stream, line in result.iter_lines(skip_prefixes=IGNORED_OUTPUT_PREFIXES):
                self.console.debug(f"[unity:{stream}] {line}")
        return BuildResult(
            success=result.succeeded,
            jobs=jobs,
            workspace=workspace.root,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            message=message,
        )

    def _start_launcher(self) -> bool:
        if self.config.ci_mode or self.launcher is None:
            return False
        if self.launcher.is_running():
            self.console.debug("Unity Hub already running")
            return False
        try:
            self.launcher.start()
        except OSError as exc:
            self.console.warning(f"Could not start Unity Hub. Continuing without it: {exc}")
            return False
        return True

    def run(self) -> BuildResult:
        """Execute the build; staging failures raise, editor failures are returned."""

        bundles = self.resolve_bundles()
        workspace = Workspace(self.workspace_path(bundles))
        self.console.debug(f"Temp project path: {workspace.root}")

        started_launcher = self._start_launcher()
        result: BuildResult | None = None
        try:
            jobs = self._stage(workspace, bundles)
            result = self._interpret(self._invoke(workspace), jobs, workspace)
            return result
        finally:
            self._transition(BuildState.CLEANING_UP)
            if started_launcher and self.launcher is not None and not self.config.ci_mode:
                self.launcher.stop()
            self.workspace_manager.cleanup(workspace.root, self.config.clean_temp_project)
            self._transition(
                BuildState.SUCCESS if result is not None and result.success else BuildState.FAILURE
            )
