"""Resolution of global, bundle and command-line settings into one run configuration."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence

from .config_loader import (
    DEFAULT_CONFIG_NAME,
    BundleConfig,
    ConfigFile,
    GlobalConfig,
    append_list,
    load_with_extends,
    merge_flag,
    merge_scalar,
)
from .console import Console
from .environment import VALID_TARGETS, UnityLocator, is_ci_environment
from .errors import ConfigurationError
from .linking import LinkMethod

FORBIDDEN_BUNDLE_SUFFIXES = (".framework", ".bundle")
TARGETLESS = "none"
DEFAULT_FILENAME_FORMAT = "resource_[bundle_name]_[platform]"


@dataclass(slots=True)
class CliOverrides:
    """Values supplied on the command line; ``None`` means the flag was not given."""

    config_path: str | None = None
    bundles: List[str] = field(default_factory=list)
    targets: List[str] = field(default_factory=list)
    include_patterns: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)
    unity_version: str | None = None
    unity_editor_path: str | None = None
    unity_hub_path: str | None = None
    link_method: str | None = None
    temp_project_path: str | None = None
    clean_temp_project: bool | None = None
    ci_mode: bool | None = None
    non_interactive: bool | None = None
    verbosity: str | None = None
    log_file: str | None = None
    filename: str | None = None
    output_directory: str | None = None
    asset_directory: str | None = None


# CLI field -> (GlobalConfig field, merge helper). Lists are appended onto file values.
CLI_OVERRIDE_FIELDS: tuple[tuple[str, str, Callable[[Any, Any], Any]], ...] = (
    ("unity_version", "unity_version", merge_scalar),
    ("unity_editor_path", "unity_editor_path", merge_scalar),
    ("unity_hub_path", "unity_hub_path", merge_scalar),
    ("link_method", "link_method", merge_scalar),
    ("temp_project_path", "temp_project_path", merge_scalar),
    ("clean_temp_project", "clean_temp_project", merge_flag),
    ("ci_mode", "ci_mode", merge_flag),
    ("non_interactive", "non_interactive", merge_flag),
    ("verbosity", "verbosity", merge_scalar),
    ("log_file", "log_file", merge_scalar),
    ("filename", "filename", merge_scalar),
    ("output_directory", "output_directory", merge_scalar),
    ("asset_directory", "asset_directory", merge_scalar),
    ("include_patterns", "include_patterns", append_list),
    ("exclude_patterns", "exclude_patterns", append_list),
)

# Command-line values override bundle-level settings as well.
CLI_BUNDLE_OVERRIDES: tuple[str, ...] = ("asset_directory", "output_directory", "filename")


def apply_cli_overrides(config: GlobalConfig, overrides: CliOverrides) -> GlobalConfig:
    merged = replace(config)
    for cli_name, field_name, merge in CLI_OVERRIDE_FIELDS:
        value = getattr(overrides, cli_name)
        if value is None:
            continue
        setattr(merged, field_name, merge(getattr(merged, field_name), value))
    return merged


@dataclass(frozen=True, slots=True)
class ResolvedBundle:
    """One bundle with every setting inherited, overridden and resolved."""

    key: str
    bundle_name: str
    description: str | None
    asset_directory: Path | None
    output_directory: Path
    filename: str
    include_patterns: tuple[str, ...]
    exclude_patterns: tuple[str, ...]
    targetless: bool
    targets: tuple[str, ...]
    texture_types: Mapping[str, tuple[str, ...]]


def check_bundle_name(name: str) -> str | None:
    lowered = name.lower()
    if lowered.endswith(FORBIDDEN_BUNDLE_SUFFIXES):
        return f"Bundle name cannot end with .framework or .bundle: {lowered}"
    return None


def _invalid_target(target: str) -> str:
    return f'Invalid build target: "{target}". Valid values are: {", ".join(VALID_TARGETS)}'


@dataclass(slots=True)
class ResolvedConfiguration:
    config_file: ConfigFile
    settings: GlobalConfig
    selected: List[str]
    cli_targets: List[str] = field(default_factory=list)
    cli_bundle_values: Dict[str, Any] = field(default_factory=dict)
    ci_mode: bool = False
    unity_editor_path: Path | None = None
    unity_hub_path: Path | None = None
    working_directory: Path | None = None

    @property
    def config_path(self) -> Path | None:
        return self.config_file.path

    @property
    def verbosity(self) -> str:
        return self.settings.verbosity or "normal"

    @property
    def link_method(self) -> LinkMethod:
        return LinkMethod.parse(self.settings.link_method or LinkMethod.COPY.value)

    @property
    def clean_temp_project(self) -> bool:
        return bool(self.settings.clean_temp_project)

    @property
    def non_interactive(self) -> bool:
        return bool(self.settings.non_interactive) or self.ci_mode

    @property
    def temp_project_path(self) -> Path | None:
        value = self.settings.temp_project_path
        return Path(value) if value else None

    @property
    def log_file(self) -> Path | None:
        value = self.settings.log_file
        return Path(value) if value else None

    @property
    def editor_scripts(self) -> List[Path]:
        return [Path(item) for item in self.settings.editor_scripts or []]

    def detect_tools(self, locator: UnityLocator, console: Console | None = None) -> None:
        """Fill in editor and launcher paths that were not configured explicitly."""

        if self.unity_editor_path is None:
            found = locator.find_editor(self.settings.unity_version)
            if found is not None and console is not None:
                console.verbose(f"Detected Unity editor: {found}")
            if found is None and console is not None and self.settings.unity_version:
                console.warning(f"Unity {self.settings.unity_version} was not found on this system")
                if not self.non_interactive:
                    console.info("Install it through Unity Hub or pass --unity-path, then run the build again")
            self.unity_editor_path = found
        if self.unity_hub_path is None and not self.ci_mode:
            found = locator.find_hub()
            if found is not None and console is not None:
                console.verbose(f"Detected Unity Hub: {found}")
            self.unity_hub_path = found

    def find_bundle(self, name: str) -> BundleConfig | None:
        bundles = self.config_file.bundles
        if name in bundles:
            return bundles[name]
        for bundle in bundles.values():
            if bundle.bundle_name == name:
                return bundle
        return None

    def _missing_bundle_message(self, name: str) -> str:
        available = ", ".join(self.config_file.available_bundles()) or "<none>"
        return (
            f"Bundle configuration '{name}' not found in {self.config_path}. "
            f"Available bundles: {available}"
        )

    def effective_targets(self, bundle: BundleConfig) -> tuple[bool, tuple[str, ...]]:
        targetless = bool(merge_scalar(self.settings.targetless, bundle.targetless))
        if self.cli_targets:
            if TARGETLESS in self.cli_targets:
                return True, ()
            targets = list(self.cli_targets)
        elif bundle.allowed_targets:
            targets = list(bundle.allowed_targets)
        else:
            targets = list(self.settings.allowed_targets or [])
        if targetless or not targets:
            return True, ()
        return False, tuple(dict.fromkeys(targets))

    def resolve_bundle(self, name: str) -> ResolvedBundle:
        bundle = self.find_bundle(name)
        if bundle is None:
            raise ConfigurationError(self._missing_bundle_message(name))
        problem = check_bundle_name(bundle.name)
        if problem:
            raise ConfigurationError(problem)

        settings = self.settings
        asset_directory = self.cli_bundle_values.get("asset_directory") or merge_scalar(
            settings.asset_directory, bundle.asset_directory
        )
        output_directory = (
            self.cli_bundle_values.get("output_directory")
            or bundle.output_path
            or merge_scalar(settings.output_directory, bundle.output_directory)
            or self.working_directory
            or Path.cwd()
        )
        filename = (
            self.cli_bundle_values.get("filename")
            or merge_scalar(settings.filename, bundle.filename)
            or DEFAULT_FILENAME_FORMAT
        )
        file_global = self.config_file.global_config
        include = append_list(
            bundle.include_patterns or file_global.include_patterns,
            self.cli_bundle_values.get("include_patterns"),
        )
        exclude = append_list(
            bundle.exclude_patterns or file_global.exclude_patterns,
            self.cli_bundle_values.get("exclude_patterns"),
        )
        targetless, targets = self.effective_targets(bundle)
        texture_types = {
            category: tuple(patterns)
            for category, patterns in (
                {**(settings.texture_types or {}), **(bundle.texture_types or {})}
            ).items()
        }
        return ResolvedBundle(
            key=bundle.key,
            bundle_name=bundle.name,
            description=bundle.description,
            asset_directory=Path(asset_directory) if asset_directory else None,
            output_directory=Path(output_directory),
            filename=filename,
            include_patterns=tuple(include or ()),
            exclude_patterns=tuple(exclude or ()),
            targetless=targetless,
            targets=targets,
            texture_types=texture_types,
        )

    def resolve_selected(self) -> List[ResolvedBundle]:
        return [self.resolve_bundle(name) for name in self.selected]

    def validate(self) -> List[str]:
        """Collect every configuration problem instead of stopping at the first."""

        errors: List[str] = []
        if self.config_path is None:
            errors.append(
                f"Configuration file is required (use --config or place {DEFAULT_CONFIG_NAME} in current directory)"
            )
        if not self.settings.unity_version and self.unity_editor_path is None:
            errors.append("Unity version is required in the configuration file")
        elif self.unity_editor_path is None:
            errors.append("Unity executable not found. Please specify unity version or path.")
        if not self.ci_mode and self.unity_hub_path is None:
            errors.append("Unity hub path is required in the configuration file")

        try:
            self.link_method
        except ConfigurationError as exc:
            errors.append(str(exc))
        if self.verbosity not in Console.LEVELS or self.verbosity == "silent":
            errors.append(f"Invalid verbosity: \"{self.verbosity}\". Valid values are: quiet, normal, verbose, debug")

        for target in self.cli_targets:
            if target != TARGETLESS and target not in VALID_TARGETS:
                errors.append(_invalid_target(target))
        for target in self.settings.allowed_targets or []:
            if target not in VALID_TARGETS:
                errors.append(_invalid_target(target))

        if self.config_path is not None and not self.config_file.bundles:
            errors.append(f"No bundles defined in {self.config_path}")

        for name in self.selected:
            bundle = self.find_bundle(name)
            if bundle is None:
                errors.append(self._missing_bundle_message(name))
                continue
            problem = check_bundle_name(bundle.name)
            if problem:
                errors.append(problem)
            for target in bundle.allowed_targets or []:
                if target not in VALID_TARGETS:
                    errors.append(_invalid_target(target))
            resolved = self.resolve_bundle(name) if not problem else None
            if resolved is not None and resolved.asset_directory is None:
                errors.append(f"Bundle '{name}' has no asset_directory")
        return errors


def _select_bundles(config_file: ConfigFile, requested: Sequence[str]) -> List[str]:
    if requested:
        return list(dict.fromkeys(requested))
    return list(config_file.bundles)


def find_default_config(cwd: Path) -> Path | None:
    candidate = cwd / DEFAULT_CONFIG_NAME
    return candidate if candidate.is_file() else None


def resolve_configuration(
    overrides: CliOverrides,
    *,
    cwd: Path,
    environ: Mapping[str, str] | None = None,
) -> ResolvedConfiguration:
    """Build the run configuration: file (with ``extends``) <- command line <- environment."""

    config_path = Path(overrides.config_path) if overrides.config_path else find_default_config(cwd)
    if config_path is not None and not config_path.is_absolute():
        config_path = cwd / config_path
    config_file = load_with_extends(config_path) if config_path else ConfigFile()

    cli = replace(overrides)
    for name in ("unity_editor_path", "unity_hub_path", "temp_project_path", "log_file", "output_directory", "asset_directory"):
        value = getattr(cli, name)
        if value:
            setattr(cli, name, str((cwd / Path(value).expanduser()).resolve()))

    settings = apply_cli_overrides(config_file.global_config, cli)
    ci_mode = bool(settings.ci_mode) or is_ci_environment(environ)

    bundle_values: Dict[str, Any] = {name: getattr(cli, name) for name in CLI_BUNDLE_OVERRIDES if getattr(cli, name)}
    if cli.include_patterns:
        bundle_values["include_patterns"] = list(cli.include_patterns)
    if cli.exclude_patterns:
        bundle_values["exclude_patterns"] = list(cli.exclude_patterns)

    return ResolvedConfiguration(
        config_file=config_file,
        settings=settings,
        selected=_select_bundles(config_file, overrides.bundles),
        cli_targets=[target.strip() for target in overrides.targets if target.strip()],
        cli_bundle_values=bundle_values,
        ci_mode=ci_mode,
        unity_editor_path=Path(settings.unity_editor_path) if settings.unity_editor_path else None,
        unity_hub_path=Path(settings.unity_hub_path) if settings.unity_hub_path else None,
        working_directory=cwd,
    )
