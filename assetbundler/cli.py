"""Command line interface for the asset bundle builder."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping
import json
import sys

import toml

from .build import BuildOrchestrator
from .command_runner import CommandError, RecordingCommandRunner, SubprocessCommandRunner
from .configuration import CliOverrides, ResolvedConfiguration, resolve_configuration
from .console import Console
from .environment import UnityLocator
from .errors import AssetBundlerError
from .launcher import HubManager
from .linking import LinkMethod, SystemFileOperations
from .workspace import WorkspaceManager


def _make_runner(dry_run: bool) -> SubprocessCommandRunner | RecordingCommandRunner:
    return RecordingCommandRunner() if dry_run else SubprocessCommandRunner()


def _make_console(verbosity: str | None) -> Console:
    if verbosity in Console.LEVELS and verbosity != "silent":
        return Console(verbosity)
    return Console("normal")


def _overrides_from_args(args: Namespace) -> CliOverrides:
    return CliOverrides(
        config_path=args.config,
        bundles=list(args.bundles or []),
        targets=list(args.target or []),
        include_patterns=list(args.include or []),
        exclude_patterns=list(args.exclude or []),
        unity_version=args.unity_version,
        unity_editor_path=args.unity_path,
        unity_hub_path=args.hub_path,
        link_method=args.link_method,
        temp_project_path=args.temp_project_path,
        clean_temp_project=True if args.clean_temp_project else None,
        ci_mode=True if args.ci else None,
        non_interactive=True if args.non_interactive else None,
        verbosity=args.verbosity,
        log_file=args.log_file,
        filename=args.filename,
        output_directory=args.output,
        asset_directory=args.asset_directory,
    )


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(
        prog="assetbundler",
        description="Build Unity asset bundles from asset directories using the Unity editor in batch mode",
    )
    parser.add_argument("bundles", nargs="*", help="Bundle keys to build (default: all bundles in the config)")
    parser.add_argument("-c", "--config", help="Configuration file (default: ./.assetbundler.toml)")
    parser.add_argument(
        "-t",
        "--target",
        action="append",
        default=[],
        help="Build target: windows, mac, linux or none for a targetless build (repeatable)",
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-q", "--quiet", dest="verbosity", action="store_const", const="quiet", help="Only print errors")
    verbosity.add_argument("-v", "--verbose", dest="verbosity", action="store_const", const="verbose", help="Verbose output")
    verbosity.add_argument("--debug", dest="verbosity", action="store_const", const="debug", help="Debug output including the Unity transcript")

    parser.add_argument("--ci", action="store_true", help="Unattended mode: never start or stop Unity Hub")
    parser.add_argument("--non-interactive", action="store_true", help="Never prompt")
    parser.add_argument("--list-bundles", action="store_true", help="List configured bundles and exit")
    parser.add_argument("--dump-config", choices=["json", "toml"], help="Print the merged configuration and exit")
    parser.add_argument("-n", "--dry-run", action="store_true", help="Stage the workspace but only print the Unity command")

    link = parser.add_mutually_exclusive_group()
    for method in LinkMethod:
        link.add_argument(
            f"--{method.value}",
            dest="link_method",
            action="store_const",
            const=method.value,
            help=f"Stage assets using {method.value}",
        )

    parser.add_argument("--include", action="append", default=[], help="Include glob pattern (repeatable)")
    parser.add_argument("--exclude", action="append", default=[], help="Exclude glob pattern (repeatable)")
    parser.add_argument("--unity-version", help="Unity editor version used to locate the editor")
    parser.add_argument("--unity-path", help="Path to the Unity editor executable")
    parser.add_argument("--hub-path", help="Path to the Unity Hub executable")
    parser.add_argument("--temp-project-path", help="Use this directory as the temporary Unity project")
    parser.add_argument("--clean-temp-project", action="store_true", help="Delete the temporary project before and after the build")
    parser.add_argument("--log-file", help="Unity log file")
    parser.add_argument("--filename", help="Output filename format, e.g. resource_[bundle_name]_[platform]")
    parser.add_argument("-o", "--output", help="Output directory for all bundles")
    parser.add_argument("--asset-directory", help="Asset source directory for all bundles")
    return parser.parse_args(list(argv))


def main(
    argv: Iterable[str] | None = None,
    *,
    cwd: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    console = _make_console(args.verbosity)
    try:
        config = resolve_configuration(_overrides_from_args(args), cwd=cwd or Path.cwd(), environ=environ)
        console = _make_console(config.verbosity)
        if args.list_bundles:
            return _handle_list(config)
        if args.dump_config:
            return _handle_dump(config, args.dump_config)
        return _handle_build(config, console, dry_run=args.dry_run)
    except (AssetBundlerError, CommandError, ValueError, TypeError, OSError) as exc:
        console.error(str(exc))
        return 1


def _handle_list(config: ResolvedConfiguration) -> int:
    bundles = config.config_file.bundles
    if not bundles:
        print("No bundles configured")
        return 0
    width = max(len(key) for key in bundles)
    for key in sorted(bundles):
        bundle = bundles[key]
        line = f"{key.ljust(width)}  {bundle.name}"
        if bundle.description:
            line = f"{line} - {bundle.description}"
        print(line)
    return 0


def _config_mapping(config: ResolvedConfiguration) -> Dict[str, Any]:
    data = config.config_file.to_mapping()
    data["global"] = config.settings.to_mapping()
    return data


def _handle_dump(config: ResolvedConfiguration, output_format: str) -> int:
    data = _config_mapping(config)
    if output_format == "toml":
        print(toml.dumps(data), end="")
    else:
        print(json.dumps(data, indent=2))
    return 0


def _handle_build(config: ResolvedConfiguration, console: Console, *, dry_run: bool) -> int:
    config.detect_tools(UnityLocator(), console)
    errors = config.validate()
    if errors:
        for message in errors:
            console.error(message)
        return 1

    runner = _make_runner(dry_run)
    workspace_manager = WorkspaceManager(file_operations=SystemFileOperations(), console=console)
    launcher = None
    if not config.ci_mode and not dry_run:
        launcher = HubManager(hub_path=config.unity_hub_path, console=console)

    orchestrator = BuildOrchestrator(
        config=config,
        console=console,
        command_runner=runner,
        workspace_manager=workspace_manager,
        launcher=launcher,
    )
    result = orchestrator.run()
    if isinstance(runner, RecordingCommandRunner):
        for line in runner.iter_formatted():
            print(line)
    return result.exit_code
