"""Loading of ``.assetbundler.toml`` files with ``extends`` inheritance.

Every configuration field is optional: ``None`` means "not specified at this
level". Fields are described once in declarative tables that drive parsing,
inheritance merging and dumping, each field naming one of three merge
helpers:

* :func:`merge_scalar` - the child value wins when it is set.
* :func:`merge_list` - a non-empty child list replaces the parent list.
* :func:`merge_flag` - strictness flags are OR-ed so a descendant cannot relax them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence
import json
import os
import tomllib

from .errors import ConfigurationError

DEFAULT_CONFIG_NAME = ".assetbundler.toml"

ConfigLoader = Callable[[Any], Mapping[str, Any]]

_FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": lambda stream: tomllib.load(stream),
    ".json": lambda stream: json.load(stream),
}


def _load_config_file(path: Path) -> Mapping[str, Any]:
    suffix = path.suffix.lower() or ".toml"
    loader = _FILE_LOADERS.get(suffix)
    if loader is None:
        raise ConfigurationError(f"Unsupported configuration file extension: {suffix}")
    mode = "rb" if suffix == ".toml" else "r"
    kwargs: Dict[str, Any] = {}
    if mode == "r":
        kwargs["encoding"] = "utf-8"
    try:
        with path.open(mode, **kwargs) as handle:
            data = loader(handle)
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Failed to parse configuration file '{path}': {exc}") from exc
    if not isinstance(data, Mapping):
        raise TypeError(f"Configuration file '{path}' must contain a mapping at the root")
    return data


def _normalize_string_list(value: Any, *, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (str, bytes)):
        text = str(value).strip()
        return [text] if text else []
    if isinstance(value, Sequence):
        result: List[str] = []
        for item in value:
            if isinstance(item, (str, bytes)):
                text = str(item).strip()
                if text:
                    result.append(text)
            else:
                raise TypeError(f"{field_name} entries must be strings")
        return result
    raise TypeError(f"{field_name} must be a string or sequence of strings")


def _resolve_path(value: str, base_dir: Path | None) -> str:
    candidate = Path(os.path.expanduser(value))
    if not candidate.is_absolute() and base_dir is not None:
        candidate = base_dir / candidate
    return os.path.normpath(str(candidate))


# Merge helpers -------------------------------------------------------------


def merge_scalar(parent: Any, child: Any) -> Any:
    if child is None or child == "":
        return parent
    return child


def merge_list(parent: List[str] | None, child: List[str] | None) -> List[str] | None:
    if child:
        return list(child)
    return list(parent) if parent is not None else None


def merge_flag(parent: bool | None, child: bool | None) -> bool | None:
    if parent is None and child is None:
        return None
    return bool(parent) or bool(child)


def merge_table(
    parent: Dict[str, List[str]] | None, child: Dict[str, List[str]] | None
) -> Dict[str, List[str]] | None:
    if parent is None and child is None:
        return None
    merged = {key: list(value) for key, value in (parent or {}).items()}
    for key, value in (child or {}).items():
        merged[key] = list(value)
    return merged


def append_list(base: List[str] | None, extra: Sequence[str] | None) -> List[str] | None:
    """Union used for CLI-supplied lists, which extend rather than replace file values."""

    if not extra:
        return list(base) if base is not None else None
    combined = list(base or [])
    for item in extra:
        if item not in combined:
            combined.append(item)
    return combined


# Field parsers -------------------------------------------------------------


def _parse_string(value: Any, name: str, base_dir: Path | None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise TypeError(f"{name} must be a string")
    text = str(value).strip()
    return text or None


def _parse_path(value: Any, name: str, base_dir: Path | None) -> str | None:
    text = _parse_string(value, name, base_dir)
    return _resolve_path(text, base_dir) if text else None


def _parse_bool(value: Any, name: str, base_dir: Path | None) -> bool | None:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise TypeError(f"{name} must be a boolean")
    return value


def _parse_list(value: Any, name: str, base_dir: Path | None) -> List[str] | None:
    if value is None:
        return None
    return _normalize_string_list(value, field_name=name)


def _parse_path_list(value: Any, name: str, base_dir: Path | None) -> List[str] | None:
    items = _parse_list(value, name, base_dir)
    if items is None:
        return None
    return [_resolve_path(item, base_dir) for item in items]


def _parse_texture_types(value: Any, name: str, base_dir: Path | None) -> Dict[str, List[str]] | None:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise TypeError(f"{name} must be a table of categories")
    table: Dict[str, List[str]] = {}
    for category, entry in value.items():
        patterns = entry.get("patterns") if isinstance(entry, Mapping) else entry
        table[str(category)] = _normalize_string_list(patterns, field_name=f"{name}.{category}.patterns")
    return table


@dataclass(frozen=True, slots=True)
class FieldSpec:
    name: str
    parse: Callable[[Any, str, Path | None], Any]
    merge: Callable[[Any, Any], Any]


_COMMON_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("asset_directory", _parse_path, merge_scalar),
    FieldSpec("output_directory", _parse_path, merge_scalar),
    FieldSpec("filename", _parse_string, merge_scalar),
    FieldSpec("include_patterns", _parse_list, merge_list),
    FieldSpec("exclude_patterns", _parse_list, merge_list),
    FieldSpec("targetless", _parse_bool, merge_scalar),
    FieldSpec("allowed_targets", _parse_list, merge_list),
    FieldSpec("texture_types", _parse_texture_types, merge_table),
)

GLOBAL_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("unity_version", _parse_string, merge_scalar),
    FieldSpec("unity_editor_path", _parse_path, merge_scalar),
    FieldSpec("unity_hub_path", _parse_path, merge_scalar),
    FieldSpec("link_method", _parse_string, merge_scalar),
    FieldSpec("temp_project_path", _parse_path, merge_scalar),
    FieldSpec("clean_temp_project", _parse_bool, merge_flag),
    FieldSpec("ci_mode", _parse_bool, merge_flag),
    FieldSpec("non_interactive", _parse_bool, merge_flag),
    FieldSpec("verbosity", _parse_string, merge_scalar),
    FieldSpec("log_file", _parse_path, merge_scalar),
    FieldSpec("editor_scripts", _parse_path_list, merge_list),
) + _COMMON_FIELDS

BUNDLE_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("bundle_name", _parse_string, merge_scalar),
    FieldSpec("description", _parse_string, merge_scalar),
    FieldSpec("output_path", _parse_path, merge_scalar),
) + _COMMON_FIELDS


def _parse_fields(
    entries: Sequence[FieldSpec], section: Mapping[str, Any], *, prefix: str, base_dir: Path | None
) -> Dict[str, Any]:
    return {entry.name: entry.parse(section.get(entry.name), f"{prefix}.{entry.name}", base_dir) for entry in entries}


def _merge_fields(entries: Sequence[FieldSpec], parent: Any, child: Any) -> Dict[str, Any]:
    return {
        entry.name: entry.merge(getattr(parent, entry.name), getattr(child, entry.name)) for entry in entries
    }


def _dump_fields(entries: Sequence[FieldSpec], source: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for entry in entries:
        value = getattr(source, entry.name)
        if value is None:
            continue
        if entry.name == "texture_types":
            value = {category: {"patterns": list(patterns)} for category, patterns in value.items()}
        data[entry.name] = value
    return data


@dataclass(slots=True)
class GlobalConfig:
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
    editor_scripts: List[str] | None = None
    asset_directory: str | None = None
    output_directory: str | None = None
    filename: str | None = None
    include_patterns: List[str] | None = None
    exclude_patterns: List[str] | None = None
    targetless: bool | None = None
    allowed_targets: List[str] | None = None
    texture_types: Dict[str, List[str]] | None = None
    extends: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, base_dir: Path | None = None) -> "GlobalConfig":
        section = data.get("global", {}) if isinstance(data, Mapping) else {}
        if not isinstance(section, Mapping):
            raise TypeError("[global] must be a table")
        values = _parse_fields(GLOBAL_FIELDS, section, prefix="global", base_dir=base_dir)
        return cls(extends=_parse_string(section.get("extends"), "global.extends", base_dir), **values)

    def merged_with(self, child: "GlobalConfig") -> "GlobalConfig":
        return GlobalConfig(**_merge_fields(GLOBAL_FIELDS, self, child))

    def to_mapping(self) -> Dict[str, Any]:
        return _dump_fields(GLOBAL_FIELDS, self)


@dataclass(slots=True)
class BundleConfig:
    key: str
    bundle_name: str | None = None
    description: str | None = None
    asset_directory: str | None = None
    output_directory: str | None = None
    output_path: str | None = None
    filename: str | None = None
    include_patterns: List[str] | None = None
    exclude_patterns: List[str] | None = None
    targetless: bool | None = None
    allowed_targets: List[str] | None = None
    texture_types: Dict[str, List[str]] | None = None

    @property
    def name(self) -> str:
        return self.bundle_name or self.key

    @classmethod
    def from_mapping(cls, key: str, data: Mapping[str, Any], *, base_dir: Path | None = None) -> "BundleConfig":
        if not isinstance(data, Mapping):
            raise TypeError(f"[bundles.{key}] must be a table")
        return cls(key=key, **_parse_fields(BUNDLE_FIELDS, data, prefix=f"bundles.{key}", base_dir=base_dir))

    def merged_with(self, child: "BundleConfig") -> "BundleConfig":
        return BundleConfig(key=child.key, **_merge_fields(BUNDLE_FIELDS, self, child))

    def to_mapping(self) -> Dict[str, Any]:
        return _dump_fields(BUNDLE_FIELDS, self)


@dataclass(slots=True)
class ConfigFile:
    """A configuration file with its ``extends`` chain already folded in."""

    path: Path | None = None
    global_config: GlobalConfig = field(default_factory=GlobalConfig)
    bundles: Dict[str, BundleConfig] = field(default_factory=dict)
    sources: List[Path] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, path: Path) -> "ConfigFile":
        base_dir = path.parent
        bundles_section = data.get("bundles", {})
        if not isinstance(bundles_section, Mapping):
            raise TypeError(f"[bundles] in '{path}' must be a table")
        bundles = {
            str(key): BundleConfig.from_mapping(str(key), value, base_dir=base_dir)
            for key, value in bundles_section.items()
        }
        return cls(
            path=path,
            global_config=GlobalConfig.from_mapping(data, base_dir=base_dir),
            bundles=bundles,
            sources=[path],
        )

    def merged_with(self, child: "ConfigFile") -> "ConfigFile":
        bundles = dict(self.bundles)
        for key, bundle in child.bundles.items():
            parent_bundle = bundles.get(key)
            bundles[key] = parent_bundle.merged_with(bundle) if parent_bundle else bundle
        return ConfigFile(
            path=child.path,
            global_config=self.global_config.merged_with(child.global_config),
            bundles=bundles,
            sources=self.sources + child.sources,
        )

    def available_bundles(self) -> List[str]:
        return sorted(self.bundles)

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "global": self.global_config.to_mapping(),
            "bundles": {key: bundle.to_mapping() for key, bundle in self.bundles.items()},
        }


def resolve_extends(reference: str, current: Path) -> Path:
    """Locate the parent file named by ``extends`` relative to ``current``.

    A directory reference prefers a file with the same name as ``current``
    inside it and falls back to ``.assetbundler.toml``.
    """

    candidate = Path(os.path.expanduser(reference))
    if not candidate.is_absolute():
        candidate = current.parent / candidate
    candidate = Path(os.path.normpath(str(candidate)))
    if candidate.is_dir():
        same_name = candidate / current.name
        if same_name.is_file():
            return same_name
        return candidate / DEFAULT_CONFIG_NAME
    return candidate


def _chain_key(path: Path) -> str:
    return os.path.normcase(os.path.abspath(str(path)))


def load_with_extends(path: Path | str, *, visited: Sequence[str] | None = None) -> ConfigFile:
    """Load ``path`` and every ancestor it extends, merging parent <- child."""

    config_path = Path(os.path.abspath(os.path.expanduser(str(path))))
    chain = list(visited or [])
    key = _chain_key(config_path)
    if key in chain:
        cycle = " -> ".join(chain[chain.index(key):] + [key])
        raise ConfigurationError(f"Circular reference detected in configuration extends: {cycle}")
    if not config_path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    current = ConfigFile.from_mapping(_load_config_file(config_path), path=config_path)
    reference = current.global_config.extends
    current.global_config.extends = None
    if not reference:
        return current

    parent_path = resolve_extends(reference, config_path)
    parent = load_with_extends(parent_path, visited=chain + [key])
    return parent.merged_with(current)
