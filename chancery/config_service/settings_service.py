#!/usr/bin/env python3
"""Settings service for Chancery.

Loads and saves a single JSON/YAML settings file holding the global prompt
defaults, the preset catalog, and the default generator slug, with
migrations from older layouts and env-style exports for shell consumers.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import yaml

from chancery.path_utils import get_settings_path
from chancery.prompt_builder.models import DefaultKey, parse_defaults, serialize_defaults
from chancery.prompt_builder.presets import SAMPLE_DEFAULTS, PresetCatalog, sample_catalog
from chancery.prompt_builder.services import FALLBACK_GENERATOR, PromptContext

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    pass


DEFAULT_SETTINGS_PATH = str(get_settings_path())
CURRENT_VERSION = 2
DEFAULT_GENERATOR = "ai-vibrant-image-generator"


DEFAULT_SETTINGS: Dict[str, Any] = {
    "version": CURRENT_VERSION,
    "generator": {"default_slug": DEFAULT_GENERATOR},
    "defaults": serialize_defaults(SAMPLE_DEFAULTS),
    "presets": sample_catalog().to_list(),
    "ui": {"theme": "system"},
}

# Map legacy flat fields to their new home
DEPRECATED_FIELD_MAP = {
    "default_generator": "generator.default_slug",
    "default_perchance_generator": "generator.default_slug",
    "theme": "ui.theme",
    "theme_id": "ui.theme",
}

# Values under these prefixes are free text and must never be coerced to bool/int.
TEXT_PREFIXES = ("defaults.", "generator.")


@dataclass
class LoadedSettings:
    data: Dict[str, Any]
    warnings: List[str]
    migrated: bool


def ensure_settings_root(path: str) -> None:
    root = os.path.dirname(path)
    if root and not os.path.exists(root):
        os.makedirs(root, exist_ok=True)


def coerce_value(value: Any) -> Any:
    if isinstance(value, str):
        lower = value.strip().lower()
        if lower in {"true", "yes", "on"}:
            return True
        if lower in {"false", "no", "off"}:
            return False
        if lower.isdigit():
            return int(lower)
    return value


def coerce_for_path(path: str, value: Any) -> Any:
    if path.startswith(TEXT_PREFIXES):
        return value
    return coerce_value(value)


def deep_get(data: Dict[str, Any], path: str) -> Any:
    current: Any = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def deep_set(data: Dict[str, Any], path: str, value: Any) -> None:
    current = data
    parts = path.split(".")
    for key in parts[:-1]:
        if key not in current or not isinstance(current[key], dict):
            current[key] = {}
        current = current[key]
    current[parts[-1]] = value


def parse_env_style(text: str) -> Dict[str, Any]:
    parsed: Dict[str, Any] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        parsed[key.strip()] = value.strip()
    return parsed


def first_significant_line(text: str) -> str:
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if line and not line.startswith("#"):
            return line
    return ""


def looks_env_style(line: str) -> bool:
    """``key=value`` with the ``=`` before any ``:``; YAML values may contain ``=``."""

    if "=" not in line:
        return False
    colon = line.find(":")
    return colon == -1 or line.index("=") < colon


def load_raw_settings(path: str) -> Tuple[Dict[str, Any], List[str]]:
    warnings: List[str] = []
    if not os.path.exists(path):
        return deepcopy(DEFAULT_SETTINGS), warnings

    with open(path, "r", encoding="utf-8") as f:
        text = f.read()

    # Comment-only files count as empty.
    first_line = first_significant_line(text)
    if not first_line:
        return deepcopy(DEFAULT_SETTINGS), warnings

    try:
        if first_line.startswith("{") or first_line.startswith("["):
            data = json.loads(text)
        elif not looks_env_style(first_line):
            data = yaml.safe_load(text) or {}
        else:
            parsed = parse_env_style(text)
            data = {"version": 0, **parsed}
            warnings.append("Loaded legacy env-style settings; they will be migrated to structured YAML/JSON.")
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to parse settings file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("Settings root must be an object/dictionary.")
    return data, warnings


def migrate_v0_to_v1(data: Dict[str, Any], warnings: List[str]) -> Dict[str, Any]:
    migrated: Dict[str, Any] = {"generator": {"default_slug": DEFAULT_GENERATOR}, "defaults": {}}
    for key, value in data.items():
        if key == "version":
            continue
        target = DEPRECATED_FIELD_MAP.get(key)
        if target:
            deep_set(migrated, target, value)
            continue
        try:
            default_key = DefaultKey.parse(key)
        except ValueError:
            warnings.append(f"Deprecated or unknown field '{key}' preserved under legacy namespace.")
            migrated.setdefault("legacy", {})[key] = value
            continue
        migrated["defaults"][default_key.value] = value
    migrated["version"] = 1
    return migrated


def migrate_v1_to_v2(data: Dict[str, Any], warnings: List[str]) -> Dict[str, Any]:
    data = deepcopy(data)
    if "presets" not in data:
        data["presets"] = sample_catalog().to_list()
        warnings.append("Seeded preset catalog with the sample presets.")
    data.setdefault("ui", {})
    data["ui"].setdefault("theme", DEFAULT_SETTINGS["ui"]["theme"])
    data["version"] = 2
    return data


MIGRATIONS = {
    0: migrate_v0_to_v1,
    1: migrate_v1_to_v2,
}


def migrate(data: Dict[str, Any], warnings: List[str]) -> Tuple[Dict[str, Any], bool]:
    migrated = False
    version = data.get("version", 0)
    if not isinstance(version, int):
        raise ConfigError(f"Settings version must be an integer; received {version!r}")
    if version > CURRENT_VERSION:
        raise ConfigError(f"Settings version {version} is newer than supported version {CURRENT_VERSION}")
    while version < CURRENT_VERSION:
        migrate_fn = MIGRATIONS.get(version)
        if not migrate_fn:
            raise ConfigError(f"No migration path from version {version}")
        data = migrate_fn(data, warnings)
        version = data.get("version", version + 1)
        migrated = True
    return data, migrated


def validate(settings: Dict[str, Any], warnings: List[str]) -> Dict[str, Any]:
    slug = deep_get(settings, "generator.default_slug")
    if not isinstance(slug, str) or not slug.strip():
        if slug is not None:
            warnings.append(f"Invalid generator.default_slug {slug!r} replaced with '{DEFAULT_GENERATOR}'.")
        deep_set(settings, "generator.default_slug", DEFAULT_GENERATOR)

    defaults = settings.get("defaults")
    if defaults is None:
        defaults = {}
    if not isinstance(defaults, dict):
        warnings.append("Field defaults expected a mapping; resetting to empty.")
        defaults = {}
    cleaned: Dict[str, str] = {}
    for raw_key, value in defaults.items():
        try:
            key = DefaultKey.parse(raw_key)
        except ValueError:
            warnings.append(f"Unknown default key '{raw_key}' dropped.")
            continue
        if value is None:
            continue
        if not isinstance(value, str):
            warnings.append(f"Field defaults.{key.value} expected text; coerced from {value!r}.")
            value = str(value)
        cleaned[key.value] = value
    settings["defaults"] = cleaned

    presets = settings.get("presets")
    if not isinstance(presets, list):
        if presets is not None:
            warnings.append("Field presets expected a list; resetting to empty.")
        settings["presets"] = []

    return settings


def save_settings(data: Dict[str, Any], path: str) -> None:
    ensure_settings_root(path)
    ext = os.path.splitext(path)[1].lower()
    if ext in {".yaml", ".yml"}:
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False)
    else:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
    logger.info("Saved settings to %s", path)


def flatten_for_env(settings: Dict[str, Any]) -> Dict[str, Any]:
    flattened: Dict[str, Any] = {
        "default_generator": deep_get(settings, "generator.default_slug"),
        "theme": deep_get(settings, "ui.theme"),
        "preset_count": len(settings.get("presets") or []),
        "settings_version": settings.get("version", CURRENT_VERSION),
    }
    for key, value in (settings.get("defaults") or {}).items():
        flattened[f"default_{key}"] = value
    return {k: v for k, v in flattened.items() if v is not None}


def apply_overrides(settings: Dict[str, Any], overrides: List[str]) -> None:
    for override in overrides:
        if "=" not in override:
            raise ConfigError(f"Override '{override}' must use key=value format")
        key, raw_value = override.split("=", 1)
        path = key.strip()
        deep_set(settings, path, coerce_for_path(path, raw_value.strip()))


def apply_env_overrides(settings: Dict[str, Any], prefix: str, warnings: List[str]) -> None:
    if not prefix:
        return
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[len(prefix) :].lower().replace("__", ".")
        # Path variables (CHANCERY_CONFIG_DIR etc.) are not settings.
        if "." not in path:
            continue
        warnings.append(f"Environment override {key} applied to {path}")
        deep_set(settings, path, coerce_for_path(path, value))


def load_settings(path: str, env_prefix: str = "", overrides: List[str] | None = None) -> LoadedSettings:
    raw, warnings = load_raw_settings(path)
    migrated_settings, migrated = migrate(raw, warnings)
    apply_env_overrides(migrated_settings, env_prefix, warnings)
    if overrides:
        apply_overrides(migrated_settings, overrides)
    validated = validate(migrated_settings, warnings)
    return LoadedSettings(validated, warnings, migrated)


def build_context(settings: Dict[str, Any]) -> PromptContext:
    """Turn validated settings into the explicit context consumed by the prompt engine."""

    return PromptContext(
        global_defaults=parse_defaults(settings.get("defaults")),
        catalog=PresetCatalog.from_list(settings.get("presets") or []),
        default_generator=deep_get(settings, "generator.default_slug") or FALLBACK_GENERATOR,
    )


def store_context(settings: Dict[str, Any], context: PromptContext) -> Dict[str, Any]:
    """Write a context's mutable parts (defaults, presets, generator) back into settings."""

    updated = deepcopy(settings)
    updated["defaults"] = serialize_defaults(context.global_defaults)
    updated["presets"] = context.catalog.to_list()
    deep_set(updated, "generator.default_slug", context.default_generator)
    return updated


def export_env(settings: Dict[str, Any]) -> str:
    flat = flatten_for_env(settings)
    lines = [f"{key}={value}" for key, value in flat.items()]
    return "\n".join(lines)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chancery settings service")
    parser.add_argument("--settings", default=DEFAULT_SETTINGS_PATH, help="Path to the JSON/YAML settings file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    export_parser = subparsers.add_parser("export", help="Export settings")
    export_parser.add_argument("--format", choices=["json", "env"], default="env")
    export_parser.add_argument("--env-prefix", default="CHANCERY_", help="Environment variable prefix for overrides")
    export_parser.add_argument("--set", dest="overrides", action="append", default=[], help="Override key=value pairs")

    save_parser = subparsers.add_parser("save", help="Persist settings changes")
    save_parser.add_argument("--set", dest="overrides", action="append", default=[], help="Updated key=value pairs")

    subparsers.add_parser("migrate", help="Migrate settings file to the latest version")

    default_parser = subparsers.add_parser("set-default", help="Set or clear a global section default")
    default_parser.add_argument("key", help="Section key, e.g. lighting or physical_description")
    default_parser.add_argument("value", nargs="?", default="", help="Default text; omit to clear")
    return parser


def command_export(args: argparse.Namespace) -> int:
    loaded = load_settings(args.settings, args.env_prefix, args.overrides)
    if loaded.migrated:
        save_settings(loaded.data, args.settings)
    if args.format == "json":
        json.dump(loaded.data, sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        sys.stdout.write(export_env(loaded.data) + "\n")
    for note in loaded.warnings:
        print(f"[warn] {note}", file=sys.stderr)
    return 0


def command_save(args: argparse.Namespace) -> int:
    loaded = load_settings(args.settings, env_prefix="", overrides=args.overrides)
    save_settings(loaded.data, args.settings)
    for note in loaded.warnings:
        print(f"[warn] {note}", file=sys.stderr)
    return 0


def command_migrate(args: argparse.Namespace) -> int:
    raw, warnings = load_raw_settings(args.settings)
    migrated, did_migrate = migrate(raw, warnings)
    validated = validate(migrated, warnings)
    if did_migrate:
        save_settings(validated, args.settings)
    for note in warnings:
        print(f"[warn] {note}", file=sys.stderr)
    print(json.dumps({"migrated": did_migrate, "version": validated.get("version")}, indent=2))
    return 0


def command_set_default(args: argparse.Namespace) -> int:
    try:
        key = DefaultKey.parse(args.key)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    loaded = load_settings(args.settings)
    value = args.value.strip()
    if value:
        loaded.data["defaults"][key.value] = value
    else:
        loaded.data["defaults"].pop(key.value, None)
    save_settings(loaded.data, args.settings)
    return 0


def main(argv: List[str]) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "export":
            return command_export(args)
        if args.command == "save":
            return command_save(args)
        if args.command == "migrate":
            return command_migrate(args)
        if args.command == "set-default":
            return command_set_default(args)
    except ConfigError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
