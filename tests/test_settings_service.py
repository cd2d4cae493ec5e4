import json
import os
import subprocess
import sys
from pathlib import Path

import pytest
import yaml

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chancery.config_service import settings_service
from chancery.config_service.settings_service import ConfigError
from chancery.prompt_builder.models import DefaultKey, SectionKind


def run_cmd(args, env=None):
    return subprocess.run(
        [sys.executable, "-m", "chancery.config_service.settings_service", *args],
        cwd=ROOT,
        env=env,
        capture_output=True,
        text=True,
    )


def test_missing_file_loads_sample_settings(tmp_path):
    loaded = settings_service.load_settings(str(tmp_path / "absent.yaml"))
    assert loaded.migrated is False
    assert loaded.data["version"] == settings_service.CURRENT_VERSION
    assert loaded.data["generator"]["default_slug"] == "ai-vibrant-image-generator"
    assert loaded.data["defaults"]["lighting"] == "soft natural lighting"
    assert len(loaded.data["presets"]) == 20


def test_legacy_env_style_file_is_migrated(tmp_path):
    legacy = tmp_path / "settings.conf"
    legacy.write_text("default_generator=old-gen\nlighting=dusk\nstyleModifiers=ink\nmystery=1\n")

    loaded = settings_service.load_settings(str(legacy))

    assert loaded.migrated is True
    assert loaded.data["generator"]["default_slug"] == "old-gen"
    assert loaded.data["defaults"] == {"lighting": "dusk", "style": "ink"}
    assert loaded.data["legacy"] == {"mystery": "1"}
    assert any("mystery" in note for note in loaded.warnings)


def test_default_text_is_never_coerced(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"version": 2, "defaults": {}, "presets": []}))
    loaded = settings_service.load_settings(str(path), overrides=["defaults.pose=yes", "ui.compact=true"])
    assert loaded.data["defaults"]["pose"] == "yes"
    assert loaded.data["ui"]["compact"] is True


def test_env_overrides_apply_with_prefix(tmp_path, monkeypatch):
    monkeypatch.setenv("CHANCERY_GENERATOR__DEFAULT_SLUG", "env-gen")
    monkeypatch.setenv("CHANCERY_CONFIG_DIR", str(tmp_path))
    loaded = settings_service.load_settings(str(tmp_path / "absent.yaml"), env_prefix="CHANCERY_")
    assert loaded.data["generator"]["default_slug"] == "env-gen"
    assert len(loaded.warnings) == 1


def test_validation_drops_unknown_defaults_and_fixes_slug(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        yaml.safe_dump({"version": 2, "generator": {"default_slug": "  "}, "defaults": {"mood": "grim", "pose": 5}})
    )
    loaded = settings_service.load_settings(str(path))
    assert loaded.data["generator"]["default_slug"] == "ai-vibrant-image-generator"
    assert loaded.data["defaults"] == {"pose": "5"}
    assert loaded.data["presets"] == []
    assert len(loaded.warnings) == 3


def test_newer_version_is_rejected(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"version": 99}))
    with pytest.raises(ConfigError):
        settings_service.load_settings(str(path))


def test_context_round_trip(tmp_path):
    loaded = settings_service.load_settings(str(tmp_path / "absent.yaml"))
    context = settings_service.build_context(loaded.data)
    assert context.global_defaults[DefaultKey.NEGATIVE].startswith("blurry")
    assert context.default_generator == "ai-vibrant-image-generator"

    context.catalog.add_preset(SectionKind.POSE, "", "arms crossed")
    context.global_defaults[DefaultKey.POSE] = "standing"
    stored = settings_service.store_context(loaded.data, context)

    assert stored["defaults"]["pose"] == "standing"
    assert stored["presets"][-1]["name"] == "Pose"
    assert loaded.data["defaults"]["pose"] == ""


def test_save_and_reload_yaml(tmp_path):
    path = tmp_path / "nested" / "settings.yaml"
    data = settings_service.load_settings(str(path)).data
    settings_service.save_settings(data, str(path))
    assert yaml.safe_load(path.read_text())["version"] == 2
    assert settings_service.load_settings(str(path)).data == data


def test_cli_set_default_and_export(tmp_path):
    settings = tmp_path / "settings.yaml"
    env = {**os.environ, "CHANCERY_SETTINGS_FILE": str(settings)}

    result = run_cmd(["--settings", str(settings), "set-default", "Style Modifiers", "ink wash"], env=env)
    assert result.returncode == 0, result.stderr

    result = run_cmd(["--settings", str(settings), "export", "--format", "json"], env=env)
    assert result.returncode == 0, result.stderr
    payload = json.loads(result.stdout)
    assert payload["defaults"]["style"] == "ink wash"

    result = run_cmd(["--settings", str(settings), "set-default", "style"], env=env)
    assert result.returncode == 0, result.stderr
    exported = run_cmd(["--settings", str(settings), "export"], env=env).stdout
    assert "default_style=" not in exported
    assert "default_generator=ai-vibrant-image-generator" in exported


def test_cli_rejects_unknown_default_key(tmp_path):
    settings = tmp_path / "settings.yaml"
    result = run_cmd(["--settings", str(settings), "set-default", "mood", "grim"])
    assert result.returncode == 1
    assert "[error]" in result.stderr


def test_cli_migrate_reports_version(tmp_path):
    legacy = tmp_path / "settings.conf"
    legacy.write_text("theme=dark\n")
    result = run_cmd(["--settings", str(legacy), "migrate"])
    assert result.returncode == 0, result.stderr
    assert json.loads(result.stdout) == {"migrated": True, "version": 2}
    assert json.loads(legacy.read_text())["ui"]["theme"] == "dark"


COMMENTED_YAML = """# my chancery settings
version: 2
generator:
  default_slug: my-gen
defaults:
  style: ink wash
presets:
  - kind: outfit
    name: Knight
    text: armor, cape
"""


def test_yaml_with_leading_comment_is_read_as_yaml(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(COMMENTED_YAML)

    loaded = settings_service.load_settings(str(path))

    assert loaded.migrated is False
    assert loaded.data["generator"]["default_slug"] == "my-gen"
    assert loaded.data["defaults"] == {"style": "ink wash"}
    assert [preset["name"] for preset in loaded.data["presets"]] == ["Knight"]


def test_cli_export_keeps_commented_yaml_intact(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(COMMENTED_YAML)

    result = run_cmd(["--settings", str(path), "export", "--format", "json"])

    assert result.returncode == 0, result.stderr
    assert json.loads(result.stdout)["generator"]["default_slug"] == "my-gen"
    assert path.read_text() == COMMENTED_YAML


def test_commented_legacy_file_is_still_env_style(tmp_path):
    legacy = tmp_path / "settings.conf"
    legacy.write_text("# exported by an old release\nlighting=dusk\nurl_hint=see: docs\n")

    loaded = settings_service.load_settings(str(legacy))

    assert loaded.migrated is True
    assert loaded.data["defaults"] == {"lighting": "dusk"}
    assert loaded.data["legacy"] == {"url_hint": "see: docs"}


def test_comment_only_file_loads_sample_settings(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("# nothing here yet\n\n")
    loaded = settings_service.load_settings(str(path))
    assert loaded.migrated is False
    assert loaded.data["generator"]["default_slug"] == "ai-vibrant-image-generator"
