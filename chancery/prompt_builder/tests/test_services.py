import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[3]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chancery.character_studio.models import CharacterProfile, CharacterScene, ScenePrompt
from chancery.prompt_builder.models import DefaultKey, PromptImage, PromptPreset, SavedPrompt, SectionKind
from chancery.prompt_builder.presets import PresetCatalog
from chancery.prompt_builder.services import (
    FALLBACK_GENERATOR,
    PromptComposerService,
    PromptContext,
    UIIntegrationHooks,
    generator_url,
    resolve_generator_slug,
)


def _service(**defaults):
    context = PromptContext(
        global_defaults={DefaultKey.parse(key): value for key, value in defaults.items()},
        catalog=PresetCatalog(presets=[PromptPreset(kind=SectionKind.LIGHTING, name="Dusk", text="dusk light")]),
        default_generator="ai-vibrant-image-generator",
    )
    return PromptComposerService(context)


def test_compose_uses_context_defaults():
    service = _service(lighting="dusk light")
    prompt = SavedPrompt(title="Light")
    assert service.compose(None, prompt) == "Lighting:\ndusk light"


def test_save_preset_returns_marker_for_the_section():
    service = _service()
    prompt = SavedPrompt(title="Pose", pose="  arms crossed ")
    assert service.save_preset(prompt, SectionKind.POSE) == "Pose"
    assert prompt.preset_name(SectionKind.POSE) == "Pose"
    assert service.save_preset(prompt, SectionKind.OUTFIT, "Nothing") is None


def test_fill_with_defaults_overwrites_every_section():
    service = _service(lighting="dusk light", style="global style")
    character = CharacterProfile(name="Aria", character_defaults={DefaultKey.STYLE: "ink"})
    prompt = SavedPrompt(title="Fill", outfit="armor", lighting="noon")

    service.fill_with_defaults(character, prompt)

    assert prompt.outfit is None
    assert prompt.lighting == "dusk light"
    assert prompt.style_modifiers == "ink"
    assert prompt.preset_name(SectionKind.LIGHTING) == "Dusk"


def test_clear_all_sections_drops_text_and_markers():
    prompt = SavedPrompt(
        title="Clear",
        outfit="armor",
        additional_info="note",
        preset_names={SectionKind.OUTFIT: "Knight"},
    )
    PromptComposerService.clear_all_sections(prompt)
    assert prompt.has_content is False
    assert prompt.preset_names == {}
    assert prompt.title == "Clear"


def test_duplicate_prompt_gets_new_identity_without_images():
    prompt = SavedPrompt(title="Original", outfit="armor", images=[PromptImage(reference="a.png")])
    copy = PromptComposerService.duplicate_prompt(prompt)
    assert copy.id != prompt.id
    assert copy.title == "Original (Copy)"
    assert copy.outfit == "armor"
    assert copy.images == []
    assert PromptComposerService.duplicate_prompt(prompt, "Variant").title == "Variant"


def test_generator_slug_precedence():
    assert resolve_generator_slug(" my-gen ", "other") == "my-gen"
    assert resolve_generator_slug("  ", "other") == "other"
    assert resolve_generator_slug(None, "") == FALLBACK_GENERATOR
    assert generator_url("ai-artgen") == "https://perchance.org/ai-artgen"


def test_generator_slug_reads_entity_override():
    service = _service()
    assert service.generator_slug(CharacterProfile(name="A", generator_override="fancy-gen")) == "fancy-gen"
    assert service.generator_slug(CharacterScene(name="S")) == "ai-vibrant-image-generator"
    assert service.generator_slug() == "ai-vibrant-image-generator"


def test_publish_writes_bundle(tmp_path):
    bundle = tmp_path / "out" / "bundle.json"
    hooks = UIIntegrationHooks(bundle_path=bundle)

    payload = hooks.publish_prompt("Lighting:\ndusk", "ai-artgen")

    on_disk = json.loads(bundle.read_text(encoding="utf-8"))
    assert on_disk == payload
    assert payload["generator_url"] == "https://perchance.org/ai-artgen"
    assert payload["compiled_at"].endswith("Z")


def test_bundle_path_honours_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("CHANCERY_BUNDLE_PATH", str(tmp_path / "env.json"))
    assert UIIntegrationHooks().bundle_path == tmp_path / "env.json"


def test_preflight_rejects_empty_prompt():
    hooks = UIIntegrationHooks(bundle_path=Path("unused.json"))
    assert hooks.preflight_prompt("   ") is not None
    assert hooks.preflight_prompt("Pose:\nsitting") is None


def test_scene_facade_uses_context():
    service = _service(lighting="dusk light")
    aria = CharacterProfile(name="Aria")
    scene = CharacterScene(name="Camp", character_ids=[aria.id])
    prompt = ScenePrompt(environment="campfire")
    prompt.settings_for(aria.id).pose = "sitting"

    assert service.compose_scene(scene, prompt, [aria]) == "Aria, sitting, campfire, dusk light"
    assert service.format_scene(scene, prompt, [aria]) == (
        "[Aria]\nPose: sitting\n\n[Scene Settings]\nEnvironment: campfire\nLighting: dusk light"
    )

    prompt.lighting = "dusk light"
    service.refresh_scene_markers(prompt)
    assert prompt.preset_name(SectionKind.LIGHTING) == "Dusk"
