"""Preset catalog and preset-match tracking for prompt sections.

- Purpose: keep the per-section preset markers of prompts in sync with the preset catalog.
- Assumptions: presets are matched by trimmed text, never by name; duplicate names are allowed.
- Side effects: ``resync_*`` helpers update markers on the prompt objects they receive.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from chancery.character_studio.models import SCENE_FIELDS, SETTINGS_FIELDS, ScenePrompt

from .models import DefaultKey, PromptPreset, SavedPrompt, SectionKind

logger = logging.getLogger(__name__)


def _trimmed(text: Optional[str]) -> str:
    return text.strip() if isinstance(text, str) else ""


@dataclass
class PresetCatalog:
    """Presets available to the editor, grouped by section kind on lookup."""

    presets: List[PromptPreset] = field(default_factory=list)

    def presets_of(self, kind: SectionKind) -> List[PromptPreset]:
        return [preset for preset in self.presets if preset.kind is kind]

    def preset_with_id(self, preset_id: str) -> Optional[PromptPreset]:
        return next((preset for preset in self.presets if preset.id == preset_id), None)

    def add_preset(self, kind: SectionKind, name: str, text: str) -> Optional[PromptPreset]:
        """Append a preset built from a section's text.

        A blank name falls back to the section's display label. Blank text is
        ignored and returns ``None``. Callers should resync markers afterwards so
        fields that already hold this text pick up the new name.
        """

        final_text = _trimmed(text)
        if not final_text:
            logger.warning("Ignoring %s preset with empty text", kind.value)
            return None
        final_name = _trimmed(name) or kind.display_label
        preset = PromptPreset(kind=kind, name=final_name, text=final_text)
        self.presets.append(preset)
        logger.info("Added %s preset '%s'", kind.value, final_name)
        return preset

    def remove_preset(self, preset_id: str) -> bool:
        preset = self.preset_with_id(preset_id)
        if preset is None:
            logger.warning("Attempted to remove non-existent preset: %s", preset_id)
            return False
        self.presets.remove(preset)
        return True

    def to_list(self) -> List[Dict[str, str]]:
        return [preset.to_dict() for preset in self.presets]

    @classmethod
    def from_list(cls, payload: Iterable[Dict[str, object]]) -> "PresetCatalog":
        presets: List[PromptPreset] = []
        for idx, raw in enumerate(payload or []):
            try:
                presets.append(PromptPreset.from_dict(raw))
            except (AttributeError, ValueError) as exc:
                logger.warning("Skipping preset %d: %s", idx, exc)
        return cls(presets=presets)


def update_match(
    kind: SectionKind,
    current_text: Optional[str],
    current_preset_name: Optional[str],
    catalog: PresetCatalog,
) -> Optional[str]:
    """Return the preset name the field should display after an edit.

    The existing name is kept while its preset still matches, so fields whose
    text is shared by several presets do not flip between them.
    """

    trimmed = _trimmed(current_text)
    if not trimmed:
        return None

    candidates = catalog.presets_of(kind)
    if current_preset_name is not None:
        current = next((preset for preset in candidates if preset.name == current_preset_name), None)
        if current is not None and _trimmed(current.text) == trimmed:
            return current_preset_name

    match = next((preset for preset in candidates if _trimmed(preset.text) == trimmed), None)
    return match.name if match else None


def resync_prompt_markers(prompt: SavedPrompt, catalog: PresetCatalog) -> SavedPrompt:
    for kind in SectionKind:
        prompt.set_preset_name(kind, update_match(kind, prompt.content(kind), prompt.preset_name(kind), catalog))
    return prompt


def resync_scene_prompt_markers(prompt: ScenePrompt, catalog: PresetCatalog) -> ScenePrompt:
    for kind in SCENE_FIELDS:
        prompt.set_preset_name(kind, update_match(kind, prompt.content(kind), prompt.preset_name(kind), catalog))
    for settings in prompt.character_settings.values():
        for kind in SETTINGS_FIELDS:
            settings.set_preset_name(
                kind, update_match(kind, settings.content(kind), settings.preset_name(kind), catalog)
            )
    return prompt


def _preset(kind: SectionKind, name: str, text: str) -> PromptPreset:
    return PromptPreset(kind=kind, name=name, text=text)


# Seed catalog written into a fresh settings file.
SAMPLE_PRESETS: List[PromptPreset] = [
    _preset(SectionKind.OUTFIT, "Casual Outfit", "hoodie, jeans, sneakers, relaxed casual style"),
    _preset(SectionKind.OUTFIT, "Fantasy Armor", "ornate plate armor, engraved runes, flowing cape"),
    _preset(SectionKind.POSE, "Hero Pose", "standing tall, chest out, confident stance, looking at viewer"),
    _preset(SectionKind.POSE, "Relaxed Sitting", "sitting cross-legged, relaxed shoulders, soft expression"),
    _preset(SectionKind.ENVIRONMENT, "Cozy Room", "warm cozy bedroom, soft blankets, fairy lights, bookshelves"),
    _preset(SectionKind.ENVIRONMENT, "Sci-Fi Lab", "sleek futuristic lab, holographic screens, glowing consoles"),
    _preset(
        SectionKind.LIGHTING,
        "Golden Hour",
        "golden hour lighting, warm orange and amber tones, sun low on horizon, long soft shadows, lens flare",
    ),
    _preset(
        SectionKind.LIGHTING,
        "Studio Portrait",
        "professional studio lighting setup, three-point lighting, key light with soft fill light, rim light separation",
    ),
    _preset(
        SectionKind.LIGHTING,
        "Neon Cyberpunk",
        "neon lighting, vibrant pink and cyan color cast, reflective wet surfaces, urban night atmosphere",
    ),
    _preset(
        SectionKind.LIGHTING,
        "Moonlight",
        "cool moonlight illumination, blue-silver ethereal tones, night atmosphere, subtle soft shadows",
    ),
    _preset(
        SectionKind.STYLE,
        "Photorealistic",
        "photorealistic rendering, hyperrealistic detail, lifelike appearance, natural skin texture",
    ),
    _preset(
        SectionKind.STYLE,
        "Digital Painting",
        "digital painting style, painterly brushstrokes visible, rich saturated color palette, detailed illustration",
    ),
    _preset(
        SectionKind.STYLE,
        "Anime/Manga",
        "anime art style, manga aesthetic, clean crisp lineart, cel-shaded flat coloring, large expressive eyes",
    ),
    _preset(
        SectionKind.STYLE,
        "Watercolor",
        "traditional watercolor painting, soft bleeding edges, transparent color washes, delicate paper texture",
    ),
    _preset(
        SectionKind.TECHNICAL,
        "Ultra HD",
        "8k UHD resolution, ultra-detailed rendering, extremely sharp focus throughout, high definition clarity",
    ),
    _preset(
        SectionKind.TECHNICAL,
        "Portrait Depth",
        "shallow depth of field, wide aperture f/1.4 to f/2.8, creamy bokeh background, subject tack sharp in focus",
    ),
    _preset(
        SectionKind.TECHNICAL,
        "Cinematic",
        "cinematic film composition, 35mm motion picture film look, anamorphic lens characteristics, color graded",
    ),
    _preset(
        SectionKind.NEGATIVE,
        "Standard Quality",
        "blurry, out of focus, low quality, low resolution, pixelated, jpeg artifacts, noise, grainy",
    ),
    _preset(
        SectionKind.NEGATIVE,
        "Anatomy Fixes",
        "bad anatomy, extra limbs, missing limbs, deformed hands, extra fingers, fused fingers, malformed limbs",
    ),
    _preset(
        SectionKind.NEGATIVE,
        "Clean Output",
        "watermark, signature, text overlay, logo, username, artist name, copyright notice, border",
    ),
]

SAMPLE_DEFAULTS: Dict[DefaultKey, str] = {
    DefaultKey.OUTFIT: "",
    DefaultKey.POSE: "",
    DefaultKey.ENVIRONMENT: "",
    DefaultKey.LIGHTING: "soft natural lighting",
    DefaultKey.STYLE: "high quality, detailed",
    DefaultKey.TECHNICAL: "sharp focus, high resolution",
    DefaultKey.NEGATIVE: "blurry, low quality, bad anatomy, extra limbs, watermark, text",
}


def sample_catalog() -> PresetCatalog:
    """A fresh catalog seeded with copies of ``SAMPLE_PRESETS``."""

    return PresetCatalog(presets=[_preset(p.kind, p.name, p.text) for p in SAMPLE_PRESETS])
