"""Service facades for the Prompt Builder module.

- Purpose: wrap composition, preset bookkeeping, and generator hand-off behind an explicit context.
- Assumptions: callers build a ``PromptContext`` from settings; no module-level store is consulted.
- Side effects: ``UIIntegrationHooks.publish_prompt`` writes the latest prompt bundle to disk.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Optional

from chancery.character_studio.models import CharacterProfile, CharacterScene, ScenePrompt
from chancery.path_utils import get_bundle_path

from . import compiler
from .models import DefaultKey, SavedPrompt, SectionKind
from .presets import PresetCatalog, resync_prompt_markers, resync_scene_prompt_markers
from .resolver import effective_default, non_empty

logger = logging.getLogger(__name__)

FALLBACK_GENERATOR = "ai-artgen"
GENERATOR_BASE_URL = "https://perchance.org/"


@dataclass
class PromptContext:
    """Settings-derived inputs shared by every composition call."""

    global_defaults: Dict[DefaultKey, str] = field(default_factory=dict)
    catalog: PresetCatalog = field(default_factory=PresetCatalog)
    default_generator: str = FALLBACK_GENERATOR


def resolve_generator_slug(override: Optional[str], default_generator: Optional[str]) -> str:
    """Entity override, then the configured default, then the built-in fallback slug."""

    return non_empty(override) or non_empty(default_generator) or FALLBACK_GENERATOR


def generator_url(slug: str) -> str:
    return f"{GENERATOR_BASE_URL}{slug}"


class PromptComposerService:
    """Facade the editor screens call after edits and on copy/open-generator actions."""

    def __init__(self, context: Optional[PromptContext] = None) -> None:
        self.context = context or PromptContext()

    def compose(self, character: Optional[CharacterProfile], prompt: SavedPrompt) -> str:
        return compiler.compose_prompt(character, prompt, self.context.global_defaults)

    def compose_compact(self, prompt: SavedPrompt) -> str:
        return compiler.compose_compact(prompt)

    def compose_scene(
        self, scene: CharacterScene, prompt: ScenePrompt, characters: Iterable[CharacterProfile]
    ) -> str:
        return compiler.compose_scene_prompt(scene, prompt, characters, self.context.global_defaults)

    def format_scene(
        self, scene: CharacterScene, prompt: ScenePrompt, characters: Iterable[CharacterProfile]
    ) -> str:
        return compiler.format_scene_prompt(scene, prompt, characters, self.context.global_defaults)

    def refresh_markers(self, prompt: SavedPrompt) -> SavedPrompt:
        return resync_prompt_markers(prompt, self.context.catalog)

    def refresh_scene_markers(self, prompt: ScenePrompt) -> ScenePrompt:
        return resync_scene_prompt_markers(prompt, self.context.catalog)

    def save_preset(self, prompt: SavedPrompt, kind: SectionKind, name: str = "") -> Optional[str]:
        """Save a section's current text as a preset and return the marker the section now shows."""

        preset = self.context.catalog.add_preset(kind, name, prompt.content(kind) or "")
        if preset is None:
            return None
        self.refresh_markers(prompt)
        return prompt.preset_name(kind)

    def fill_with_defaults(self, character: Optional[CharacterProfile], prompt: SavedPrompt) -> SavedPrompt:
        """Overwrite every section with the character/global effective default, clearing unset ones."""

        overrides = character.character_defaults if character is not None else None
        for kind in SectionKind:
            prompt.set_content(kind, effective_default(kind, overrides, self.context.global_defaults))
        return self.refresh_markers(prompt)

    @staticmethod
    def clear_all_sections(prompt: SavedPrompt) -> SavedPrompt:
        for kind in SectionKind:
            prompt.set_content(kind, None)
            prompt.set_preset_name(kind, None)
        prompt.additional_info = None
        return prompt

    @staticmethod
    def duplicate_prompt(prompt: SavedPrompt, title: str = "") -> SavedPrompt:
        """Copy sections and markers under a new id; images stay with the original."""

        copy = SavedPrompt(
            title=title.strip() or f"{prompt.title} (Copy)",
            text=prompt.text,
            additional_info=prompt.additional_info,
            preset_names=dict(prompt.preset_names),
        )
        for kind in SectionKind:
            copy.set_content(kind, prompt.content(kind))
        return copy

    def generator_slug(self, entity: Optional[object] = None) -> str:
        override = getattr(entity, "generator_override", None)
        return resolve_generator_slug(override, self.context.default_generator)


class UIIntegrationHooks:
    """Hooks for UI layers to hand composed prompts to the external generator.

    When a prompt is published the bundle is written to disk so clipboard and
    browser helpers can pick up the latest text without additional plumbing.
    """

    def __init__(self, bundle_path: Optional[Path] = None) -> None:
        self.bundle_path = Path(bundle_path) if bundle_path else get_bundle_path()

    def preflight_prompt(self, composed: str) -> Optional[str]:
        """Return a message when there is nothing to send; otherwise ``None``."""

        if not composed.strip():
            return "Fill in at least one section or default before opening the generator."
        return None

    def publish_prompt(self, composed: str, slug: str) -> Dict:
        """Persist the composed prompt and its generator target for downstream consumers."""

        payload = {
            "prompt": composed,
            "generator_slug": slug,
            "generator_url": generator_url(slug),
        }
        return self._write_bundle(payload)

    def _write_bundle(self, payload: Dict) -> Dict:
        bundle_dir = self.bundle_path.parent
        bundle_dir.mkdir(parents=True, exist_ok=True)

        enriched_payload = {
            **payload,
            "compiled_at": datetime.utcnow().isoformat() + "Z",
            "bundle_path": str(self.bundle_path),
        }
        self.bundle_path.write_text(json.dumps(enriched_payload, indent=2), encoding="utf-8")
        logger.info("Published prompt bundle to %s", self.bundle_path)
        return enriched_payload
