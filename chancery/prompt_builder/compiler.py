"""Prompt Builder compiler utilities.

Two composition styles are exposed on purpose and are not interchangeable:

- ``compose_prompt`` builds the labeled, multi-line text submitted to the generator.
- ``compose_compact`` builds the comma-joined one-liner used for previews and search.

Scene prompts get their own single-line and sectioned forms.
"""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional

from chancery.character_studio.models import (
    SCENE_FIELDS,
    SETTINGS_FIELDS,
    CharacterProfile,
    CharacterScene,
    ScenePrompt,
    scene_characters,
)

from .models import POSITIVE_SECTIONS, DefaultKey, SavedPrompt, SectionKind
from .resolver import non_empty, resolve_default

NEGATIVE_PREFIX = "Negative prompt"
SUMMARY_LIMIT = 80


def _section(title: str, text: Optional[str]) -> Optional[str]:
    value = non_empty(text)
    if value is None:
        return None
    return f"{title}:\n{value}"


def _negative_line(text: str) -> str:
    if text.lower().startswith(NEGATIVE_PREFIX.lower()):
        return text
    return f"{NEGATIVE_PREFIX}: {text}"


def compose_prompt(
    character: Optional[CharacterProfile],
    prompt: SavedPrompt,
    global_defaults: Optional[Mapping[DefaultKey, str]],
) -> str:
    """Compose the labeled generator text for a character prompt.

    Blocks are emitted in a fixed order (name, the seven positive sections,
    negative prompt, additional information) and joined by a blank line. The
    negative prompt is a single ``Negative prompt: ...`` line rather than a
    labeled block, and is left untouched when it already carries that prefix.
    """

    overrides = character.character_defaults if character is not None else None
    blocks: List[str] = []

    # Only the emptiness check trims; the name is emitted as written.
    if character is not None and non_empty(character.name):
        blocks.append(f"Name:\n{character.name}")

    for kind in POSITIVE_SECTIONS:
        value = resolve_default(kind, prompt.content(kind), overrides, global_defaults)
        block = _section(kind.display_label, value)
        if block:
            blocks.append(block)

    negative = resolve_default(SectionKind.NEGATIVE, prompt.negative_prompt, overrides, global_defaults)
    if negative:
        blocks.append(_negative_line(negative))

    # Additional information never falls back to defaults.
    block = _section("Additional Information", prompt.additional_info)
    if block:
        blocks.append(block)

    return "\n\n".join(blocks)


def compose_compact(prompt: SavedPrompt) -> str:
    """Join the prompt's own non-empty sections with ``", "`` and append the negative after ``" | "``."""

    parts = [non_empty(prompt.content(kind)) for kind in POSITIVE_SECTIONS]
    parts.append(non_empty(prompt.additional_info))
    positive = ", ".join(part for part in parts if part)

    negative = non_empty(prompt.negative_prompt)
    if negative:
        return f"{positive} | {negative}" if positive else f"| {negative}"
    return positive


def auto_summary(prompt: SavedPrompt) -> str:
    """Short label built from the first two filled sections, capped at 80 characters."""

    parts = [non_empty(prompt.content(kind)) for kind in POSITIVE_SECTIONS]
    filled = [part for part in parts if part][:2]
    if not filled:
        return "Untitled Prompt"
    summary = ", ".join(filled)
    if len(summary) > SUMMARY_LIMIT:
        return summary[: SUMMARY_LIMIT - 3] + "..."
    return summary


def _resolved_scene_fields(
    scene: CharacterScene, prompt: ScenePrompt, global_defaults: Optional[Mapping[DefaultKey, str]]
) -> dict:
    return {
        kind: resolve_default(kind, prompt.content(kind), scene.scene_defaults, global_defaults)
        for kind in SCENE_FIELDS
    }


def _resolved_character_fields(
    scene: CharacterScene,
    prompt: ScenePrompt,
    character: CharacterProfile,
    global_defaults: Optional[Mapping[DefaultKey, str]],
) -> dict:
    settings = prompt.character_settings.get(character.id)
    resolved = {
        kind: resolve_default(
            kind, settings.content(kind) if settings else None, scene.scene_defaults, global_defaults
        )
        for kind in SETTINGS_FIELDS
    }
    resolved["additional_info"] = non_empty(settings.additional_info) if settings else None
    return resolved


def compose_scene_prompt(
    scene: CharacterScene,
    prompt: ScenePrompt,
    characters: Iterable[CharacterProfile],
    global_defaults: Optional[Mapping[DefaultKey, str]],
) -> str:
    """Compose the single-line generator text for a group prompt.

    Each participant contributes ``"<name>, <physical>, wearing <outfit>, <pose>, <extra>"``;
    scene-wide sections follow, and the negative prompt is appended after ``" ### "``.
    """

    parts: List[str] = []
    for character in scene_characters(scene, characters):
        fields = _resolved_character_fields(scene, prompt, character, global_defaults)
        physical = fields[SectionKind.PHYSICAL_DESCRIPTION]
        character_parts = [f"{character.name}, {physical}" if physical else character.name]
        if fields[SectionKind.OUTFIT]:
            character_parts.append(f"wearing {fields[SectionKind.OUTFIT]}")
        if fields[SectionKind.POSE]:
            character_parts.append(fields[SectionKind.POSE])
        if fields["additional_info"]:
            character_parts.append(fields["additional_info"])
        parts.append(", ".join(part for part in character_parts if part))

    scene_fields = _resolved_scene_fields(scene, prompt, global_defaults)
    for kind in (SectionKind.ENVIRONMENT, SectionKind.LIGHTING, SectionKind.STYLE, SectionKind.TECHNICAL):
        if scene_fields[kind]:
            parts.append(scene_fields[kind])
    additional = non_empty(prompt.additional_info)
    if additional:
        parts.append(additional)

    result = ", ".join(part for part in parts if part)
    negative = scene_fields[SectionKind.NEGATIVE]
    if negative:
        return f"{result} ### {negative}" if result else f"### {negative}"
    return result


def format_scene_prompt(
    scene: CharacterScene,
    prompt: ScenePrompt,
    characters: Iterable[CharacterProfile],
    global_defaults: Optional[Mapping[DefaultKey, str]],
) -> str:
    """Sectioned, human-readable rendering of a group prompt for review screens."""

    sections: List[str] = []
    labels = [
        (SectionKind.PHYSICAL_DESCRIPTION, "Description"),
        (SectionKind.OUTFIT, "Outfit"),
        (SectionKind.POSE, "Pose"),
        ("additional_info", "Additional"),
    ]
    for character in scene_characters(scene, characters):
        fields = _resolved_character_fields(scene, prompt, character, global_defaults)
        lines = [f"{label}: {fields[key]}" for key, label in labels if fields[key]]
        body = "\n".join(lines) if lines else "(No settings)"
        sections.append(f"[{character.name}]\n{body}")

    scene_fields = _resolved_scene_fields(scene, prompt, global_defaults)
    scene_fields["additional_info"] = non_empty(prompt.additional_info)
    scene_labels = [
        (SectionKind.ENVIRONMENT, "Environment"),
        (SectionKind.LIGHTING, "Lighting"),
        (SectionKind.STYLE, "Style"),
        (SectionKind.TECHNICAL, "Technical"),
        ("additional_info", "Additional"),
    ]
    scene_lines = [f"{label}: {scene_fields[key]}" for key, label in scene_labels if scene_fields[key]]
    if scene_lines:
        sections.append("[Scene Settings]\n" + "\n".join(scene_lines))

    if scene_fields[SectionKind.NEGATIVE]:
        sections.append(f"[Negative]\n{scene_fields[SectionKind.NEGATIVE]}")

    return "\n\n".join(sections) if sections else "No prompt content yet"
