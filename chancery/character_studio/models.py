"""Character Studio models and serialization helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlparse
from uuid import uuid4

from chancery.prompt_builder.models import (
    DefaultKey,
    PromptImage,
    SavedPrompt,
    SectionKind,
    parse_defaults,
    parse_images,
    parse_preset_names,
    serialize_defaults,
)
from chancery.prompt_builder.resolver import effective_default as resolve_effective_default

logger = logging.getLogger(__name__)


class CharacterStudioError(Exception):
    """Raised when a character or scene payload cannot be interpreted."""

    def __init__(self, message: str, context: Optional[Dict[str, object]] = None) -> None:
        super().__init__(message)
        self.context = context or {}


def _new_id() -> str:
    return str(uuid4())


class _StableIdentity:
    """Mixin that freezes ``id`` once the dataclass has assigned it."""

    def __setattr__(self, name: str, value: object) -> None:
        if name == "id" and "id" in self.__dict__:
            raise AttributeError(f"{type(self).__name__}.id is immutable after creation")
        super().__setattr__(name, value)


@dataclass
class RelatedLink:
    """A reference link (inspiration board, reference image page, etc.)."""

    url: str
    title: str = ""
    id: str = field(default_factory=_new_id)

    @property
    def display_title(self) -> str:
        if self.title.strip():
            return self.title.strip()
        return urlparse(self.url).netloc or self.url


@dataclass
class CharacterProfile(_StableIdentity):
    """A character with biography, saved prompts, and per-character overrides.

    ``character_defaults`` take precedence over the global defaults, but only for
    entries that are non-empty after trimming.
    """

    name: str
    bio: str = ""
    notes: str = ""
    prompts: List[SavedPrompt] = field(default_factory=list)
    profile_image: Optional[str] = None
    links: List[RelatedLink] = field(default_factory=list)
    character_defaults: Dict[DefaultKey, str] = field(default_factory=dict)
    generator_override: Optional[str] = None
    theme_id: Optional[str] = None
    id: str = field(default_factory=_new_id)

    @property
    def prompt_count(self) -> int:
        return len(self.prompts)

    @property
    def total_image_count(self) -> int:
        return sum(prompt.image_count for prompt in self.prompts)

    @property
    def has_profile_image(self) -> bool:
        return self.profile_image is not None

    @property
    def has_custom_defaults(self) -> bool:
        return any(value.strip() for value in self.character_defaults.values())

    @property
    def has_custom_generator(self) -> bool:
        return bool(self.generator_override and self.generator_override.strip())

    @property
    def has_custom_theme(self) -> bool:
        return self.theme_id is not None

    def effective_default(self, key: DefaultKey, global_defaults: Dict[DefaultKey, str]) -> Optional[str]:
        return resolve_effective_default(key, self.character_defaults, global_defaults)

    def prompt_by_id_or_title(self, needle: str) -> Optional[SavedPrompt]:
        for prompt in self.prompts:
            if prompt.id == needle:
                return prompt
        for prompt in self.prompts:
            if prompt.title.strip().lower() == needle.strip().lower():
                return prompt
        return None

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "bio": self.bio,
            "notes": self.notes,
            "prompts": [prompt.to_dict() for prompt in self.prompts],
            "profile_image": self.profile_image,
            "links": [{"id": link.id, "title": link.title, "url": link.url} for link in self.links],
            "character_defaults": serialize_defaults(self.character_defaults),
            "generator_override": self.generator_override,
            "theme_id": self.theme_id,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "CharacterProfile":
        """Create a CharacterProfile from a JSON-compatible dict."""

        if not isinstance(payload, dict):
            raise CharacterStudioError("character payload must be a dictionary")
        try:
            prompts = [SavedPrompt.from_dict(prompt) for prompt in payload.get("prompts", []) or []]
        except ValueError as exc:
            raise CharacterStudioError(f"Invalid prompt in character payload: {exc}", {"id": payload.get("id")}) from exc

        return cls(
            id=str(payload.get("id") or _new_id()),
            name=str(payload.get("name") or ""),
            bio=str(payload.get("bio") or ""),
            notes=str(payload.get("notes") or ""),
            prompts=prompts,
            profile_image=payload.get("profile_image"),
            links=_parse_links(payload.get("links")),
            character_defaults=parse_defaults(payload.get("character_defaults")),
            generator_override=payload.get("generator_override"),
            theme_id=payload.get("theme_id"),
        )


def _parse_links(raw_links: object) -> List[RelatedLink]:
    links: List[RelatedLink] = []
    for raw in raw_links or []:
        if isinstance(raw, str):
            links.append(RelatedLink(url=raw))
        elif isinstance(raw, dict) and raw.get("url"):
            links.append(
                RelatedLink(url=str(raw["url"]), title=str(raw.get("title") or ""), id=str(raw.get("id") or _new_id()))
            )
    return links


SETTINGS_FIELDS: Dict[SectionKind, str] = {
    SectionKind.PHYSICAL_DESCRIPTION: "physical_description",
    SectionKind.OUTFIT: "outfit",
    SectionKind.POSE: "pose",
}

SCENE_FIELDS: Dict[SectionKind, str] = {
    SectionKind.ENVIRONMENT: "environment",
    SectionKind.LIGHTING: "lighting",
    SectionKind.STYLE: "style_modifiers",
    SectionKind.TECHNICAL: "technical_modifiers",
    SectionKind.NEGATIVE: "negative_prompt",
}


@dataclass
class SceneCharacterSettings:
    """Per-participant settings inside a scene prompt."""

    physical_description: Optional[str] = None
    outfit: Optional[str] = None
    pose: Optional[str] = None
    additional_info: Optional[str] = None
    source_prompt_id: Optional[str] = None
    preset_names: Dict[SectionKind, str] = field(default_factory=dict)

    def content(self, kind: SectionKind) -> Optional[str]:
        return getattr(self, SETTINGS_FIELDS[kind])

    def set_content(self, kind: SectionKind, value: Optional[str]) -> None:
        setattr(self, SETTINGS_FIELDS[kind], value)

    def preset_name(self, kind: SectionKind) -> Optional[str]:
        return self.preset_names.get(kind)

    def set_preset_name(self, kind: SectionKind, name: Optional[str]) -> None:
        if name is None:
            self.preset_names.pop(kind, None)
        else:
            self.preset_names[kind] = name

    def load_from_prompt(self, prompt: SavedPrompt) -> None:
        """Copy the structured character fields from a saved prompt; the legacy ``text`` is ignored."""

        for kind in SETTINGS_FIELDS:
            self.set_content(kind, prompt.content(kind))
            self.set_preset_name(kind, prompt.preset_name(kind))
        self.source_prompt_id = prompt.id


@dataclass
class ScenePrompt:
    """A group prompt: scene-wide sections plus settings keyed by character id."""

    title: str = ""
    environment: Optional[str] = None
    lighting: Optional[str] = None
    style_modifiers: Optional[str] = None
    technical_modifiers: Optional[str] = None
    negative_prompt: Optional[str] = None
    additional_info: Optional[str] = None
    character_settings: Dict[str, SceneCharacterSettings] = field(default_factory=dict)
    preset_names: Dict[SectionKind, str] = field(default_factory=dict)
    images: List[PromptImage] = field(default_factory=list)
    id: str = field(default_factory=_new_id)

    def content(self, kind: SectionKind) -> Optional[str]:
        return getattr(self, SCENE_FIELDS[kind])

    def set_content(self, kind: SectionKind, value: Optional[str]) -> None:
        setattr(self, SCENE_FIELDS[kind], value)

    def preset_name(self, kind: SectionKind) -> Optional[str]:
        return self.preset_names.get(kind)

    def set_preset_name(self, kind: SectionKind, name: Optional[str]) -> None:
        if name is None:
            self.preset_names.pop(kind, None)
        else:
            self.preset_names[kind] = name

    def settings_for(self, character_id: str) -> SceneCharacterSettings:
        """Return the settings for a participant, creating an empty entry on first access."""

        return self.character_settings.setdefault(character_id, SceneCharacterSettings())

    @property
    def image_count(self) -> int:
        return len(self.images)

    @property
    def has_content(self) -> bool:
        values = [self.content(kind) for kind in SCENE_FIELDS] + [self.additional_info]
        return any(value for value in values) or bool(self.character_settings)


@dataclass
class CharacterScene(_StableIdentity):
    """A scene grouping several characters for group prompts.

    ``character_ids`` may outlive the characters they point at; consumers filter
    them through ``scene_characters``.
    """

    name: str
    description: str = ""
    notes: str = ""
    character_ids: List[str] = field(default_factory=list)
    prompts: List[ScenePrompt] = field(default_factory=list)
    links: List[RelatedLink] = field(default_factory=list)
    theme_id: Optional[str] = None
    generator_override: Optional[str] = None
    scene_defaults: Dict[DefaultKey, str] = field(default_factory=dict)
    id: str = field(default_factory=_new_id)

    @property
    def prompt_count(self) -> int:
        return len(self.prompts)

    @property
    def character_count(self) -> int:
        return len(self.character_ids)

    @property
    def total_image_count(self) -> int:
        return sum(prompt.image_count for prompt in self.prompts)

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "CharacterScene":
        if not isinstance(payload, dict):
            raise CharacterStudioError("scene payload must be a dictionary")

        prompts: List[ScenePrompt] = []
        for idx, raw_prompt in enumerate(payload.get("prompts", []) or []):
            if not isinstance(raw_prompt, dict):
                raise CharacterStudioError(f"prompts[{idx}] must be a dictionary", {"id": payload.get("id")})
            prompt = ScenePrompt(
                id=str(raw_prompt.get("id") or _new_id()),
                title=str(raw_prompt.get("title") or ""),
                additional_info=raw_prompt.get("additional_info"),
            )
            for kind, attribute in SCENE_FIELDS.items():
                prompt.set_content(kind, raw_prompt.get(attribute))
            for character_id, raw_settings in dict(raw_prompt.get("character_settings") or {}).items():
                if not isinstance(raw_settings, dict):
                    raise CharacterStudioError(
                        f"prompts[{idx}].character_settings[{character_id}] must be a dictionary",
                        {"id": payload.get("id")},
                    )
                settings = prompt.settings_for(str(character_id))
                for kind, attribute in SETTINGS_FIELDS.items():
                    settings.set_content(kind, raw_settings.get(attribute))
                settings.additional_info = raw_settings.get("additional_info")
                settings.source_prompt_id = raw_settings.get("source_prompt_id")
                settings.preset_names.update(
                    _scoped_markers(raw_settings.get("preset_names"), SETTINGS_FIELDS, payload.get("id"))
                )
            prompt.preset_names.update(_scoped_markers(raw_prompt.get("preset_names"), SCENE_FIELDS, payload.get("id")))
            prompt.images.extend(parse_images(raw_prompt.get("images")))
            prompts.append(prompt)

        return cls(
            id=str(payload.get("id") or _new_id()),
            name=str(payload.get("name") or ""),
            description=str(payload.get("description") or ""),
            notes=str(payload.get("notes") or ""),
            character_ids=[str(character_id) for character_id in payload.get("character_ids", []) or []],
            prompts=prompts,
            links=_parse_links(payload.get("links")),
            theme_id=payload.get("theme_id"),
            generator_override=payload.get("generator_override"),
            scene_defaults=parse_defaults(payload.get("scene_defaults")),
        )


def _scoped_markers(payload: object, fields: Dict[SectionKind, str], owner_id: object) -> Dict[SectionKind, str]:
    """Parse preset markers, keeping only the kinds the owning record actually has."""

    try:
        markers = parse_preset_names(payload)
    except ValueError as exc:
        raise CharacterStudioError(f"Invalid preset marker in scene payload: {exc}", {"id": owner_id}) from exc
    return {kind: name for kind, name in markers.items() if kind in fields}


def scene_characters(scene: CharacterScene, characters: Iterable[CharacterProfile]) -> List[CharacterProfile]:
    """Characters that belong to the scene, in the order of ``characters``.

    Ids in the scene with no matching character are dropped.
    """

    members = set(scene.character_ids)
    ordered = [character for character in characters if character.id in members]
    if len(ordered) < len(members):
        known = {character.id for character in ordered}
        logger.warning(
            "Scene %s references %d missing character(s): %s",
            scene.id,
            len(members - known),
            ", ".join(sorted(members - known)),
        )
    return ordered
