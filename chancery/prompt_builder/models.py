"""Shared data models for the Prompt Builder module.

- Purpose: define the prompt sections, default keys, presets, and saved prompts consumed by the composer.
- Assumptions: section order is significant and follows ``SectionKind`` declaration order.
- Side effects: none; classes are passive containers apart from in-place field setters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4


def _new_id() -> str:
    return str(uuid4())


def _normalize_token(value: str) -> str:
    return value.strip().lower().replace("_", "").replace("-", "").replace(" ", "")


class SectionKind(Enum):
    """The eight sections that make up a structured image prompt."""

    PHYSICAL_DESCRIPTION = "physical_description"
    OUTFIT = "outfit"
    POSE = "pose"
    ENVIRONMENT = "environment"
    LIGHTING = "lighting"
    STYLE = "style"
    TECHNICAL = "technical"
    NEGATIVE = "negative"

    @property
    def display_label(self) -> str:
        return _DISPLAY_LABELS[self]

    @property
    def placeholder(self) -> str:
        return _PLACEHOLDERS[self]

    @property
    def default_key(self) -> "DefaultKey":
        return DefaultKey(self.value)

    @classmethod
    def parse(cls, value: object) -> "SectionKind":
        """Accept a member, its value, or a camelCase/label spelling such as ``physicalDescription``."""

        if isinstance(value, cls):
            return value
        if isinstance(value, DefaultKey):
            return value.section_kind
        if isinstance(value, str):
            token = _normalize_token(value)
            for member in cls:
                if token in {_normalize_token(member.value), _normalize_token(member.display_label)}:
                    return member
        raise ValueError(f"Unknown section kind: {value!r}")


class DefaultKey(Enum):
    """Keys of the global and per-entity default maps; mirrors ``SectionKind`` one to one."""

    PHYSICAL_DESCRIPTION = "physical_description"
    OUTFIT = "outfit"
    POSE = "pose"
    ENVIRONMENT = "environment"
    LIGHTING = "lighting"
    STYLE = "style"
    TECHNICAL = "technical"
    NEGATIVE = "negative"

    @property
    def section_kind(self) -> SectionKind:
        return SectionKind(self.value)

    @property
    def display_label(self) -> str:
        return self.section_kind.display_label

    @classmethod
    def parse(cls, value: object) -> "DefaultKey":
        if isinstance(value, cls):
            return value
        return SectionKind.parse(value).default_key


_DISPLAY_LABELS: Dict[SectionKind, str] = {
    SectionKind.PHYSICAL_DESCRIPTION: "Physical Description",
    SectionKind.OUTFIT: "Outfit",
    SectionKind.POSE: "Pose",
    SectionKind.ENVIRONMENT: "Environment",
    SectionKind.LIGHTING: "Lighting",
    SectionKind.STYLE: "Style Modifiers",
    SectionKind.TECHNICAL: "Technical Modifiers",
    SectionKind.NEGATIVE: "Negative Prompt",
}

_PLACEHOLDERS: Dict[SectionKind, str] = {
    SectionKind.PHYSICAL_DESCRIPTION: "Describe physical features...",
    SectionKind.OUTFIT: "Describe clothing and accessories...",
    SectionKind.POSE: "Describe pose and expression...",
    SectionKind.ENVIRONMENT: "Describe the setting and background...",
    SectionKind.LIGHTING: "Describe lighting conditions...",
    SectionKind.STYLE: "Add artistic style modifiers...",
    SectionKind.TECHNICAL: "Add technical parameters...",
    SectionKind.NEGATIVE: "Elements to exclude...",
}

# Positive sections in composition order; the negative prompt is always handled last.
POSITIVE_SECTIONS: List[SectionKind] = [kind for kind in SectionKind if kind is not SectionKind.NEGATIVE]


def parse_defaults(payload: Optional[Dict[object, object]]) -> Dict[DefaultKey, str]:
    """Convert a JSON-style defaults mapping into ``DefaultKey`` keys, skipping unknown keys."""

    parsed: Dict[DefaultKey, str] = {}
    for raw_key, raw_value in (payload or {}).items():
        try:
            key = DefaultKey.parse(raw_key)
        except ValueError:
            continue
        if raw_value is None:
            continue
        parsed[key] = str(raw_value)
    return parsed


def serialize_defaults(defaults: Dict[DefaultKey, str]) -> Dict[str, str]:
    return {key.value: value for key, value in defaults.items()}


def _validate_optional_text(value: object, field_name: str) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string or None")
    return value


@dataclass
class PromptPreset:
    """A reusable text snippet for one prompt section."""

    kind: SectionKind
    name: str
    text: str
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "kind": self.kind.value, "name": self.name, "text": self.text}

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "PromptPreset":
        return cls(
            id=str(payload.get("id") or _new_id()),
            kind=SectionKind.parse(payload.get("kind")),
            name=str(payload.get("name") or ""),
            text=str(payload.get("text") or ""),
        )


@dataclass
class PromptImage:
    """Reference to an image generated from a prompt; the image payload itself lives elsewhere."""

    reference: str
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=lambda: datetime.utcnow().strftime("%Y%m%dT%H%M%SZ"))


# Attribute name on SavedPrompt for each section kind.
PROMPT_FIELDS: Dict[SectionKind, str] = {
    SectionKind.PHYSICAL_DESCRIPTION: "physical_description",
    SectionKind.OUTFIT: "outfit",
    SectionKind.POSE: "pose",
    SectionKind.ENVIRONMENT: "environment",
    SectionKind.LIGHTING: "lighting",
    SectionKind.STYLE: "style_modifiers",
    SectionKind.TECHNICAL: "technical_modifiers",
    SectionKind.NEGATIVE: "negative_prompt",
}


@dataclass
class SavedPrompt:
    """A structured prompt with one optional text per section plus preset markers.

    ``text`` is a legacy flat field kept only for older records; neither composer
    reads it. ``preset_names`` records, per section, the name of the preset whose
    text the section currently equals.
    """

    title: str
    text: str = ""
    physical_description: Optional[str] = None
    outfit: Optional[str] = None
    pose: Optional[str] = None
    environment: Optional[str] = None
    lighting: Optional[str] = None
    style_modifiers: Optional[str] = None
    technical_modifiers: Optional[str] = None
    negative_prompt: Optional[str] = None
    additional_info: Optional[str] = None
    preset_names: Dict[SectionKind, str] = field(default_factory=dict)
    images: List[PromptImage] = field(default_factory=list)
    id: str = field(default_factory=_new_id)

    def content(self, kind: SectionKind) -> Optional[str]:
        return getattr(self, PROMPT_FIELDS[kind])

    def set_content(self, kind: SectionKind, value: Optional[str]) -> None:
        setattr(self, PROMPT_FIELDS[kind], value)

    def preset_name(self, kind: SectionKind) -> Optional[str]:
        return self.preset_names.get(kind)

    def set_preset_name(self, kind: SectionKind, name: Optional[str]) -> None:
        if name is None:
            self.preset_names.pop(kind, None)
        else:
            self.preset_names[kind] = name

    @property
    def composed_prompt(self) -> str:
        """Compact one-line preview; see ``compiler.compose_compact``."""

        from .compiler import compose_compact

        return compose_compact(self)

    @property
    def auto_summary(self) -> str:
        from .compiler import auto_summary

        return auto_summary(self)

    @property
    def has_content(self) -> bool:
        values = [self.content(kind) for kind in SectionKind] + [self.additional_info]
        return any(value is not None and value.strip() for value in values)

    @property
    def image_count(self) -> int:
        return len(self.images)

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"id": self.id, "title": self.title, "text": self.text}
        for kind, attribute in PROMPT_FIELDS.items():
            payload[attribute] = self.content(kind)
        payload["additional_info"] = self.additional_info
        payload["preset_names"] = {kind.value: name for kind, name in self.preset_names.items()}
        payload["images"] = [
            {"id": image.id, "reference": image.reference, "created_at": image.created_at} for image in self.images
        ]
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "SavedPrompt":
        """Build a SavedPrompt from a JSON-compatible dict, rejecting non-string section values."""

        if not isinstance(payload, dict):
            raise ValueError("prompt payload must be a dictionary")
        prompt = cls(
            id=str(payload.get("id") or _new_id()),
            title=str(payload.get("title") or ""),
            text=str(payload.get("text") or ""),
            additional_info=_validate_optional_text(payload.get("additional_info"), "additional_info"),
        )
        for kind, attribute in PROMPT_FIELDS.items():
            prompt.set_content(kind, _validate_optional_text(payload.get(attribute), attribute))
        prompt.preset_names.update(parse_preset_names(payload.get("preset_names")))
        prompt.images.extend(parse_images(payload.get("images")))
        return prompt


def parse_preset_names(payload: object) -> Dict[SectionKind, str]:
    """Preset markers keyed by section; blank names are dropped, unknown kinds raise ``ValueError``."""

    markers: Dict[SectionKind, str] = {}
    for raw_kind, name in dict(payload or {}).items():
        if name:
            markers[SectionKind.parse(raw_kind)] = str(name)
    return markers


def parse_images(payload: object) -> List[PromptImage]:
    """Image references given as plain strings or ``{"reference", "id", "created_at"}`` dicts."""

    images: List[PromptImage] = []
    for image in payload or []:
        if isinstance(image, str):
            images.append(PromptImage(reference=image))
        elif isinstance(image, dict):
            images.append(
                PromptImage(
                    reference=str(image.get("reference") or ""),
                    id=str(image.get("id") or _new_id()),
                    created_at=str(image.get("created_at") or ""),
                )
            )
    return images
