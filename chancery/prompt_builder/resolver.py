"""Three-tier default resolution for prompt sections.

A field's effective value is the first non-empty candidate of: the prompt's own
text, the owning entity's override (character or scene defaults), and the
global default. Whitespace-only text counts as absent.
"""

from __future__ import annotations

from typing import Mapping, Optional, Union

from .models import DefaultKey, SectionKind

FieldKey = Union[SectionKind, DefaultKey]
DefaultsMap = Mapping[DefaultKey, str]


def non_empty(value: object) -> Optional[str]:
    """Return the trimmed string, or ``None`` for non-strings and blank text."""

    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _lookup(defaults: Optional[DefaultsMap], key: DefaultKey) -> Optional[str]:
    if not defaults:
        return None
    return non_empty(defaults.get(key))


def effective_default(
    key: FieldKey,
    entity_overrides: Optional[DefaultsMap],
    global_defaults: Optional[DefaultsMap],
) -> Optional[str]:
    """Entity override if set, else the global default."""

    default_key = DefaultKey.parse(key)
    return _lookup(entity_overrides, default_key) or _lookup(global_defaults, default_key)


def resolve_default(
    key: FieldKey,
    prompt_value: Optional[str],
    entity_overrides: Optional[DefaultsMap],
    global_defaults: Optional[DefaultsMap],
) -> Optional[str]:
    """Resolve the effective text for one field.

    Returns ``None`` (never ``""``) when the prompt value, entity override, and
    global default are all absent or blank.
    """

    return non_empty(prompt_value) or effective_default(key, entity_overrides, global_defaults)
