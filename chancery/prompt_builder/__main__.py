"""CLI entrypoint for Prompt Builder.

- Purpose: load a character payload, compose one of its saved prompts, and emit the result as JSON.
- Assumptions: character JSON is well-formed UTF-8; settings come from the usual settings file.
- Side effects: with ``--publish`` the prompt bundle is written to disk via UIIntegrationHooks.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Iterable

from chancery.character_studio.models import CharacterProfile, CharacterStudioError
from chancery.config_service.settings_service import (
    DEFAULT_SETTINGS_PATH,
    ConfigError,
    build_context,
    load_settings,
)

from .services import PromptComposerService, UIIntegrationHooks, generator_url


def _load_character(path: Path) -> CharacterProfile:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SystemExit(f"Could not read character file {path}: {exc}") from exc
    try:
        return CharacterProfile.from_dict(payload)
    except CharacterStudioError as exc:
        raise SystemExit(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compose a character's saved prompt into generator text")
    parser.add_argument("--character", type=Path, required=True, help="Path to a character JSON file")
    parser.add_argument("--prompt", help="Title or id of the saved prompt; defaults to the first one")
    parser.add_argument("--mode", choices=["labeled", "compact"], default="labeled")
    parser.add_argument("--settings", default=DEFAULT_SETTINGS_PATH, help="Path to the JSON/YAML settings file")
    parser.add_argument("--publish", action="store_true", help="Write the prompt bundle for the generator hand-off")
    return parser


def main(argv: Iterable[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    character = _load_character(args.character)
    if args.prompt:
        prompt = character.prompt_by_id_or_title(args.prompt)
        if prompt is None:
            raise SystemExit(f"No prompt named {args.prompt!r} for {character.name or character.id}")
    elif character.prompts:
        prompt = character.prompts[0]
    else:
        raise SystemExit(f"{character.name or character.id} has no saved prompts")

    try:
        context = build_context(load_settings(args.settings).data)
    except ConfigError as exc:
        raise SystemExit(str(exc)) from exc

    service = PromptComposerService(context)
    service.refresh_markers(prompt)
    if args.mode == "compact":
        composed = service.compose_compact(prompt)
    else:
        composed = service.compose(character, prompt)
    slug = service.generator_slug(character)

    payload = {
        "character": character.name,
        "prompt_id": prompt.id,
        "title": prompt.title,
        "mode": args.mode,
        "prompt": composed,
        "preset_markers": {kind.value: name for kind, name in prompt.preset_names.items()},
        "generator_slug": slug,
        "generator_url": generator_url(slug),
    }

    if args.publish:
        hooks = UIIntegrationHooks()
        preflight_error = hooks.preflight_prompt(composed)
        if preflight_error:
            raise SystemExit(preflight_error)
        payload = {**payload, **hooks.publish_prompt(composed, slug)}

    print(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main()
