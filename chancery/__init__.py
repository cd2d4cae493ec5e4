"""
Chancery - character and prompt organizer.

This package contains:
- prompt_builder: section models, default resolution, prompt composition and preset matching.
- character_studio: characters, scenes, and the per-scene character settings that feed prompts.
- config_service: the settings store holding global defaults, presets, and the generator slug.
"""
