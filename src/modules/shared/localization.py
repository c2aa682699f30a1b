"""Resolve localized season names from a language → text mapping."""

from __future__ import annotations

from typing import Mapping, Optional

from src.core.config.manager import ConfigManager


def normalize_language(lang: Optional[str]) -> Optional[str]:
    """``"vi-VN"`` → ``"vi"``."""
    if not lang:
        return None
    return lang.strip().replace("_", "-").split("-", 1)[0].lower() or None


def resolve_translation(
    translations: Optional[Mapping[str, str]],
    lang: Optional[str] = None,
    fallback: Optional[str] = None,
) -> Optional[str]:
    """
    Pick the text for ``lang``, falling back to the configured default
    language, then to any available translation.
    """
    if not translations:
        return fallback

    requested = normalize_language(lang)
    if requested and translations.get(requested):
        return translations[requested]

    default_lang = normalize_language(ConfigManager.get("core.default_language", "vi"))
    if default_lang and translations.get(default_lang):
        return translations[default_lang]

    for text in translations.values():
        if text:
            return text
    return fallback
