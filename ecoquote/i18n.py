from __future__ import annotations

from typing import Dict, Optional, Union

BASE_LANGUAGE = "es"

LocalizedText = Union[str, Dict[str, str], None]


def resolve_text(value: LocalizedText, lang: Optional[str]) -> str:
    """Return the display string of ``value`` in ``lang``.

    Lookup order: plain string as-is, exact tag, tag without region
    (``en-US`` -> ``en``), base language, first available entry, ``""``.
    """
    if not value:
        return ""
    if isinstance(value, str):
        return value

    lang = lang or BASE_LANGUAGE
    if value.get(lang):
        return value[lang]
    short = lang.split("-")[0]
    if value.get(short):
        return value[short]
    if value.get(BASE_LANGUAGE):
        return value[BASE_LANGUAGE]
    for text in value.values():
        # first key wins, even when empty
        return text or ""
    return ""
