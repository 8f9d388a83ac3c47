from __future__ import annotations

import gettext
import os
from pathlib import Path
from typing import Optional, Protocol


class Translator(Protocol):
    def gettext(self, message: str) -> str:
        ...


_translator: Translator = gettext.NullTranslations()
_current_language: Optional[str] = None
_language_source: Optional[str] = None  # "explicit" or "auto"


def _locale_dir() -> str:
    # fprov/utils/i18n.py -> fprov/locale
    return str(Path(__file__).resolve().parents[1] / "locale")


def set_language(lang: Optional[str]) -> None:
    """Install the language for CLI messages.

    If ``lang`` is None, detect from env. Falls back to English.
    """
    global _translator, _current_language, _language_source

    source = "explicit" if lang else "auto"
    if not lang:
        lang = detect_language()

    _translator = gettext.translation(
        domain="fprov",
        localedir=_locale_dir(),
        languages=[lang],
        fallback=True,
    )
    _current_language = lang
    _language_source = source


def _(message: str) -> str:
    """Translate a message using the currently installed translator."""
    return _translator.gettext(message)


def current_language() -> Optional[str]:
    """Return the currently installed language code, if any."""
    return _current_language


def language_source() -> Optional[str]:
    """Return how the current language was chosen ("explicit" or "auto")."""
    return _language_source


def detect_language() -> str:
    """Return preferred language code.

    Priority:
    - FPROV_LANG
    - LANGUAGE / LC_ALL / LC_MESSAGES / LANG (first two-letter code)
    - "en"
    """
    lang = os.environ.get("FPROV_LANG")
    if lang:
        return _normalize_lang(lang)

    for key in ("LANGUAGE", "LC_ALL", "LC_MESSAGES", "LANG"):
        val = os.environ.get(key)
        if val:
            return _normalize_lang(val)
    return "en"


def _normalize_lang(value: str) -> str:
    # e.g., "ko_KR.UTF-8:en_US" -> "ko"
    token = value.split(":", 1)[0]
    token = token.split(".", 1)[0]
    token = token.replace("-", "_")
    return token.split("_", 1)[0].lower() or "en"
