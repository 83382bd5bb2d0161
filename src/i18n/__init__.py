"""
Translation helpers for the update engine.

Catalogs are looked up as ``<locale dir>/<language>/LC_MESSAGES/update_engine.mo``.
The locale directory defaults to ``locales`` beside this package and can be
moved with UPDATE_ENGINE_LOCALE_DIR. Region-qualified languages such as
``de_DE.UTF-8`` fall back to ``de``; with no catalog at all messages stay in
English.
"""

import gettext
import os
from typing import Dict, List, Optional

DOMAIN = "update_engine"
DEFAULT_LANGUAGE = "en"
LOCALE_DIR_ENV = "UPDATE_ENGINE_LOCALE_DIR"

_current_language = DEFAULT_LANGUAGE
_catalogs: Dict[str, gettext.NullTranslations] = {}


def normalize_language(language: Optional[str]) -> str:
    """Strip encoding and modifier suffixes: ``pt_BR.UTF-8@euro`` -> ``pt_BR``."""
    if not language:
        return DEFAULT_LANGUAGE
    return language.split(".", 1)[0].split("@", 1)[0].replace("-", "_") or DEFAULT_LANGUAGE


def _candidates(language: str) -> List[str]:
    if "_" in language:
        return [language, language.split("_", 1)[0]]
    return [language]


def _locale_dir() -> str:
    return os.environ.get(LOCALE_DIR_ENV) or os.path.join(
        os.path.dirname(__file__), "locales"
    )


def set_language(language: Optional[str]) -> None:
    """Select the language used by ``_`` when none is passed explicitly."""
    global _current_language  # pylint: disable=global-statement
    _current_language = normalize_language(language)


def get_language() -> str:
    return _current_language


def get_translation(language: Optional[str] = None) -> gettext.NullTranslations:
    """Load (once) the catalog for ``language``, or a pass-through one."""
    language = normalize_language(language or _current_language)
    if language not in _catalogs:
        _catalogs[language] = gettext.translation(
            DOMAIN, _locale_dir(), _candidates(language), fallback=True
        )
    return _catalogs[language]


def _(message: str, language: Optional[str] = None) -> str:
    """Translate a message."""
    return get_translation(language).gettext(message)


def ngettext(
    singular: str, plural: str, count: int, language: Optional[str] = None
) -> str:
    """Translate a message with plural forms."""
    return get_translation(language).ngettext(singular, plural, count)
