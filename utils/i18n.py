import logging
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("ko", "en")
DEFAULT_LANGUAGE = "ko"
LOCALES_DIR = Path(__file__).resolve().parent.parent / "locales"

_PARAM_PATTERN = re.compile(r"\{\{(\w+)\}\}")
_locales: dict[str, dict] | None = None


def load_locales(locales_dir: Path = LOCALES_DIR) -> dict[str, dict]:
    """Loads <lang>.yaml for every supported language that has a file."""
    locales = {}
    for lang in SUPPORTED_LANGUAGES:
        path = locales_dir / f"{lang}.yaml"
        if not path.exists():
            logger.warning(f"Locale file missing: {path}")
            continue
        with open(path, encoding="utf-8") as f:
            locales[lang] = yaml.safe_load(f) or {}
    return locales


def _get_locales() -> dict[str, dict]:
    global _locales
    if _locales is None:
        _locales = load_locales()
    return _locales


def _get_nested(data: dict | None, key: str) -> Any:
    for part in key.split("."):
        if not isinstance(data, dict):
            return None
        data = data.get(part)
    return data


def resolve_language(*candidates: str | None, default: str = DEFAULT_LANGUAGE) -> str:
    """First supported language among the candidates, else the default."""
    for lang in candidates:
        if lang in SUPPORTED_LANGUAGES:
            return lang
    return default if default in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE


def translate(lang: str, key: str, **params) -> str:
    """
    Looks up a dotted key, falling back to the default language and then to
    the key itself. {{name}} placeholders are replaced from params.
    """
    locales = _get_locales()
    text = _get_nested(locales.get(lang), key)
    if not isinstance(text, str):
        text = _get_nested(locales.get(DEFAULT_LANGUAGE), key)
    if not isinstance(text, str):
        return key
    return _PARAM_PATTERN.sub(lambda m: str(params.get(m.group(1), "")), text)
