"""
Slug generation for gallery URLs.
Titles on the site are mostly Russian, so Cyrillic is transliterated
before everything outside [a-z0-9] is dropped.
"""
import re
import unicodedata
from typing import Optional

# Russian letters to Latin, close to GOST 7.79-2000 system B without diacritics
CYRILLIC_TO_LATIN = {
    "а": "a", "б": "b", "в": "v", "г": "g", "д": "d", "е": "e", "ё": "yo",
    "ж": "zh", "з": "z", "и": "i", "й": "y", "к": "k", "л": "l", "м": "m",
    "н": "n", "о": "o", "п": "p", "р": "r", "с": "s", "т": "t", "у": "u",
    "ф": "f", "х": "kh", "ц": "ts", "ч": "ch", "ш": "sh", "щ": "shch",
    "ъ": "", "ы": "y", "ь": "", "э": "e", "ю": "yu", "я": "ya",
    # Ukrainian and Belarusian letters that show up in place names
    "і": "i", "ї": "yi", "є": "ye", "ґ": "g", "ў": "u",
}

_DISALLOWED = re.compile(r"[^a-z0-9\s_-]")
_SEPARATORS = re.compile(r"[\s_-]+")


def transliterate(text: str) -> str:
    """Replace Cyrillic letters with Latin and fold accents to plain ASCII."""
    text = "".join(CYRILLIC_TO_LATIN.get(char, char) for char in text)
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def slugify(text: str, max_length: Optional[int] = None) -> str:
    """
    Derive a URL-safe slug from free text.

    The result contains only ``[a-z0-9-]`` with no leading, trailing or
    repeated hyphens. It is empty when nothing in the text maps to an ASCII
    letter or digit; callers decide what to do in that case. With
    ``max_length`` the slug is cut to at most that many characters.

    >>> slugify("Ночные Трансферы")
    'nochnye-transfery'
    >>> slugify("  Airport -- Transfers_2024 ")
    'airport-transfers-2024'
    """
    text = unicodedata.normalize("NFKC", text or "").lower().strip()
    text = transliterate(text)
    text = _DISALLOWED.sub("", text)
    text = _SEPARATORS.sub("-", text).strip("-")
    if max_length is not None:
        text = text[:max_length].rstrip("-")
    return text
