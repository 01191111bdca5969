"""
String helpers shared by the cleaner and the extractor.
"""

import re

_WORD_JOINER = re.compile("\u2060")
_SINGLE_QUOTES = re.compile("[\u2018\u2019]")
_DOUBLE_QUOTES = re.compile("[\u201c\u201d]")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_WHITESPACE = re.compile(r"\s+")


def clean_string(value: str) -> str:
    """Remove invisible word joiners and straighten curly quotes."""
    value = _WORD_JOINER.sub("", value)
    value = _SINGLE_QUOTES.sub("'", value)
    return _DOUBLE_QUOTES.sub('"', value)


def slugify(name: str) -> str:
    """Standardize a display name into a filename-safe token.

    The slug alone may collide; callers append the document id.

    >>> slugify("O'Brien's Axe")
    'obriens-axe'
    """
    slug = name.lower().replace("'", "")
    slug = _NON_ALNUM.sub(" ", slug).strip()
    return _WHITESPACE.sub("-", slug)
