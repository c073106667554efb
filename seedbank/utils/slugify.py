#!/usr/bin/env python3
"""
slugify.py
----------
String slugification for comic and chapter natural keys.

Sources frequently omit slugs; the schema validator derives one from the
title instead, so both the comic key and the chapter key stay stable
across runs as long as the title does.

Usage:
    from seedbank.utils.slugify import slugify

    slugify("Solo Leveling: Ragnarök")  # "solo-leveling-ragnarok"
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import re
import unicodedata


def slugify(text: str, max_length: int = 200) -> str:
    """
    Convert text to a URL-safe slug.

    - Lowercase
    - Normalize accents (Ragnarök → ragnarok)
    - Remove apostrophes (hero's → heros)
    - Replace '&' with 'and'
    - Replace any other run of non-alphanumerics with a single hyphen

    Args:
        text: Input text to slugify
        max_length: Maximum slug length (default 200)

    Returns:
        Slug, or "" for empty input

    Examples:
        >>> slugify("The Hero's Return")
        'the-heros-return'
        >>> slugify("Tom & Jerry (2023)")
        'tom-and-jerry-2023'
        >>> slugify("Chapter 12.5")
        'chapter-12-5'
    """
    if not text:
        return ""

    text = unicodedata.normalize("NFKD", str(text))
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()

    text = re.sub(r"['’`]", "", text)
    text = text.replace("&", " and ")
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")

    if len(text) > max_length:
        text = text[:max_length].rstrip("-")

    return text
