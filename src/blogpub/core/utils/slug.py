"""Slug generation for post URLs, tag pages, and heading anchors"""

from __future__ import annotations

import re


def slugify(text: str) -> str:
    """Convert text to a lowercase, hyphen-separated URL-safe slug."""
    text = str(text).lower()
    text = re.sub(r'[^\w\s-]', '', text)
    text = re.sub(r'[\s_]+', '-', text)
    return re.sub(r'-+', '-', text).strip('-')


def titleize(slug: str) -> str:
    """Turn a slug back into a display title ('hello-world' -> 'Hello World')."""
    return ' '.join(w.capitalize() for w in re.split(r'[-_\s]+', slug) if w)


def unique_slug(text: str, seen: dict[str, int]) -> str:
    """Slugify text, suffixing -1, -2, ... until the result is not in seen."""
    base = slugify(text) or 'section'
    count = seen.get(base, 0)
    candidate = base if count == 0 else f"{base}-{count}"
    while candidate in seen:
        count += 1
        candidate = f"{base}-{count}"
    seen[base] = count + 1
    seen.setdefault(candidate, 1)
    return candidate
