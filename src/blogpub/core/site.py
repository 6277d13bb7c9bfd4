"""Site assembly: permalinks, post ordering, previous/next links, and the tag index"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Optional

from blogpub.config import Settings
from blogpub.core.models import Article, ArticleKind
from blogpub.core.utils.slug import slugify


PERMALINK_STYLES = {
    "date":    "/:categories/:year/:month/:day/:title:output_ext",
    "pretty":  "/:categories/:year/:month/:day/:title/",
    "ordinal": "/:categories/:year/:y_day/:title:output_ext",
    "none":    "/:categories/:title:output_ext",
}
PLACEHOLDER_RE = re.compile(r':(categories|year|month|day|i_month|i_day|y_day|title|slug|output_ext)')
OUTPUT_EXT = ".html"


def expand_permalink(pattern: str, article: Article) -> str:
    """Fill a permalink pattern's placeholders from an article; empty segments collapse."""
    pattern = PERMALINK_STYLES.get(pattern, pattern)
    d = article.date
    values = {
        "categories": "/".join(slugify(c) for c in article.front_matter.categories),
        "year":       f"{d.year:04d}",
        "month":      f"{d.month:02d}",
        "day":        f"{d.day:02d}",
        "i_month":    str(d.month),
        "i_day":      str(d.day),
        "y_day":      f"{d.timetuple().tm_yday:03d}",
        "title":      article.slug,
        "slug":       article.slug,
        "output_ext": OUTPUT_EXT,
    }
    url = PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], pattern)
    url = re.sub(r'/{2,}', '/', url)
    return url if url.startswith('/') else '/' + url


def page_url(article: Article) -> str:
    """URL for a page: its relative path with .html, and index files mapping to their directory."""
    rel = PurePosixPath(article.path.as_posix())
    if rel.stem == "index":
        parent = rel.parent.as_posix()
        return "/" if parent == "." else f"/{parent}/"
    return "/" + rel.with_suffix(OUTPUT_EXT).as_posix()


def permalink(article: Article, settings: Settings) -> str:
    if article.front_matter.permalink:
        return expand_permalink(article.front_matter.permalink, article)
    if article.kind == ArticleKind.page:
        return page_url(article)
    return expand_permalink(settings.permalink, article)


def output_path(url: str) -> Path:
    """Output file, relative to the output dir, that serves url."""
    rel = url.lstrip("/")
    if not rel or rel.endswith("/"):
        return Path(rel) / "index.html"
    if not PurePosixPath(rel).suffix:
        return Path(rel + OUTPUT_EXT)
    return Path(rel)


def tag_url(tag: str) -> str:
    return f"/tags/{slugify(tag)}/"


@dataclass
class Site:
    """All articles of a build with derived ordering and indexes."""
    settings: Settings
    posts:    list[Article] = field(default_factory=list)   # posts and drafts, newest first
    pages:    list[Article] = field(default_factory=list)
    tags:     dict[str, list[Article]] = field(default_factory=dict)

    @classmethod
    def assemble(cls, articles: list[Article], settings: Settings) -> "Site":
        for article in articles:
            article.url = permalink(article, settings)
        posts = sorted(
            (a for a in articles if a.kind != ArticleKind.page),
            key=lambda a: (a.date, a.slug),
            reverse=True,
        )
        pages = sorted((a for a in articles if a.kind == ArticleKind.page), key=lambda a: a.url)

        tags: dict[str, list[Article]] = {}
        for post in posts:
            for tag in post.tags:
                tags.setdefault(tag, []).append(post)
        return cls(settings=settings, posts=posts, pages=pages, tags=dict(sorted(tags.items())))

    @property
    def articles(self) -> list[Article]:
        return self.posts + self.pages

    def post_url(self, name: str) -> Optional[str]:
        """Resolve a post_url reference ('2020-01-05-hello', optionally with a subdirectory)."""
        name = name.rsplit("/", 1)[-1]
        for post in self.posts:
            if post.name == name:
                return post.url
        return None

    def neighbours(self, article: Article) -> tuple[Optional[Article], Optional[Article]]:
        """(previous, next): the older and the newer post; (None, None) for pages."""
        if article.kind == ArticleKind.page:
            return None, None
        i = self.posts.index(article)
        older = self.posts[i + 1] if i + 1 < len(self.posts) else None
        newer = self.posts[i - 1] if i > 0 else None
        return older, newer

    def has_home_page(self) -> bool:
        return any(p.url == "/" for p in self.pages)

    def duplicate_urls(self) -> dict[str, list[Article]]:
        """URLs claimed by more than one article."""
        seen: dict[str, list[Article]] = {}
        for article in self.articles:
            seen.setdefault(article.url, []).append(article)
        return {url: items for url, items in seen.items() if len(items) > 1}
