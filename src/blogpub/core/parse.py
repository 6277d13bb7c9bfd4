"""Content discovery, front matter extraction, and filename date parsing"""

import re
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from blogpub.config import Settings
from blogpub.core.models import Article, ArticleKind, FrontMatter
from blogpub.core.utils.hashing import sha256
from blogpub.core.utils.slug import slugify


FRONTMATTER_RE = re.compile(r'^---[ \t]*\r?\n(.*?)(?:\r?\n)?^---[ \t]*(?:\r?\n|\Z)', re.DOTALL | re.MULTILINE)
POST_NAME_RE = re.compile(r'^(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})-(?P<title>.+)$')
MD_EXTENSIONS = {'.md', '.markdown'}


def split_frontmatter(text: str) -> tuple[Optional[dict[str, Any]], str, int]:
    """Return (frontmatter_dict or None, body, body_line).

    None means the file has no front matter block at all; an empty block
    yields {}. body_line is the 1-based line number where the body starts.
    """
    text = text.lstrip('\ufeff')
    m = FRONTMATTER_RE.match(text)
    if not m:
        return None, text, 1
    try:
        fm = yaml.safe_load(m.group(1)) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML frontmatter: {e}") from e
    if not isinstance(fm, dict):
        raise ValueError(f"Invalid YAML frontmatter: expected a mapping, got {type(fm).__name__}")
    return fm, text[m.end():], m.group(0).count('\n') + 1


def parse_post_name(stem: str) -> Optional[tuple[datetime, str]]:
    """Split 'YYYY-MM-DD-title' into (date, title slug); None if the name has no valid date."""
    m = POST_NAME_RE.match(stem)
    if not m:
        return None
    try:
        dt = datetime(int(m['year']), int(m['month']), int(m['day']))
    except ValueError:
        return None
    return dt, m['title']


def _is_hidden(rel: Path) -> bool:
    return any(part.startswith(('_', '.')) for part in rel.parts)


def _is_excluded(rel: Path, exclude: list[str]) -> bool:
    return any(rel == Path(e) or Path(e) in rel.parents for e in exclude)


def discover_files(root: Path, settings: Settings, include_drafts: bool = False) -> list[tuple[Path, ArticleKind]]:
    """Return sorted (path, kind) pairs for posts, optional drafts, and pages under root."""
    found: list[tuple[Path, ArticleKind]] = []
    dirs = [(settings.posts_dir, ArticleKind.post)]
    if include_drafts:
        dirs.append((settings.drafts_dir, ArticleKind.draft))
    for name, kind in dirs:
        base = root / name
        if base.is_dir():
            found.extend((p, kind) for p in base.rglob('*') if p.is_file() and p.suffix in MD_EXTENSIONS)

    for p in root.rglob('*'):
        rel = p.relative_to(root)
        if not p.is_file() or p.suffix not in MD_EXTENSIONS:
            continue
        if _is_hidden(rel) or _is_excluded(rel, settings.exclude) or _is_output(rel, settings):
            continue
        found.append((p, ArticleKind.page))
    return sorted(found, key=lambda item: str(item[0]))


def discover_static(root: Path, settings: Settings) -> list[Path]:
    """Return files copied verbatim into the output (not content, not hidden, not excluded)."""
    static = []
    for p in root.rglob('*'):
        rel = p.relative_to(root)
        if not p.is_file() or p.suffix in MD_EXTENSIONS or rel.name == '_config.yml':
            continue
        if _is_hidden(rel) or _is_excluded(rel, settings.exclude) or _is_output(rel, settings):
            continue
        static.append(p)
    return sorted(static)


def _is_output(rel: Path, settings: Settings) -> bool:
    out = Path(settings.output_dir)
    return not out.is_absolute() and (rel == out or out in rel.parents)


def parse_file(path: Path, root: Path, kind: ArticleKind = ArticleKind.page) -> Article:
    """Parse a single content file into an Article."""
    raw = path.read_text(encoding='utf-8')
    fm, body, body_line = split_frontmatter(raw)
    try:
        front_matter = FrontMatter.model_validate(fm or {})
    except ValidationError as e:
        raise ValueError(f"Invalid frontmatter: {e}") from e

    stem = path.stem
    date = None
    if kind == ArticleKind.post and (parsed := parse_post_name(stem)):
        date, stem = parsed
    date = front_matter.date or date or datetime.fromtimestamp(path.stat().st_mtime).replace(microsecond=0)

    return Article(
        path=path.relative_to(root),
        kind=kind,
        slug=front_matter.slug or slugify(stem),
        date=date,
        front_matter=front_matter,
        raw=raw,
        body=body,
        body_line=body_line,
        hash=sha256(raw),
    )


def parse_site(root: Path, settings: Settings, include_drafts: bool = False) -> list[Article]:
    """Parse every content file under root; unpublished articles are dropped."""
    articles = []
    for path, kind in discover_files(root, settings, include_drafts):
        try:
            article = parse_file(path, root, kind)
        except Exception as e:
            raise RuntimeError(f"Failed to parse {path}: {e}") from e
        if article.front_matter.published:
            articles.append(article)
    return articles
