"""Article and front matter models for the parse and render pipeline"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from blogpub.core.utils.slug import titleize


DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M %z",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
)


def coerce_datetime(value) -> datetime:
    """Parse a front matter date into a naive datetime; wall-clock time is kept."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=None)
        except ValueError:
            continue
    raise ValueError(f"Unrecognized date: {text!r}")


class ArticleKind(str, Enum):
    """Where an article came from, which decides its default layout and URL scheme"""
    post = "post"
    draft = "draft"
    page = "page"


class FrontMatter(BaseModel):
    """Recognized front matter keys; unknown keys are kept as extras for templates."""
    model_config = ConfigDict(extra="allow")

    layout:     Optional[str] = None
    title:      Optional[str] = None
    tags:       list[str] = []
    categories: list[str] = []
    date:       Optional[datetime] = None
    slug:       Optional[str] = None
    permalink:  Optional[str] = None
    published:  bool = True
    toc:        bool = False

    @field_validator("tags", "categories", mode="before")
    @classmethod
    def _split_words(cls, value):
        """Accept 'a b c' strings as well as YAML lists."""
        if value is None:
            return []
        if isinstance(value, str):
            return value.split()
        return [str(v) for v in value]

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value):
        return None if value is None else coerce_datetime(value)

    @field_validator("layout", "title", "slug", mode="before")
    @classmethod
    def _stringify(cls, value):
        return None if value is None else str(value)


@dataclass
class Article:
    """A parsed content file; immutable input to rendering."""
    path:         Path            # source path relative to the site root
    kind:         ArticleKind
    slug:         str
    date:         datetime
    front_matter: FrontMatter
    raw:          str             # full file content (includes front matter)
    body:         str             # body only (front matter stripped)
    body_line:    int             # 1-based source line where body starts
    hash:         str
    url:          str = ""        # set during site assembly

    @property
    def layout(self) -> str:
        if self.front_matter.layout:
            return self.front_matter.layout
        return "page" if self.kind == ArticleKind.page else "post"

    @property
    def title(self) -> str:
        return self.front_matter.title or titleize(self.slug)

    @property
    def tags(self) -> list[str]:
        return self.front_matter.tags

    @property
    def name(self) -> str:
        """Filename stem as used by post_url references (e.g. '2020-01-05-hello')."""
        return self.path.stem


@dataclass
class TocEntry:
    """A heading in an article's table of contents."""
    level:    int
    text:     str
    anchor:   str
    children: list["TocEntry"] = field(default_factory=list)


@dataclass
class Rendered:
    """Rendering result for one article body."""
    html:     str
    toc:      list[TocEntry]
    toc_html: str = ""


class LintSeverity(str, Enum):
    error = "error"
    warning = "warning"


class LintIssue(BaseModel):
    """One structural problem found in a content file or the manifest."""
    path:     str
    line:     int = 0
    rule:     str
    message:  str
    severity: LintSeverity = LintSeverity.error

    def __str__(self) -> str:
        loc = f"{self.path}:{self.line}" if self.line else self.path
        return f"{loc}: {self.severity.value} [{self.rule}] {self.message}"


class BuildReport(BaseModel):
    """Summary of a build run."""
    counts:       dict[str, int] = {"created": 0, "updated": 0, "unchanged": 0, "removed": 0}
    changes:      list[tuple[str, str]] = []    # (status, url) for changed or removed articles
    generated:    list[str] = []                # home, tag, and feed outputs
    static_files: int = 0
    output_dir:   str = ""
