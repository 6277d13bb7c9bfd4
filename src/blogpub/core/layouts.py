"""Layout templates: Jinja2 environment, layout inheritance through front matter, URL filters"""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from jinja2 import BaseLoader, Environment, TemplateNotFound, select_autoescape
from markupsafe import Markup, escape

from blogpub.config import Settings
from blogpub.core.parse import split_frontmatter
from blogpub.core.utils.hashing import fingerprint
from blogpub.core.utils.slug import slugify


BUILTIN_LAYOUTS = Path(__file__).resolve().parent.parent / "templates"
LAYOUT_SUFFIX = ".html"


class LayoutError(ValueError):
    """Raised for unknown layouts or circular layout inheritance."""


class LayoutLoader(BaseLoader):
    """Load templates from an ordered search path, stripping layout front matter."""

    def __init__(self, search_path: list[Path]):
        self.search_path = [p for p in search_path if p.is_dir()]

    def find(self, template: str) -> Optional[Path]:
        for base in self.search_path:
            candidate = base / template
            if candidate.is_file():
                return candidate
        return None

    def get_source(self, environment, template):
        path = self.find(template)
        if path is None:
            raise TemplateNotFound(template)
        _, body, _ = split_frontmatter(path.read_text(encoding="utf-8"))
        mtime = path.stat().st_mtime
        return body, str(path), lambda: path.exists() and path.stat().st_mtime == mtime

    def list_templates(self) -> list[str]:
        return sorted({p.name for base in self.search_path for p in base.iterdir() if p.is_file()})


def date_to_xmlschema(value: datetime) -> str:
    """ISO 8601 timestamp; naive datetimes are treated as UTC."""
    return value.strftime("%Y-%m-%dT%H:%M:%S") + "+00:00"


def date_to_string(value: datetime) -> str:
    return value.strftime("%d %b %Y")


def xml_escape(value: Any) -> Markup:
    """Escape a value (even one already marked safe) for embedding in XML text."""
    return escape(str(value))


class Layouts:
    """Named page layouts: site _layouts/ first, then the built-in set."""

    def __init__(self, site_dir: Optional[Path], settings: Settings):
        dirs = [site_dir] if site_dir else []
        self.loader = LayoutLoader(dirs + [BUILTIN_LAYOUTS])
        self.settings = settings
        self.env = Environment(
            loader=self.loader,
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._register_filters()

    def _register_filters(self) -> None:
        self.env.filters["date_to_xmlschema"] = date_to_xmlschema
        self.env.filters["date_to_string"] = date_to_string
        self.env.filters["slugify"] = slugify
        self.env.filters["xml_escape"] = xml_escape
        self.env.filters["relative_url"] = self.relative_url
        self.env.filters["absolute_url"] = self.absolute_url

    def relative_url(self, path: str) -> str:
        base = self.settings.baseurl.rstrip("/")
        return f"{base}/{str(path).lstrip('/')}"

    def absolute_url(self, path: str) -> str:
        return self.settings.url.rstrip("/") + self.relative_url(path)

    def available(self) -> set[str]:
        """Names usable in a front matter 'layout' key."""
        return {
            name[: -len(LAYOUT_SUFFIX)]
            for name in self.loader.list_templates()
            if name.endswith(LAYOUT_SUFFIX)
        }

    def _path(self, name: str) -> Path:
        path = self.loader.find(name + LAYOUT_SUFFIX)
        if path is None:
            raise LayoutError(f"Unknown layout '{name}'")
        return path

    def parent(self, name: str) -> Optional[str]:
        """The layout this one is wrapped in, from its own front matter."""
        fm, _, _ = split_frontmatter(self._path(name).read_text(encoding="utf-8"))
        parent = (fm or {}).get("layout")
        return str(parent) if parent else None

    def chain(self, name: str) -> list[str]:
        """Layouts applied innermost first, e.g. ['post', 'default']."""
        chain: list[str] = []
        current: Optional[str] = name
        while current:
            if current in chain:
                raise LayoutError(f"Circular layout inheritance: {' -> '.join(chain + [current])}")
            chain.append(current)
            current = self.parent(current)
        return chain

    def fingerprint(self, name: str) -> str:
        """Digest of every template source in the chain, for incremental builds."""
        return fingerprint(*[self._path(n).read_text(encoding="utf-8") for n in self.chain(name)])

    def render(self, name: str, content: str, **context: Any) -> str:
        """Wrap content in layout `name` and each of its parents."""
        for layout in self.chain(name):
            template = self.env.get_template(layout + LAYOUT_SUFFIX)
            content = template.render(content=Markup(content), **context)
        return content

    def render_template(self, template_name: str, **context: Any) -> str:
        """Render a non-layout template such as feed.xml."""
        return self.env.get_template(template_name).render(**context)
