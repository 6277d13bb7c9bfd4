"""Build orchestration: parse, render, apply layouts, write pages, feed, and static files"""

import logging
import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from sqlmodel import Session

from blogpub.config import Settings
from blogpub.core.feed import render_feed
from blogpub.core.layouts import Layouts
from blogpub.core.manifest import Manifest, current_platform, load_manifest
from blogpub.core.models import Article, BuildReport
from blogpub.core.parse import discover_static, parse_site
from blogpub.core.plugins import FEED_PLUGIN, enabled_plugins, version_conflicts
from blogpub.core.render import make_parser, render_markdown
from blogpub.core.site import Site, output_path, tag_url
from blogpub.core.utils.hashing import fingerprint
from blogpub.crud.records import get_by_path, record_build, remove_missing, replace_generated


logger = logging.getLogger(__name__)

EXCERPT_RE = re.compile(r'<p>.*?</p>', re.DOTALL)
# Settings that never change rendered output
VOLATILE_SETTINGS = {"incremental", "db_url", "show_drafts", "platform"}


def resolve_output_dir(source: Path, settings: Settings) -> Path:
    out = Path(settings.output_dir)
    return out if out.is_absolute() else source / out


def load_site_manifest(source: Path, settings: Settings) -> Optional[Manifest]:
    """Parse the site's manifest if it has one. RuntimeError names the file on parse failure."""
    path = source / settings.manifest_file
    if not path.is_file():
        return None
    try:
        return load_manifest(path)
    except ValueError as e:
        raise RuntimeError(f"Failed to parse manifest {path}: {e}") from e


def _summary(article: Article, content: Optional[str] = None) -> dict[str, Any]:
    """Template-facing view of an article as listed by other pages."""
    data = {
        "title": article.title,
        "url": article.url,
        "date": article.date,
        "tags": article.tags,
        "slug": article.slug,
    }
    if content is not None:
        m = EXCERPT_RE.search(content)
        data["content"] = content
        data["excerpt"] = m.group(0) if m else ""
    return data


def _page_context(article: Article, content: str, toc: str, site: Site) -> dict[str, Any]:
    older, newer = site.neighbours(article)
    page = article.front_matter.model_dump()
    page.update(
        title=article.title,
        layout=article.layout,
        url=article.url,
        date=article.date,
        slug=article.slug,
        path=article.path.as_posix(),
        kind=article.kind.value,
        toc=toc,
        content=content,
        previous=_summary(older) if older else None,
        next=_summary(newer) if newer else None,
    )
    return page


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _copy_static(source: Path, output_dir: Path, settings: Settings) -> int:
    files = discover_static(source, settings)
    for f in files:
        dest = output_dir / f.relative_to(source)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(f, dest)
    return len(files)


def _remove(path: Path, output_dir: Path) -> None:
    """Delete an output file and the directories it leaves empty inside output_dir."""
    path.unlink(missing_ok=True)
    for parent in path.parents:
        if parent == output_dir or output_dir not in parent.parents:
            break
        if parent.is_dir():
            if any(parent.iterdir()):
                break
            parent.rmdir()


def _write_generated(
    output_dir: Path,
    site: Site,
    layouts: Layouts,
    site_context: dict[str, Any],
    settings: Settings,
    feed_enabled: bool,
    ) -> dict[str, str]:
    """Write the home page, tag pages, and feed; return {output file: url} for each."""
    generated: dict[str, str] = {}

    def emit(url: str, path: Path, text: str) -> None:
        _write(path, text)
        generated[str(path)] = url

    if not site.has_home_page():
        emit("/", output_dir / "index.html", layouts.render(
            "home", "", page={"title": None, "url": "/"}, site=site_context,
        ))
    for tag, posts in site.tags.items():
        url = tag_url(tag)
        emit(url, output_dir / output_path(url), layouts.render(
            "tag", "", page={"title": tag, "url": url, "tag": tag, "posts": [_summary(p) for p in posts]},
            site=site_context,
        ))
    if site.tags:
        emit("/tags/", output_dir / "tags" / "index.html", layouts.render(
            "tags", "", page={"title": "Tags", "url": "/tags/"}, site=site_context,
        ))
    if feed_enabled:
        emit(site_context["feed_url"], output_dir / settings.feed_path.lstrip("/"), render_feed(
            layouts, site_context, site_context["posts"], settings.feed_limit,
        ))
    return generated


def run_build(
    source: Path,
    settings: Settings,
    engine,
    include_drafts: Optional[bool] = None,
    ) -> BuildReport:
    """Render the site under source into settings.output_dir.

    Every article is fingerprinted (raw text, layout chain, output-affecting
    settings, URL, neighbour links) and recorded in the build state store.
    With settings.incremental, articles with an unchanged fingerprint and an
    existing output file are not re-rendered. Outputs of articles that no
    longer exist, and generated pages the site no longer has, are deleted.
    """
    source = Path(source)
    output_dir = resolve_output_dir(source, settings)
    drafts = settings.show_drafts if include_drafts is None else include_drafts
    platform = settings.platform or current_platform()

    manifest = load_site_manifest(source, settings)
    if manifest is not None:
        for entry, version in version_conflicts(manifest, platform):
            logger.warning(
                "%s: requirement '%s' excludes the supported version %s",
                entry.name, entry.requirement_text(), version,
            )
    plugins = enabled_plugins(settings.plugins, manifest, platform)
    logger.debug("Enabled plugins: %s", sorted(plugins) or "none")

    site = Site.assemble(parse_site(source, settings, drafts), settings)
    for url, clashing in site.duplicate_urls().items():
        logger.warning("URL %s is claimed by %s", url, ", ".join(str(a.path) for a in clashing))

    layouts = Layouts(source / settings.layouts_dir, settings)
    md = make_parser(settings.parser_config)
    settings_fp = fingerprint(settings.model_dump(exclude=VOLATILE_SETTINGS), sorted(plugins))
    built_at = datetime.now()
    report = BuildReport(output_dir=str(output_dir))

    with Session(engine) as session:
        # Pass 1: bodies, rendered or reused from the build state store
        bodies: dict[str, tuple[str, str]] = {}
        pending: list[tuple[Article, str, Path]] = []
        stale: list[str] = []
        for article in site.articles:
            key = article.path.as_posix()
            try:
                older, newer = site.neighbours(article)
                fp = fingerprint(
                    article.hash,
                    layouts.fingerprint(article.layout),
                    settings_fp,
                    article.url,
                    older.url if older else None,
                    newer.url if newer else None,
                )
                out = output_dir / output_path(article.url)
                record = get_by_path(session, key)
                reuse = (
                    settings.incremental
                    and record is not None
                    and record.hash == fp
                    and record.output == str(out)
                    and record.content is not None
                    and out.exists()
                )
                if reuse:
                    logger.debug("Unchanged: %s", key)
                    bodies[key] = (record.content, "")
                else:
                    rendered = render_markdown(
                        md, article.body,
                        toc_levels=settings.toc_levels,
                        force_toc=article.front_matter.toc,
                        resolve_post_url=site.post_url,
                    )
                    bodies[key] = (rendered.html, rendered.toc_html)
                    pending.append((article, fp, out))

                if record is not None and record.output != str(out):
                    stale.append(record.output)
                _, status = record_build(session, {
                    "path": key, "slug": article.slug, "url": article.url,
                    "output": str(out), "hash": fp, "content": bodies[key][0],
                }, built_at)
            except Exception as e:
                raise RuntimeError(f"Failed to build {article.path}: {e}") from e
            report.counts[status] += 1
            if status != "unchanged":
                report.changes.append((status, article.url))

        feed_enabled = FEED_PLUGIN in plugins
        if feed_enabled and not settings.url:
            logger.warning("Feed plugin enabled but 'url' is not configured; skipping %s", settings.feed_path)
            feed_enabled = False

        site_context = {
            "title": settings.title,
            "description": settings.description,
            "url": settings.url,
            "baseurl": settings.baseurl,
            "author": settings.author,
            "time": built_at,
            "feed_url": "/" + settings.feed_path.lstrip("/") if feed_enabled else None,
            "posts": [_summary(p, bodies[p.path.as_posix()][0]) for p in site.posts],
            "pages": [_summary(p) for p in site.pages],
            "tags": {t: [_summary(p) for p in posts] for t, posts in site.tags.items()},
        }

        # Pass 2: layouts for everything that changed
        for article, fp, out in pending:
            content, toc = bodies[article.path.as_posix()]
            try:
                html = layouts.render(
                    article.layout, content,
                    page=_page_context(article, content, toc, site),
                    site=site_context,
                )
            except Exception as e:
                raise RuntimeError(f"Failed to build {article.path}: {e}") from e
            _write(out, html)
            logger.debug("Wrote %s", out)

        for record in remove_missing(session, {a.path.as_posix() for a in site.articles}):
            stale.append(record.output)
            report.counts["removed"] += 1
            report.changes.append(("removed", record.url))

        generated = _write_generated(output_dir, site, layouts, site_context, settings, feed_enabled)
        report.generated = list(generated.values())
        stale.extend(g.output for g in replace_generated(session, generated, built_at))

        # A moved source can leave its old output at a path this build just wrote
        keep = {str(output_dir / output_path(a.url)) for a in site.articles} | set(generated)
        for output in stale:
            if output not in keep:
                _remove(Path(output), output_dir)
                logger.debug("Removed %s", output)
        session.commit()

    report.static_files = _copy_static(source, output_dir, settings)
    logger.info(
        "Built %d article(s), %d generated page(s), %d static file(s) into %s",
        len(site.articles), len(report.generated), report.static_files, output_dir,
    )
    return report
