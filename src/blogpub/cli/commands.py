"""CLI command implementations"""

import functools
import shutil
from datetime import datetime
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml
from sqlalchemy.engine import make_url

from blogpub.config import Settings, load_config
from blogpub.core.lint import lint_site
from blogpub.core.manifest import current_platform
from blogpub.core.models import LintSeverity
from blogpub.core.pipeline import load_site_manifest, resolve_output_dir, run_build
from blogpub.core.utils.slug import slugify
from blogpub.crud.database import init_db, make_engine, reset_db, resolve_db_url


SourceArg = Annotated[Path, typer.Argument(help="Site source directory")]


def _fail(msg: str, cause: Exception = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _settings(source: Path, overrides: dict = None) -> Settings:
    """Load config with standard CLI error handling."""
    if not source.is_dir():
        _fail(f"Source directory not found: {source}")
    try:
        return load_config(source, overrides=overrides)
    except ValueError as e:
        _fail(str(e))


def _engine(source: Path, settings: Settings):
    engine = make_engine(resolve_db_url(settings.db_url, source))
    init_db(engine)
    return engine


def _build(source: Path, settings: Settings, drafts: bool):
    try:
        report = run_build(source, settings, _engine(source, settings), include_drafts=drafts)
    except Exception as e:
        _fail("Build failed", e)
    for status, url in report.changes:
        typer.echo(f"  {status}: {url}")
    c = report.counts
    typer.echo(
        f"Build complete - "
        f"{c['created']} created, "
        f"{c['updated']} updated, "
        f"{c['unchanged']} unchanged, "
        f"{c['removed']} removed"
    )
    return report


def build_cmd(
    source: SourceArg = Path("."),
    out: Annotated[Optional[str], typer.Option("--out-dir", help="Output directory")] = None,
    drafts: Annotated[Optional[bool], typer.Option("--drafts/--no-drafts", help="Render _drafts as posts")] = None,
    incremental: Annotated[Optional[bool], typer.Option("--incremental/--full", help="Skip unchanged articles")] = None,
    ):
    """Render all content into the output directory."""
    settings = _settings(source, overrides={"output_dir": out, "show_drafts": drafts, "incremental": incremental})
    report = _build(source, settings, settings.show_drafts)
    typer.echo(f"Site written to {report.output_dir}/")


def serve_cmd(
    source: SourceArg = Path("."),
    host: Annotated[str, typer.Option("--host", help="Interface to bind")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Port to listen on")] = 4000,
    drafts: Annotated[bool, typer.Option("--drafts", help="Render _drafts as posts")] = False,
    ):
    """Build the site, then serve the output directory over HTTP."""
    settings = _settings(source, overrides={"show_drafts": drafts or None})
    _build(source, settings, settings.show_drafts)
    handler = functools.partial(SimpleHTTPRequestHandler, directory=str(resolve_output_dir(source, settings)))
    with ThreadingHTTPServer((host, port), handler) as httpd:
        typer.echo(f"Serving at http://{host}:{port}{settings.baseurl}/ (Ctrl-C to stop)")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            typer.echo("Stopped.")


def lint_cmd(
    source: SourceArg = Path("."),
    ):
    """Check front matter, code fence languages, cross references, and the manifest."""
    settings = _settings(source)
    issues = lint_site(source, settings)
    for issue in issues:
        typer.echo(str(issue))
    errors = sum(1 for i in issues if i.severity == LintSeverity.error)
    warnings = len(issues) - errors
    typer.echo(f"{errors} error(s), {warnings} warning(s)")
    if errors:
        raise typer.Exit(1)


def manifest_cmd(
    source: SourceArg = Path("."),
    platform: Annotated[Optional[str], typer.Option("--platform", help="Bundler platform name; default: detect")] = None,
    ):
    """List manifest entries with their group, requirements, and whether they apply here."""
    settings = _settings(source, overrides={"platform": platform})
    try:
        manifest = load_site_manifest(source, settings)
    except RuntimeError as e:
        _fail(str(e))
    if manifest is None:
        typer.echo(f"No manifest found at {source / settings.manifest_file}.")
        raise typer.Exit(1)

    plat = settings.platform or current_platform()
    for src in manifest.sources:
        typer.echo(f"source {src}")
    for entry in manifest.entries:
        mark = "*" if entry.active_for(plat) else " "
        guard = f" [{', '.join(entry.platforms)}]" if entry.platforms else ""
        typer.echo(f"{mark} {entry.name} ({entry.requirement_text()}) {','.join(entry.groups)}{guard}")
    typer.echo(f"{len(manifest.active(plat))} of {len(manifest.entries)} entries active on '{plat}'")


def new_cmd(
    title: Annotated[str, typer.Argument(help="Article title")],
    source: Annotated[Path, typer.Option("--source", "-s", help="Site source directory")] = Path("."),
    draft: Annotated[bool, typer.Option("--draft", help="Create in the drafts directory (no date prefix)")] = False,
    tags: Annotated[Optional[str], typer.Option("--tags", help="Space- or comma-separated tags")] = None,
    layout: Annotated[str, typer.Option("--layout", help="Layout name")] = "post",
    ):
    """Create a new post (or draft) with front matter."""
    settings = _settings(source)
    slug = slugify(title)
    if not slug:
        _fail(f"Cannot derive a file name from title: {title!r}")
    if draft:
        path = source / settings.drafts_dir / f"{slug}.md"
    else:
        path = source / settings.posts_dir / f"{datetime.now():%Y-%m-%d}-{slug}.md"
    if path.exists():
        _fail(f"{path} already exists")

    fm = {"layout": layout, "title": title}
    if tags:
        fm["tags"] = [t for t in tags.replace(",", " ").split() if t]
    header = yaml.dump(fm, default_flow_style=False, allow_unicode=True, sort_keys=False)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"---\n{header}---\n\n", encoding="utf-8")
    typer.echo(f"Created {path}")


def clean_cmd(
    source: SourceArg = Path("."),
    ):
    """Remove the output directory and the build state database."""
    settings = _settings(source)
    output_dir = resolve_output_dir(source, settings)
    if output_dir.exists():
        shutil.rmtree(output_dir)
        typer.echo(f"Removed {output_dir}/")

    url = make_url(resolve_db_url(settings.db_url, source))
    if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
        return
    if url.get_backend_name() == "sqlite":
        db = Path(url.database)
        if db.exists():
            db.unlink()
            typer.echo(f"Removed {db}")
    else:
        reset_db(make_engine(url.render_as_string(hide_password=False)))
        typer.echo(f"Reset state database {url.render_as_string()}")
