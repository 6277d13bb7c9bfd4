"""Content and manifest linting: front matter, code fence languages, cross references, manifest entries"""

import re
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional

from pydantic import ValidationError

from blogpub.config import Settings
from blogpub.core.layouts import Layouts
from blogpub.core.manifest import ManifestError, current_platform, duplicates, parse_manifest
from blogpub.core.models import ArticleKind, FrontMatter, LintIssue, LintSeverity
from blogpub.core.parse import MD_EXTENSIONS, discover_files, parse_post_name, split_frontmatter
from blogpub.core.plugins import version_conflicts
from blogpub.core.render import POST_URL_RE, make_parser, mask_raw


SCHEME_RE = re.compile(r'^[A-Za-z][A-Za-z0-9+.-]*:')


class LintContext:
    """Site-wide facts every file check needs."""

    def __init__(self, root: Path, settings: Settings):
        self.root = root
        self.settings = settings
        self.layouts = Layouts(root / settings.layouts_dir, settings).available()
        self.files = discover_files(root, settings, include_drafts=True)
        self.post_names = {p.stem for p, kind in self.files if kind != ArticleKind.page}
        self.md = make_parser(settings.parser_config)


def _issue(path: Path, rule: str, message: str, line: int = 0,
           severity: LintSeverity = LintSeverity.error) -> LintIssue:
    return LintIssue(path=path.as_posix(), line=line, rule=rule, message=message, severity=severity)


def _check_front_matter(rel: Path, fm: Optional[dict], kind: ArticleKind, ctx: LintContext) -> Iterator[LintIssue]:
    if fm is None:
        yield _issue(rel, "front-matter", "missing front matter block", 1)
        return
    try:
        FrontMatter.model_validate(fm)
    except ValidationError as e:
        for err in e.errors():
            field = ".".join(str(p) for p in err["loc"]) or "front matter"
            yield _issue(rel, "front-matter", f"invalid '{field}': {err['msg']}", 1)
    layout = fm.get("layout")
    if layout is None or not str(layout).strip():
        yield _issue(rel, "layout", "front matter does not declare a layout", 1)
    elif str(layout) not in ctx.layouts:
        yield _issue(rel, "layout-unknown", f"layout '{layout}' does not exist", 1)
    title = fm.get("title")
    if title is None or not str(title).strip():
        yield _issue(rel, "title", "front matter does not declare a title", 1)
    if kind == ArticleKind.post and parse_post_name(rel.stem) is None:
        yield _issue(rel, "filename-date", "post filename must start with a valid YYYY-MM-DD- date", 1)


def _link_target_missing(href: str, source: Path, root: Path) -> bool:
    """True for a relative link to a content file that does not exist."""
    if not href or SCHEME_RE.match(href) or href.startswith(("/", "#")):
        return False
    target = re.split(r'[#?]', href, maxsplit=1)[0]
    if PurePosixPath(target).suffix not in MD_EXTENSIONS:
        return False
    return not (root / source.parent / target).resolve().is_file()


def _check_body(rel: Path, body: str, body_line: int, ctx: LintContext) -> Iterator[LintIssue]:
    masked = mask_raw(body)
    # post_url tags expand before Markdown parsing, inside code as well
    for m in POST_URL_RE.finditer(masked):
        name = m.group(1).rsplit("/", 1)[-1]
        if name not in ctx.post_names:
            line = body_line + masked.count("\n", 0, m.start())
            yield _issue(rel, "xref", f"post_url target '{m.group(1)}' does not exist", line)

    for tok in ctx.md.parse(masked, {}):
        line = body_line + (tok.map[0] if tok.map else 0)
        if tok.type == "fence" and not tok.info.strip():
            yield _issue(rel, "fence-language", "fenced code block has no language tag", line)
        if tok.type != "inline":
            continue
        for child in tok.children or []:
            if child.type == "link_open":
                href = str(child.attrGet("href") or "")
                if _link_target_missing(href, rel, ctx.root):
                    yield _issue(rel, "xref", f"link target '{href}' does not exist", line)


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"not valid UTF-8 text (byte {e.start})") from e


def lint_file(path: Path, kind: ArticleKind, ctx: LintContext) -> list[LintIssue]:
    """Run every content check on one file."""
    rel = path.relative_to(ctx.root)
    try:
        fm, body, body_line = split_frontmatter(_read(path))
    except ValueError as e:
        return [_issue(rel, "front-matter", str(e), 1)]
    return list(_check_front_matter(rel, fm, kind, ctx)) + list(_check_body(rel, body, body_line, ctx))


def lint_manifest(root: Path, settings: Settings) -> list[LintIssue]:
    """Check the manifest parses, has no duplicate names per group, and pins supported plugin versions."""
    path = root / settings.manifest_file
    if not path.is_file():
        return []
    rel = Path(settings.manifest_file)
    try:
        manifest = parse_manifest(_read(path))
    except ManifestError as e:
        return [_issue(rel, "manifest-parse", str(e), e.line)]
    except ValueError as e:
        return [_issue(rel, "manifest-parse", str(e))]

    issues = []
    for name, group, lines in duplicates(manifest):
        for line in lines[1:]:
            issues.append(_issue(rel, "manifest-duplicate", f"'{name}' is already declared in group '{group}'", line))
    for entry, version in version_conflicts(manifest, settings.platform or current_platform()):
        issues.append(_issue(
            rel, "manifest-plugin-version",
            f"'{entry.name}' requirement '{entry.requirement_text()}' excludes supported version {version}",
            entry.line, LintSeverity.warning,
        ))
    return issues


def lint_site(root: Path, settings: Settings) -> list[LintIssue]:
    """Lint every content file (drafts included) and the manifest; issues sorted by path and line."""
    root = Path(root)
    ctx = LintContext(root, settings)
    issues = lint_manifest(root, settings)
    for path, kind in ctx.files:
        issues.extend(lint_file(path, kind, ctx))
    return sorted(issues, key=lambda i: (i.path, i.line, i.rule))
