"""Markdown rendering: heading anchors, table of contents, footnotes, post_url references"""

from __future__ import annotations

import html
import re
from typing import Callable, Optional

from markdown_it import MarkdownIt
from markdown_it.token import Token
from mdit_py_plugins.footnote import footnote_plugin

from blogpub.core.models import Rendered, TocEntry
from blogpub.core.utils.slug import unique_slug


# kramdown directive: a one-item list immediately followed by {:toc}
TOC_DIRECTIVE_RE = re.compile(r'^(?:[*-]|1\.)[ \t]+.*\r?\n\{:\s*toc\s*\}[ \t]*$', re.MULTILINE)
NO_TOC_RE = re.compile(r'^\{:\s*\.no_toc\s*\}$')
POST_URL_RE = re.compile(r'\{%-?\s*post_url\s+(\S+?)\s*-?%\}')
RAW_RE = re.compile(r'\{%-?\s*raw\s*-?%\}(.*?)\{%-?\s*endraw\s*-?%\}', re.DOTALL)
TOC_MARKER = 'BLOGPUB_TOC_MARKER'


class RenderError(ValueError):
    """Raised when an article body cannot be rendered."""


def make_parser(preset: str = 'gfm-like') -> MarkdownIt:
    """Build a MarkdownIt instance for the given preset name, with footnotes."""
    return MarkdownIt(preset, options_update={"linkify": False}).use(footnote_plugin)


def expand_post_urls(text: str, resolve: Callable[[str], Optional[str]]) -> str:
    """Replace {% post_url name %} tags with the URL returned by resolve.

    Text between {% raw %} and {% endraw %} is left as is, minus the raw tags.
    """
    def _sub(m: re.Match) -> str:
        url = resolve(m.group(1))
        if url is None:
            raise RenderError(f"post_url: no post named '{m.group(1)}'")
        return url

    parts = []
    last = 0
    for m in RAW_RE.finditer(text):
        parts.append(POST_URL_RE.sub(_sub, text[last:m.start()]))
        parts.append(m.group(1))
        last = m.end()
    parts.append(POST_URL_RE.sub(_sub, text[last:]))
    return ''.join(parts)


def mask_raw(text: str) -> str:
    """Neutralize tags inside {% raw %} regions without changing line numbers."""
    return RAW_RE.sub(lambda m: m.group(0).replace('{%', '{ %'), text)


def _inline_text(token: Token) -> str:
    """Plain text of an inline token (markup stripped)."""
    if not token.children:
        return token.content
    return ''.join(c.content for c in token.children if c.type in ('text', 'code_inline', 'html_inline'))


def _is_paragraph(tokens: list[Token], i: int, pattern) -> bool:
    return (
        tokens[i].type == 'paragraph_open'
        and i + 2 < len(tokens)
        and tokens[i + 1].type == 'inline'
        and bool(pattern(tokens[i + 1].content.strip()))
    )


def _anchor_headings(tokens: list[Token], max_level: int) -> tuple[list[Token], list[tuple[int, str, str]]]:
    """Give every heading a unique id; return kept tokens and (level, text, anchor) for TOC headings."""
    seen: dict[str, int] = {}
    headings: list[tuple[int, str, str]] = []
    kept: list[Token] = []
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if _is_paragraph(tokens, i, NO_TOC_RE.match):
            # {:.no_toc} under a heading removes that heading from the TOC
            if headings and kept and kept[-1].type == 'heading_close':
                headings.pop()
            i += 3
            continue
        if tok.type == 'heading_open':
            text = _inline_text(tokens[i + 1])
            anchor = unique_slug(text, seen)
            tok.attrSet('id', anchor)
            level = int(tok.tag[1:])
            if level <= max_level:
                headings.append((level, text, anchor))
            else:
                headings.append((0, text, anchor))
        kept.append(tok)
        i += 1
    return kept, [h for h in headings if h[0]]


def build_toc(headings: list[tuple[int, str, str]]) -> list[TocEntry]:
    """Nest flat (level, text, anchor) headings into a tree."""
    roots: list[TocEntry] = []
    stack: list[TocEntry] = []
    for level, text, anchor in headings:
        entry = TocEntry(level=level, text=text, anchor=anchor)
        while stack and stack[-1].level >= level:
            stack.pop()
        (stack[-1].children if stack else roots).append(entry)
        stack.append(entry)
    return roots


def toc_html(entries: list[TocEntry], root: bool = True) -> str:
    """Render a TOC tree as nested <ul> lists."""
    if not entries:
        return ''
    attrs = ' id="markdown-toc"' if root else ''
    items = []
    for e in entries:
        child = toc_html(e.children, root=False)
        items.append(f'<li><a href="#{e.anchor}">{html.escape(e.text)}</a>{child}</li>')
    return f'<ul{attrs}>\n' + '\n'.join(items) + '\n</ul>\n'


def render_markdown(
    md: MarkdownIt,
    text: str,
    toc_levels: int = 3,
    force_toc: bool = False,
    resolve_post_url: Optional[Callable[[str], Optional[str]]] = None,
    ) -> Rendered:
    """Render an article body to HTML and collect its table of contents.

    The TOC replaces a '* TOC' + '{:toc}' directive when present; with
    force_toc it is prepended instead. RenderError on unresolvable post_url.
    """
    if resolve_post_url is not None:
        text = expand_post_urls(text, resolve_post_url)
    else:
        text = RAW_RE.sub(lambda m: m.group(1), text)
    has_directive = bool(TOC_DIRECTIVE_RE.search(text))
    if has_directive:
        text = TOC_DIRECTIVE_RE.sub(f'\n{TOC_MARKER}\n', text, count=1)

    env: dict = {}
    tokens, headings = _anchor_headings(md.parse(text, env), toc_levels)
    toc = build_toc(headings)
    toc_block = Token('html_block', '', 0, content=toc_html(toc))

    if has_directive:
        for i in range(len(tokens)):
            if _is_paragraph(tokens, i, lambda s: s == TOC_MARKER):
                tokens[i:i + 3] = [toc_block]
                break
    elif force_toc and toc:
        tokens.insert(0, toc_block)

    return Rendered(html=md.renderer.render(tokens, md.options, env), toc=toc, toc_html=toc_block.content)
