"""Unit tests for core/layouts.py"""

from datetime import datetime

import pytest

from blogpub.config import Settings
from blogpub.core.layouts import (
    Layouts, LayoutError, date_to_string, date_to_xmlschema, xml_escape,
)


@pytest.fixture(name="layouts_dir")
def layouts_dir_fixture(tmp_path):
    d = tmp_path / "_layouts"
    d.mkdir()
    return d


def test_builtin_layouts_available(settings):
    layouts = Layouts(None, settings)
    assert {"default", "post", "page", "home", "tag", "tags"} <= layouts.available()
    assert "feed" not in layouts.available()


def test_builtin_chain(settings):
    layouts = Layouts(None, settings)
    assert layouts.chain("post") == ["post", "default"]
    assert layouts.chain("default") == ["default"]


def test_site_layout_overrides_builtin(layouts_dir, settings):
    (layouts_dir / "default.html").write_text("<body>{{ content }}</body>\n")
    layouts = Layouts(layouts_dir, settings)
    html = layouts.render("page", "<p>Hi</p>", page={"title": "About"}, site={})
    assert html.startswith("<body>")
    assert "<p>Hi</p>" in html
    assert '<h1 class="page-title">About</h1>' in html


def test_custom_layout_inherits(layouts_dir, settings):
    (layouts_dir / "note.html").write_text("---\nlayout: page\n---\n<aside>{{ content }}</aside>\n")
    layouts = Layouts(layouts_dir, settings)
    assert "note" in layouts.available()
    assert layouts.chain("note") == ["note", "page", "default"]
    html = layouts.render("note", "text", page={"title": "T"}, site={"title": "Blog"})
    assert "<aside>text</aside>" in html
    assert "---" not in html


def test_content_not_escaped_but_context_is(layouts_dir, settings):
    (layouts_dir / "bare.html").write_text("{{ content }}|{{ page.title }}")
    layouts = Layouts(layouts_dir, settings)
    assert layouts.render("bare", "<b>x</b>", page={"title": "<i>"}) == "<b>x</b>|&lt;i&gt;"


def test_unknown_layout(settings):
    with pytest.raises(LayoutError, match="Unknown layout 'missing'"):
        Layouts(None, settings).chain("missing")


def test_circular_layout(layouts_dir, settings):
    (layouts_dir / "a.html").write_text("---\nlayout: b\n---\n{{ content }}")
    (layouts_dir / "b.html").write_text("---\nlayout: a\n---\n{{ content }}")
    with pytest.raises(LayoutError, match="Circular layout inheritance: a -> b -> a"):
        Layouts(layouts_dir, settings).chain("a")


def test_fingerprint_tracks_parent_changes(layouts_dir, settings):
    layouts = Layouts(layouts_dir, settings)
    before = layouts.fingerprint("post")
    (layouts_dir / "default.html").write_text("{{ content }}")
    assert Layouts(layouts_dir, settings).fingerprint("post") != before
    assert Layouts(layouts_dir, settings).fingerprint("post") == Layouts(layouts_dir, settings).fingerprint("post")


def test_url_filters(layouts_dir):
    settings = Settings(url="https://example.org/", baseurl="/blog")
    layouts = Layouts(layouts_dir, settings)
    (layouts_dir / "links.html").write_text("{{ '/a.html' | relative_url }} {{ 'b/' | absolute_url }}")
    assert layouts.render("links", "") == "/blog/a.html https://example.org/blog/b/"


def test_date_filters():
    d = datetime(2020, 1, 5, 9, 30)
    assert date_to_xmlschema(d) == "2020-01-05T09:30:00+00:00"
    assert date_to_string(d) == "05 Jan 2020"


def test_xml_escape():
    assert str(xml_escape("<p>a & b</p>")) == "&lt;p&gt;a &amp; b&lt;/p&gt;"
