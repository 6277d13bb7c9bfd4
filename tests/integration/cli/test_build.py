"""Integration tests for the CLI commands (build, lint, manifest, new, clean)"""

import pytest
from sqlmodel import Session
from typer.testing import CliRunner

from blogpub.cli.cli import app
from blogpub.core.parse import split_frontmatter
from blogpub.crud.database import init_db, make_engine
from blogpub.crud.records import list_records, record_build


GEMFILE = '''\
source "https://rubygems.org"
gem "github-pages", group: :jekyll_plugins
group :jekyll_plugins do
  gem "jekyll-feed", "~> 0.12"
end
gem "wdm", "~> 0.1.1", :platforms => [:mingw, :x64_mingw, :mswin]
'''


@pytest.fixture(name="runner")
def runner_fixture():
    return CliRunner()


@pytest.fixture(name="site")
def site_fixture(tmp_path):
    """A site with one post, one page, a config, and a manifest."""
    (tmp_path / "_config.yml").write_text("title: Field Notes\nurl: https://example.org\n")
    (tmp_path / "Gemfile").write_text(GEMFILE)
    (tmp_path / "_posts").mkdir()
    (tmp_path / "_posts" / "2021-06-01-hello.md").write_text(
        "---\nlayout: post\ntitle: Hello\ntags: [intro]\n---\n\n## Start\n\n```python\nprint('hi')\n```\n"
    )
    (tmp_path / "about.md").write_text("---\nlayout: page\ntitle: About\n---\n\nAbout.\n")
    return tmp_path


def test_build_cmd_writes_site(runner, site):
    result = runner.invoke(app, ["build", str(site)])

    assert result.exit_code == 0, result.output
    assert "Build complete - 2 created, 0 updated, 0 unchanged, 0 removed" in result.output
    assert "created: /2021/06/01/hello.html" in result.output
    out = site / "_site"
    assert "Field Notes" in (out / "2021" / "06" / "01" / "hello.html").read_text()
    assert (out / "about.html").is_file()
    assert (out / "feed.xml").is_file()
    assert (out / "tags" / "intro" / "index.html").is_file()
    assert (site / ".blogpub" / "build.db").is_file()


def test_build_cmd_incremental_rerun(runner, site):
    runner.invoke(app, ["build", str(site), "--incremental"])
    result = runner.invoke(app, ["build", str(site), "--incremental"])
    assert result.exit_code == 0, result.output
    assert "0 created, 0 updated, 2 unchanged, 0 removed" in result.output


def test_build_cmd_out_dir(runner, site, tmp_path_factory):
    out = tmp_path_factory.mktemp("public")
    result = runner.invoke(app, ["build", str(site), "--out-dir", str(out)])
    assert result.exit_code == 0, result.output
    assert f"Site written to {out}/" in result.output
    assert (out / "index.html").is_file()
    assert not (site / "_site").exists()


def test_build_cmd_missing_source(runner, tmp_path):
    result = runner.invoke(app, ["build", str(tmp_path / "nope")])
    assert result.exit_code == 1
    assert "Source directory not found" in result.output


def test_build_cmd_reports_failure(runner, site):
    (site / "about.md").write_text("---\nlayout: page\ntitle: About\n---\n\n{% post_url 2000-01-01-missing %}\n")
    result = runner.invoke(app, ["build", str(site)])
    assert result.exit_code == 1
    assert "Error: Build failed" in result.output
    assert "about.md" in result.output


def test_build_cmd_invalid_config(runner, site):
    (site / "_config.yml").write_text("- not\n- a mapping\n")
    result = runner.invoke(app, ["build", str(site)])
    assert result.exit_code == 1
    assert "Invalid _config.yml" in result.output


def test_lint_cmd_clean(runner, site):
    result = runner.invoke(app, ["lint", str(site)])
    assert result.exit_code == 0, result.output
    assert "0 error(s), 0 warning(s)" in result.output


def test_lint_cmd_reports_issues(runner, site):
    (site / "notes.md").write_text("---\nlayout: page\n---\n\n```\nx\n```\n")
    result = runner.invoke(app, ["lint", str(site)])
    assert result.exit_code == 1
    assert "notes.md:1: error [title]" in result.output
    assert "notes.md:5: error [fence-language]" in result.output
    assert "2 error(s), 0 warning(s)" in result.output


def test_manifest_cmd(runner, site):
    result = runner.invoke(app, ["manifest", str(site), "--platform", "ruby"])
    assert result.exit_code == 0, result.output
    assert "source https://rubygems.org" in result.output
    assert "* jekyll-feed (~> 0.12) jekyll_plugins" in result.output
    assert "  wdm (~> 0.1.1) default [mingw, x64_mingw, mswin]" in result.output
    assert "2 of 3 entries active on 'ruby'" in result.output


def test_manifest_cmd_windows_platform(runner, site):
    result = runner.invoke(app, ["manifest", str(site), "--platform", "x64_mingw"])
    assert "3 of 3 entries active on 'x64_mingw'" in result.output


def test_manifest_cmd_missing(runner, tmp_path):
    result = runner.invoke(app, ["manifest", str(tmp_path)])
    assert result.exit_code == 1
    assert "No manifest found" in result.output


def test_manifest_cmd_parse_error(runner, site):
    (site / "Gemfile").write_text('gem "a"\nend\n')
    result = runner.invoke(app, ["manifest", str(site)])
    assert result.exit_code == 1
    assert "line 2" in result.output


def test_new_cmd_post(runner, site):
    result = runner.invoke(app, ["new", "Hello, World!", "--source", str(site), "--tags", "swift, ios"])
    assert result.exit_code == 0, result.output
    [path] = (site / "_posts").glob("*-hello-world.md")
    fm, body, _ = split_frontmatter(path.read_text())
    assert fm == {"layout": "post", "title": "Hello, World!", "tags": ["swift", "ios"]}
    assert body.strip() == ""


def test_new_cmd_draft(runner, site):
    result = runner.invoke(app, ["new", "Work in progress", "-s", str(site), "--draft"])
    assert result.exit_code == 0, result.output
    assert (site / "_drafts" / "work-in-progress.md").is_file()


def test_new_cmd_refuses_overwrite(runner, site):
    runner.invoke(app, ["new", "Twice", "-s", str(site), "--draft"])
    result = runner.invoke(app, ["new", "Twice", "-s", str(site), "--draft"])
    assert result.exit_code == 1
    assert "already exists" in result.output


def test_new_cmd_rejects_empty_slug(runner, site):
    result = runner.invoke(app, ["new", "!!!", "-s", str(site)])
    assert result.exit_code == 1
    assert "Cannot derive a file name" in result.output


def test_clean_cmd(runner, site):
    runner.invoke(app, ["build", str(site)])
    result = runner.invoke(app, ["clean", str(site)])
    assert result.exit_code == 0, result.output
    assert not (site / "_site").exists()
    assert not (site / ".blogpub" / "build.db").exists()


def test_clean_cmd_resets_server_database(runner, site, monkeypatch):
    """A state database that is not a local file is emptied rather than deleted."""
    engine = make_engine(f"sqlite:///{site / 'state.db'}")
    init_db(engine)
    with Session(engine) as session:
        record_build(session, {
            "path": "about.md", "slug": "about", "url": "/about.html",
            "output": "_site/about.html", "hash": "a" * 64, "content": "<p>About.</p>",
        })
        session.commit()
    urls = []

    def fake_make_engine(db_url):
        urls.append(db_url)
        return engine

    monkeypatch.setattr("blogpub.cli.commands.make_engine", fake_make_engine)
    (site / "_config.yml").write_text("title: Field Notes\ndb_url: postgresql://blog@db.local/blogpub\n")

    result = runner.invoke(app, ["clean", str(site)])

    assert result.exit_code == 0, result.output
    assert "Reset state database postgresql://blog@db.local/blogpub" in result.output
    assert urls == ["postgresql://blog@db.local/blogpub"]
    with Session(engine) as session:
        assert list_records(session) == []
