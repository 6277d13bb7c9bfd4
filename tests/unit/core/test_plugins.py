"""Unit tests for core/plugins.py"""

from blogpub.core.manifest import parse_manifest
from blogpub.core.plugins import FEED_PLUGIN, enabled_plugins, version_conflicts


def test_config_plugins():
    assert enabled_plugins(["jekyll-feed", "jekyll-seo-tag"], None, "ruby") == {FEED_PLUGIN}


def test_manifest_plugin_group():
    manifest = parse_manifest('group :jekyll_plugins do\n  gem "jekyll-feed"\nend\ngem "jekyll-sitemap"\n')
    assert enabled_plugins([], manifest, "ruby") == {FEED_PLUGIN}


def test_plugin_outside_group_is_not_enabled():
    manifest = parse_manifest('gem "jekyll-feed"\n')
    assert enabled_plugins([], manifest, "ruby") == set()


def test_bundle_expands():
    manifest = parse_manifest('gem "github-pages", group: :jekyll_plugins\n')
    assert enabled_plugins([], manifest, "ruby") == {FEED_PLUGIN}


def test_platform_guarded_plugin():
    manifest = parse_manifest('gem "jekyll-feed", group: :jekyll_plugins, platforms: [:jruby]\n')
    assert enabled_plugins([], manifest, "ruby") == set()
    assert enabled_plugins([], manifest, "jruby") == {FEED_PLUGIN}


def test_version_conflicts():
    manifest = parse_manifest(
        'gem "github-pages", "~> 200", group: :jekyll_plugins\n'
        'gem "jekyll-feed", "~> 0.12", group: :jekyll_plugins\n'
        'gem "webrick", "~> 1.7"\n'
    )
    conflicts = version_conflicts(manifest, "ruby")
    assert [(e.name, v) for e, v in conflicts] == [("github-pages", "232")]
