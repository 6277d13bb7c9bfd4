"""Atom feed generation for the newest posts"""

from typing import Any

from blogpub.core.layouts import Layouts


FEED_TEMPLATE = "feed.xml"


def render_feed(layouts: Layouts, site: dict[str, Any], posts: list[dict[str, Any]], limit: int) -> str:
    """Render the Atom feed; posts must be newest first and carry rendered 'content'."""
    return layouts.render_template(FEED_TEMPLATE, site=site, posts=posts[:limit])
