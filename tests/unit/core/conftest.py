"""Shared fixtures for core unit tests"""

import pytest

from blogpub.config import Settings
from blogpub.core.render import make_parser


SAMPLE_POST = """\
---
layout: post
title: Building a Collection View
tags: [swiftui, uikit]
---

* TOC
{:toc}

## Introduction

Some text with a footnote.[^1]

### Details

```swift
let view = CollectionView()
```

## Conclusion

Done.

[^1]: The footnote.
"""


@pytest.fixture(name="settings")
def settings_fixture():
    return Settings()


@pytest.fixture(name="md")
def md_fixture():
    return make_parser("gfm-like")


@pytest.fixture(name="site_dir")
def site_dir_fixture(tmp_path):
    """A small site: two posts, a draft, a page, and a static asset."""
    posts = tmp_path / "_posts"
    posts.mkdir()
    (posts / "2020-01-05-collection-view.md").write_text(SAMPLE_POST)
    (posts / "2020-02-10-layout-part-2.md").write_text(
        "---\nlayout: post\ntitle: Layout, part 2\ntags: swiftui\n---\n\n"
        "Read [part 1]({% post_url 2020-01-05-collection-view %}) first.\n"
    )
    drafts = tmp_path / "_drafts"
    drafts.mkdir()
    (drafts / "swizzling.md").write_text("---\nlayout: post\ntitle: Swizzling\n---\n\nDraft.\n")
    (tmp_path / "about.md").write_text("---\nlayout: page\ntitle: About\n---\n\nAbout me.\n")
    (tmp_path / "assets").mkdir()
    (tmp_path / "assets" / "style.css").write_text("body {}\n")
    return tmp_path


@pytest.fixture(name="sample_body")
def sample_body_fixture():
    """SAMPLE_POST without its front matter."""
    return SAMPLE_POST.split("---\n", 2)[2]
