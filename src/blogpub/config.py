"""Site configuration: settings schema and _config.yml loader"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


CONFIG_FILE = "_config.yml"
ENV_PREFIX = "BLOGPUB_"


class Settings(BaseModel):
    title:         str = "My Blog"
    description:   str = ""
    url:           str = Field(default="",  description="Absolute site URL, required for the feed")
    baseurl:       str = Field(default="",  description="Path prefix the site is served under")
    author:        str = ""
    output_dir:    str = Field(default="_site",   description="Directory the rendered site is written to")
    posts_dir:     str = "_posts"
    drafts_dir:    str = "_drafts"
    layouts_dir:   str = "_layouts"
    manifest_file: str = Field(default="Gemfile", description="Dependency manifest declaring generator plugins")
    permalink:     str = Field(default="date",    description="date, pretty, none, or a custom pattern")
    plugins:       list[str] = Field(default_factory=list)
    exclude:       list[str] = Field(default_factory=lambda: ["Gemfile", "Gemfile.lock", "README.md", "vendor"])
    feed_path:     str = "feed.xml"
    feed_limit:    int = Field(default=10, ge=1, description="Max posts listed in the feed")
    toc_levels:    int = Field(default=3,  ge=1, le=6, description="Deepest heading level listed in a TOC")
    parser_config: str = Field(default="gfm-like", description="MarkdownIt parser preset name")
    show_drafts:   bool = False
    incremental:   bool = False
    platform:      str = Field(default="", description="Manifest platform override; empty = detect")
    db_url:        str = "sqlite:///.blogpub/build.db"

    @field_validator("plugins", "exclude", mode="before")
    @classmethod
    def _split_list(cls, value):
        if isinstance(value, str):
            return [v for v in value.replace(",", " ").split() if v]
        return value


def load_config(source: Path = Path("."), overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from _config.yml, then BLOGPUB_<FIELD> env vars, then non-None CLI overrides."""
    data: dict[str, Any] = {}
    config_path = Path(source) / CONFIG_FILE
    if config_path.exists():
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Invalid {CONFIG_FILE}: expected a mapping, got {type(data).__name__}")
        # Jekyll keys the generator does not use are ignored
        data = {k: v for k, v in data.items() if k in Settings.model_fields}

    for name in Settings.model_fields:
        if val := os.getenv(f"{ENV_PREFIX}{name.upper()}"):
            data[name] = val

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)
