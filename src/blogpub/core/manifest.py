"""Dependency manifest: parse the Gemfile that declares the generator and its plugins.

Only the declarative subset of the Bundler DSL is understood:

    source "https://rubygems.org"
    gem "github-pages", group: :jekyll_plugins
    group :jekyll_plugins do
      gem "jekyll-feed", "~> 0.12"
    end
    platforms :mingw, :x64_mingw, :mswin do
      gem "tzinfo-data"
    end
    gem "wdm", "~> 0.1.1", :platforms => [:mingw, :x64_mingw, :mswin]

Anything else (method calls, conditionals, string interpolation) is rejected
with a ManifestError carrying the offending line number.
"""

from __future__ import annotations

import logging
import re
import struct
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional


logger = logging.getLogger(__name__)

DEFAULT_GROUP = "default"
PLUGIN_GROUP = "jekyll_plugins"
IGNORED_STATEMENTS = {"ruby", "gemspec", "git_source", "plugin"}
BLOCK_STATEMENTS = {"group", "platforms", "platform", "source", "install_if"}

# Guard names that apply on each detected platform
PLATFORM_MATCHES: dict[str, set[str]] = {
    "ruby":      {"ruby", "mri"},
    "mingw":     {"mingw", "windows"},
    "x64_mingw": {"x64_mingw", "windows"},
    "mswin":     {"mswin", "windows"},
    "jruby":     {"jruby"},
}

REQUIREMENT_RE = re.compile(r'^\s*(=|!=|>=|<=|~>|>|<)?\s*([0-9]+(?:[.-]?[0-9A-Za-z]+)*)\s*$')
KEY_OPTION_RE = re.compile(r'^([A-Za-z_]\w*):\s+(.+)$', re.DOTALL)
ROCKET_OPTION_RE = re.compile(r'^(:\w+|"[^"]*"|\'[^\']*\')\s*=>\s*(.+)$', re.DOTALL)
STATEMENT_RE = re.compile(r'^([a-z_]+)\b\s*(.*)$')


class ManifestError(ValueError):
    """Raised when the manifest cannot be parsed."""

    def __init__(self, message: str, line: int = 0):
        self.line = line
        super().__init__(f"line {line}: {message}" if line else message)


def _segments(version: str) -> list:
    """RubyGems-style version segments: '1.0.a1' -> [1, 0, 'a', 1]."""
    return [int(p) if p.isdigit() else p for p in re.findall(r'[0-9]+|[A-Za-z]+', version)]


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0, 1 comparing versions the way RubyGems does (trailing zeros ignored)."""
    sa, sb = _segments(a), _segments(b)
    for i in range(max(len(sa), len(sb))):
        x = sa[i] if i < len(sa) else 0
        y = sb[i] if i < len(sb) else 0
        if x == y:
            continue
        # a letter segment marks a prerelease, which sorts below any release number
        if isinstance(x, str) and isinstance(y, int):
            return -1
        if isinstance(x, int) and isinstance(y, str):
            return 1
        return -1 if x < y else 1
    return 0


def _bump(version: str) -> str:
    """Upper bound for '~>': drop the last release segment and increment the one before."""
    release = []
    for seg in _segments(version):
        if isinstance(seg, str):
            break
        release.append(seg)
    if len(release) > 1:
        release.pop()
    release[-1] += 1
    return ".".join(str(s) for s in release)


@dataclass(frozen=True)
class Requirement:
    """A single version constraint such as '~> 0.12' or '>= 1.7'."""
    op: str
    version: str

    @classmethod
    def parse(cls, text: str) -> "Requirement":
        m = REQUIREMENT_RE.match(text)
        if not m:
            raise ManifestError(f"Invalid version requirement: {text!r}")
        return cls(m.group(1) or "=", m.group(2))

    def satisfied_by(self, version: str) -> bool:
        cmp = compare_versions(version, self.version)
        if self.op == "~>":
            return cmp >= 0 and compare_versions(version, _bump(self.version)) < 0
        return {
            "=":  cmp == 0,
            "!=": cmp != 0,
            ">":  cmp > 0,
            "<":  cmp < 0,
            ">=": cmp >= 0,
            "<=": cmp <= 0,
        }[self.op]

    def __str__(self) -> str:
        return f"{self.op} {self.version}"


ANY_VERSION = Requirement(">=", "0")


@dataclass
class ManifestEntry:
    """One declared dependency: name, version constraints, group membership, platform guard."""
    name: str
    requirements: list[Requirement] = field(default_factory=lambda: [ANY_VERSION])
    groups: tuple[str, ...] = (DEFAULT_GROUP,)
    platforms: tuple[str, ...] = ()
    options: dict[str, Any] = field(default_factory=dict)
    line: int = 0

    @property
    def is_plugin(self) -> bool:
        return PLUGIN_GROUP in self.groups

    def active_for(self, platform: str) -> bool:
        """True when the entry has no platform guard or the guard names this platform."""
        if not self.platforms:
            return True
        matches = PLATFORM_MATCHES.get(platform, {platform})
        return any(p in matches for p in self.platforms)

    def satisfied_by(self, version: str) -> bool:
        return all(r.satisfied_by(version) for r in self.requirements)

    def requirement_text(self) -> str:
        return ", ".join(str(r) for r in self.requirements)


@dataclass
class Manifest:
    """Parsed manifest: package sources plus entries in declaration order."""
    sources: list[str] = field(default_factory=list)
    entries: list[ManifestEntry] = field(default_factory=list)

    def base(self) -> list[ManifestEntry]:
        return [e for e in self.entries if not e.is_plugin]

    def plugins(self) -> list[ManifestEntry]:
        return [e for e in self.entries if e.is_plugin]

    def active(self, platform: str) -> list[ManifestEntry]:
        return [e for e in self.entries if e.active_for(platform)]

    def get(self, name: str) -> Optional[ManifestEntry]:
        return next((e for e in self.entries if e.name == name), None)


def current_platform() -> str:
    """Map the running interpreter to the Bundler platform name used by guards."""
    if sys.platform.startswith("win"):
        return "x64_mingw" if struct.calcsize("P") == 8 else "mingw"
    if sys.platform.startswith("java"):
        return "jruby"
    return "ruby"


def _strip_comment(line: str, lineno: int) -> str:
    """Remove a trailing '#' comment that is not inside a string literal."""
    quote, escaped = None, False
    for i, ch in enumerate(line):
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
        elif ch in "\"'":
            quote = ch
        elif ch == "#":
            return line[:i].rstrip()
    if quote:
        raise ManifestError("Unterminated string literal", lineno)
    return line.strip()


def _split_args(text: str, lineno: int) -> list[str]:
    """Split call arguments on top-level commas, respecting quotes and brackets."""
    args, depth, quote, start = [], 0, None, 0
    for i, ch in enumerate(text):
        if quote:
            if ch == quote:
                quote = None
        elif ch in "\"'":
            quote = ch
        elif ch in "[{(":
            depth += 1
        elif ch in "]})":
            depth -= 1
            if depth < 0:
                raise ManifestError(f"Unbalanced {ch!r}", lineno)
        elif ch == "," and depth == 0:
            args.append(text[start:i].strip())
            start = i + 1
    if depth:
        raise ManifestError("Unbalanced brackets", lineno)
    tail = text[start:].strip()
    if tail:
        args.append(tail)
    if any(not a for a in args):
        raise ManifestError("Empty argument", lineno)
    return args


def _value(text: str, lineno: int) -> Any:
    """Evaluate a literal: string, symbol, array, true/false/nil."""
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        if text[0] == '"' and "#{" in text:
            raise ManifestError("String interpolation is not supported", lineno)
        return text[1:-1]
    if re.fullmatch(r':\w+', text):
        return text[1:]
    if text.startswith("[") and text.endswith("]"):
        inner = text[1:-1].strip()
        return [_value(v, lineno) for v in _split_args(inner, lineno)] if inner else []
    if text in ("true", "false"):
        return text == "true"
    if text == "nil":
        return None
    raise ManifestError(f"Unsupported expression: {text}", lineno)


def _call_args(text: str, lineno: int) -> tuple[list[Any], dict[str, Any]]:
    """Parse 'a, b, key: v, :key => v' into positional values and options."""
    if text.startswith("(") and text.endswith(")"):
        text = text[1:-1]
    positional: list[Any] = []
    options: dict[str, Any] = {}
    for arg in _split_args(text, lineno):
        if m := KEY_OPTION_RE.match(arg):
            options[m.group(1)] = _value(m.group(2), lineno)
        elif m := ROCKET_OPTION_RE.match(arg):
            options[str(_value(m.group(1), lineno))] = _value(m.group(2), lineno)
        elif options:
            raise ManifestError("Positional argument after options", lineno)
        else:
            positional.append(_value(arg, lineno))
    return positional, options


def _as_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, list):
        return tuple(str(v) for v in value)
    return (str(value),)


def _gem_entry(args: list[Any], options: dict[str, Any], stack: list, lineno: int) -> ManifestEntry:
    if not args or not isinstance(args[0], str):
        raise ManifestError("gem requires a name", lineno)
    name, *versions = args
    requirements = []
    for v in versions:
        if not isinstance(v, str):
            raise ManifestError(f"Invalid version requirement for {name}: {v!r}", lineno)
        try:
            requirements.extend(Requirement.parse(part) for part in v.split(","))
        except ManifestError as e:
            raise ManifestError(str(e), lineno) from e

    groups = _as_tuple(options.pop("group", None)) + _as_tuple(options.pop("groups", None))
    if not groups:
        groups = tuple(g for kind, values, _ in stack if kind == "group" for g in values)
    platforms = _as_tuple(options.pop("platforms", None)) + _as_tuple(options.pop("platform", None))
    platforms += tuple(p for kind, values, _ in stack if kind in ("platforms", "platform") for p in values)

    return ManifestEntry(
        name=name,
        requirements=requirements or [ANY_VERSION],
        groups=tuple(dict.fromkeys(groups)) or (DEFAULT_GROUP,),
        platforms=tuple(dict.fromkeys(platforms)),
        options=options,
        line=lineno,
    )


def parse_manifest(text: str) -> Manifest:
    """Parse Gemfile text into a Manifest. Raises ManifestError on unsupported syntax."""
    manifest = Manifest()
    stack: list[tuple[str, tuple[str, ...], int]] = []   # (keyword, args, opening line)

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = _strip_comment(raw, lineno)
        if not line:
            continue
        if line == "end":
            if not stack:
                raise ManifestError("'end' without an open block", lineno)
            stack.pop()
            continue

        m = STATEMENT_RE.match(line)
        if not m:
            raise ManifestError(f"Unrecognized statement: {line}", lineno)
        keyword, rest = m.groups()

        opens_block = rest == "do" or rest.endswith(" do") or rest.endswith(")do")
        if opens_block:
            rest = rest[:-2].rstrip()

        if keyword in IGNORED_STATEMENTS:
            logger.debug("Manifest line %d: ignoring '%s'", lineno, keyword)
            if opens_block:
                stack.append(("other", (), lineno))
            continue

        args, options = _call_args(rest, lineno) if rest else ([], {})

        if opens_block:
            if keyword not in BLOCK_STATEMENTS:
                raise ManifestError(f"'{keyword}' cannot open a block", lineno)
            stack.append((keyword, _as_tuple(args), lineno))
            if keyword == "source":
                manifest.sources.extend(str(a) for a in args)
            continue

        if keyword == "source":
            if len(args) != 1 or not isinstance(args[0], str):
                raise ManifestError("source requires a single URL", lineno)
            manifest.sources.append(args[0])
        elif keyword == "gem":
            manifest.entries.append(_gem_entry(args, options, stack, lineno))
        else:
            raise ManifestError(f"Unrecognized statement: {keyword}", lineno)

    if stack:
        keyword, _, opened = stack[-1]
        raise ManifestError(f"Unclosed '{keyword}' block (missing 'end')", opened)
    return manifest


def load_manifest(path: Path) -> Manifest:
    """Read and parse a manifest file."""
    return parse_manifest(Path(path).read_text(encoding="utf-8"))


def duplicates(manifest: Manifest) -> list[tuple[str, str, list[int]]]:
    """Return (name, group, lines) for every name declared more than once within a group."""
    seen: dict[tuple[str, str], list[int]] = {}
    for entry in manifest.entries:
        for group in entry.groups:
            seen.setdefault((entry.name, group), []).append(entry.line)
    return [(name, group, lines) for (name, group), lines in seen.items() if len(lines) > 1]
