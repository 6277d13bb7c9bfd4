"""Plugin resolution: which generator features the manifest and config turn on"""

import logging
from typing import Optional

from blogpub.core.manifest import Manifest, ManifestEntry


logger = logging.getLogger(__name__)

FEED_PLUGIN = "jekyll-feed"

# Plugins implemented natively, with the upstream release whose behavior is mirrored
SUPPORTED_PLUGINS: dict[str, str] = {
    FEED_PLUGIN: "0.17.0",
}
# Meta-packages that pull in other plugins
BUNDLES: dict[str, tuple[str, set[str]]] = {
    "github-pages": ("232", {FEED_PLUGIN}),
}


def _emulated_version(name: str) -> Optional[str]:
    if name in SUPPORTED_PLUGINS:
        return SUPPORTED_PLUGINS[name]
    if name in BUNDLES:
        return BUNDLES[name][0]
    return None


def enabled_plugins(configured: list[str], manifest: Optional[Manifest], platform: str) -> set[str]:
    """Supported plugins named in the config or declared as active plugin-group manifest entries."""
    names = set(configured)
    if manifest is not None:
        names.update(e.name for e in manifest.plugins() if e.active_for(platform))

    enabled = set()
    for name in names:
        if name in BUNDLES:
            enabled.update(BUNDLES[name][1])
        elif name in SUPPORTED_PLUGINS:
            enabled.add(name)
        else:
            logger.debug("Plugin '%s' has no built-in equivalent; ignored", name)
    return enabled


def version_conflicts(manifest: Manifest, platform: str) -> list[tuple[ManifestEntry, str]]:
    """Active entries whose requirement excludes the version whose behavior is emulated."""
    conflicts = []
    for entry in manifest.active(platform):
        version = _emulated_version(entry.name)
        if version and not entry.satisfied_by(version):
            conflicts.append((entry, version))
    return conflicts
