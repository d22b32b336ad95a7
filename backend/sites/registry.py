"""
Site registry.

Responsibilities:
- Load the ordered list of site descriptors from sites.json once at startup
- Resolve a slug to its descriptor
- Report whether a site's content directory is available

Non-responsibilities:
- No run tracking (see orchestrator.run_tracker)
- No mutation after load
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Sequence


class SiteRegistryError(Exception):
    """Raised when sites.json is missing, unreadable, or malformed."""


@dataclass(frozen=True)
class SiteDescriptor:
    """
    One registered site.

    content_dir is None when the site has no local content source; such a
    site is listed but cannot be audited.
    """

    slug: str
    name: str
    url: str
    content_dir: str | None = None

    @staticmethod
    def from_dict(raw: Any) -> SiteDescriptor:
        if not isinstance(raw, dict):
            raise SiteRegistryError(f"site entry must be an object, got {type(raw).__name__}")

        missing = [key for key in ("slug", "name", "url") if not raw.get(key)]
        if missing:
            raise SiteRegistryError(f"site entry missing {', '.join(missing)}: {raw!r}")

        content_dir = raw.get("contentDir")
        return SiteDescriptor(
            slug=str(raw["slug"]),
            name=str(raw["name"]),
            url=str(raw["url"]),
            content_dir=str(content_dir) if content_dir else None,
        )

    def content_available(self) -> bool:
        """True if content_dir is set and points to an existing directory."""
        return bool(self.content_dir) and Path(self.content_dir).is_dir()

    def to_dict(self) -> dict[str, Any]:
        """Wire shape, keyed the same way as sites.json."""
        return {
            "slug": self.slug,
            "name": self.name,
            "url": self.url,
            "contentDir": self.content_dir,
        }


class SiteRegistry:
    """Read-only, ordered collection of site descriptors."""

    def __init__(self, sites: Sequence[SiteDescriptor]) -> None:
        by_slug: dict[str, SiteDescriptor] = {}
        for site in sites:
            if site.slug in by_slug:
                raise SiteRegistryError(f"duplicate site slug: {site.slug}")
            by_slug[site.slug] = site

        self._sites: tuple[SiteDescriptor, ...] = tuple(sites)
        self._by_slug = by_slug

    @staticmethod
    def load(path: Path) -> SiteRegistry:
        """
        Load sites.json.

        Raises:
            SiteRegistryError if the file cannot be read or parsed.
        """
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise SiteRegistryError(f"cannot read {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise SiteRegistryError(f"invalid JSON in {path}: {exc}") from exc

        if not isinstance(raw, list):
            raise SiteRegistryError(f"{path} must contain a JSON list of sites")

        return SiteRegistry([SiteDescriptor.from_dict(entry) for entry in raw])

    def get(self, slug: str) -> SiteDescriptor | None:
        return self._by_slug.get(slug)

    def __iter__(self) -> Iterator[SiteDescriptor]:
        return iter(self._sites)

    def __len__(self) -> int:
        return len(self._sites)
