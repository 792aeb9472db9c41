import json
import logging
from importlib import resources
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional
from urllib.parse import urlparse

from ...core.models import CredentialSummary
from .models import SiteConfig, SiteConfigError, site_from_dict

logger = logging.getLogger(__name__)

BUNDLED_SITES = "default_sites.json"


def hostname_of(url: str) -> str:
    """Lowercase hostname of a URL without a leading ``www.``. Bare hosts are accepted."""
    if not url:
        return ""
    try:
        parsed = urlparse(url if "://" in url else f"//{url}")
        host = parsed.hostname or ""
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host


def domain_matches(hostname: str, domain: str) -> bool:
    """Bidirectional substring match between a hostname and a configured domain.

    Deliberately loose so that regional and mobile hosts (``m.facebook.com``,
    ``mail.google.com``) match. Short domains over-match: ``x.com`` also
    matches ``netflix.com``.
    """
    hostname = hostname.lower()
    domain = domain.lower()
    if not hostname or not domain:
        return False
    return domain in hostname or hostname in domain


class SiteDirectory:
    """Lookup table of site configurations, loaded once per run."""

    def __init__(self, sites: Dict[str, SiteConfig], source: str = ""):
        self._sites = dict(sites)
        self.source = source

    @classmethod
    def from_dict(cls, document: Dict, source: str = "") -> "SiteDirectory":
        """Validate a whole configuration document.

        Raises:
            SiteConfigError: On the first invalid site or step
        """
        if not isinstance(document, dict) or not isinstance(document.get("sites"), dict):
            raise SiteConfigError(f"{source or 'site configuration'}: top-level 'sites' object is required")
        sites = {}
        for key, data in document["sites"].items():
            site = site_from_dict(key, data)
            sites[site.key] = site
        return cls(sites, source=source)

    @classmethod
    def from_file(cls, path: Path) -> "SiteDirectory":
        path = Path(path)
        if not path.exists():
            raise SiteConfigError(f"Site configuration not found: {path}")
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise SiteConfigError(f"Invalid JSON in {path}: {e}") from e
        return cls.from_dict(document, source=str(path))

    @classmethod
    def bundled(cls) -> "SiteDirectory":
        text = resources.files(__package__).joinpath(BUNDLED_SITES).read_text(encoding="utf-8")
        return cls.from_dict(json.loads(text), source="bundled")

    @classmethod
    def load(cls, path: Optional[Path], required: bool = False) -> "SiteDirectory":
        """Load the operator's file, falling back to the bundled sites when it does not exist."""
        if path is not None and (required or Path(path).exists()):
            return cls.from_file(path)
        logger.debug("No site configuration file, using bundled sites")
        return cls.bundled()

    def __len__(self) -> int:
        return len(self._sites)

    def __iter__(self) -> Iterator[SiteConfig]:
        return iter(self._sites.values())

    def keys(self):
        return self._sites.keys()

    def get(self, key: str) -> Optional[SiteConfig]:
        return self._sites.get(key.lower())

    def resolve(self, identifier: str) -> Optional[SiteConfig]:
        """Find the site for a URL or a free-text site name. Returns None when nothing matches."""
        if not identifier:
            return None
        if "://" in identifier:
            return self.resolve_url(identifier)
        return self.resolve_name(identifier)

    def resolve_url(self, url: str) -> Optional[SiteConfig]:
        hostname = hostname_of(url)
        if not hostname:
            return None
        for site in self._sites.values():
            if any(domain_matches(hostname, d) for d in site.domains):
                return site
        return None

    def resolve_name(self, name: str) -> Optional[SiteConfig]:
        lower = name.strip().lower()
        if not lower:
            return None
        if lower in self._sites:
            return self._sites[lower]
        for site in self._sites.values():
            if lower in site.name.lower() or any(lower in d for d in site.domains):
                return site
        return None

    def find_credential(self, site: SiteConfig,
                        entries: Iterable[CredentialSummary]) -> Optional[CredentialSummary]:
        """Pick the stored credential for a site: URL match first, then name containing the site key."""
        entries = list(entries)
        for entry in entries:
            hostname = hostname_of(entry.url)
            if hostname and any(domain_matches(hostname, d) for d in site.domains):
                return entry
        for entry in entries:
            if site.key in (entry.name or "").lower():
                return entry
        return None
