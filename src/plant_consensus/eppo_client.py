"""EPPO API client used as the regulated-pathogen registry."""

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from .config import Config
from .errors import AdapterUnavailable
from .models import PATHOGEN_REGISTRY
from .retrieval import query_host_codes, select_host

logger = logging.getLogger(__name__)


class EPPOClient:
    """Client for EPPO Global Database API."""

    source_id = PATHOGEN_REGISTRY

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        cache_dir: Path = None,
        sqlite_path: Path = None,
        use_cache: bool = True,
        timeout: float = None,
    ):
        """Initialize EPPO client.

        Args:
            api_key: EPPO API key (defaults to Config.EPPO_API_KEY)
            base_url: Base URL for API (defaults to Config.EPPO_BASE_URL)
            cache_dir: Directory for caching responses (defaults to Config.EPPO_CACHE_DIR)
            sqlite_path: EPPO codes SQLite dump (defaults to Config.SQLITE_PATH)
            use_cache: Whether to use caching
            timeout: Request timeout in seconds (defaults to Config.REGISTRY_TIMEOUT)
        """
        self.api_key = api_key or Config.EPPO_API_KEY
        self.base_url = base_url or Config.EPPO_BASE_URL
        self.cache_dir = cache_dir or Config.EPPO_CACHE_DIR
        self.sqlite_path = sqlite_path or Config.SQLITE_PATH
        self.use_cache = use_cache
        self.timeout = timeout or Config.REGISTRY_TIMEOUT

        self.cache_hits = 0
        self.cache_misses = 0
        self.api_calls = 0

    def _cache_file(self, eppocode: str, endpoint: str) -> Path:
        return self.cache_dir / "taxons" / eppocode / f"{endpoint}.json"

    def _load_cached(self, eppocode: str, endpoint: str) -> Optional[Any]:
        """Load cached response from disk."""
        if not self.use_cache:
            return None

        cache_file = self._cache_file(eppocode, endpoint)
        if not cache_file.exists():
            return None

        try:
            with open(cache_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.debug("Ignoring unreadable cache file %s: %s", cache_file, e)
            return None

    def _save_cached(self, eppocode: str, endpoint: str, data: Any):
        """Save response to cache."""
        if not self.use_cache:
            return

        cache_file = self._cache_file(eppocode, endpoint)
        try:
            cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(cache_file, "w", encoding="utf-8") as f:
                json.dump(data, f)
        except OSError as e:
            logger.debug("Could not write cache file %s: %s", cache_file, e)

    def _get_endpoint(
        self, eppocode: str, endpoint: str, max_retries: int = None
    ) -> Optional[Any]:
        """Fetch data from EPPO API endpoint with retries.

        Args:
            eppocode: EPPO code to fetch
            endpoint: API endpoint (e.g., 'overview', 'pests')
            max_retries: Maximum retry attempts

        Returns:
            JSON response data or None on failure
        """
        if max_retries is None:
            max_retries = Config.EPPO_MAX_RETRIES

        # Check cache first
        cached = self._load_cached(eppocode, endpoint)
        if cached is not None:
            self.cache_hits += 1
            return cached

        url = f"{self.base_url.rstrip('/')}/taxons/taxon/{eppocode}/{endpoint}"
        headers = {"X-Api-Key": self.api_key} if self.api_key else {}

        self.cache_misses += 1
        for attempt in range(max_retries):
            try:
                self.api_calls += 1
                time.sleep(Config.EPPO_RATE_LIMIT_DELAY)

                resp = requests.get(url, headers=headers, timeout=self.timeout)
                resp.raise_for_status()
                data = resp.json()

                if data is not None:
                    self._save_cached(eppocode, endpoint, data)

                return data

            except (requests.RequestException, ValueError) as e:
                logger.debug("EPPO %s/%s attempt %d failed: %s", eppocode, endpoint, attempt + 1, e)
                if attempt < max_retries - 1:
                    # Exponential backoff
                    time.sleep(0.5 * (2**attempt))

        return None

    def fetch_pests(self, eppocode: str) -> List[str]:
        """Fetch names of pests and pathogens recorded on a host.

        Args:
            eppocode: EPPO code of the host plant

        Returns:
            Pathogen names in registry order, de-duplicated

        Raises:
            AdapterUnavailable: The endpoint could not be fetched
        """
        data = self._get_endpoint(eppocode, "pests")
        if data is None:
            raise AdapterUnavailable(self.source_id, f"pests for {eppocode} could not be retrieved")

        names: List[str] = []
        for entry in data if isinstance(data, list) else []:
            if not isinstance(entry, dict):
                continue
            name = entry.get("prefname") or entry.get("fullname")
            if isinstance(name, str) and name.strip():
                names.append(name.strip())
        return list(dict.fromkeys(names))

    def pathogens_for(self, species: str) -> List[str]:
        """Look up regulated pathogens known for a species.

        Args:
            species: Identified species name (common or scientific)

        Returns:
            Up to Config.MAX_REGISTRY_PATHOGENS pathogen names; empty when the
            species cannot be resolved to a host code
        """
        host = select_host(query_host_codes(Path(self.sqlite_path), species))
        if host is None:
            logger.info("No EPPO host code for '%s'", species)
            return []

        logger.debug("Resolved '%s' to EPPO host %s (%s)", species, host.eppocode, host.fullname)
        return self.fetch_pests(host.eppocode)[: Config.MAX_REGISTRY_PATHOGENS]

    def get_stats(self) -> Dict[str, int]:
        """Get client statistics.

        Returns:
            Dictionary with cache_hits, cache_misses, and api_calls
        """
        return {
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "api_calls": self.api_calls,
        }
