"""
KEGG REST API Client

Fetches pathway listings, gene-pathway links, identifier conversions,
KGML files and pathway images from https://rest.kegg.jp.
Responses are cached on disk.
"""

import hashlib
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import requests


class KEGGClient:
    """
    Client for the KEGG REST API.
    """

    API_URL = "https://rest.kegg.jp"

    def __init__(self, cache_dir: Optional[Path] = None, max_age_days: int = 30, timeout: int = 60):
        """
        Initialize KEGG client.

        Args:
            cache_dir: Directory for caching API responses.
            max_age_days: Cached responses older than this are refetched.
            timeout: HTTP timeout in seconds.
        """
        self.cache_dir = Path(cache_dir) if cache_dir else Path.home() / '.fcgsea' / 'cache' / 'kegg'
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_age_days = max_age_days
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({'User-Agent': 'fcgsea/1.0'})

    def _cache_path(self, endpoint: str, binary: bool) -> Path:
        safe_key = hashlib.md5(endpoint.encode()).hexdigest()
        return self.cache_dir / f"{safe_key}.{'bin' if binary else 'txt'}"

    def _load_from_cache(self, endpoint: str, binary: bool):
        cache_path = self._cache_path(endpoint, binary)
        if not cache_path.exists():
            return None
        age = datetime.now().timestamp() - cache_path.stat().st_mtime
        if age > 86400 * self.max_age_days:
            return None
        try:
            return cache_path.read_bytes() if binary else cache_path.read_text(encoding='utf-8')
        except OSError as e:
            logging.warning(f"KEGG cache read error: {e}")
            return None

    def _save_to_cache(self, endpoint: str, data, binary: bool):
        cache_path = self._cache_path(endpoint, binary)
        try:
            if binary:
                cache_path.write_bytes(data)
            else:
                cache_path.write_text(data, encoding='utf-8')
        except OSError as e:
            logging.warning(f"Failed to save KEGG cache: {e}")

    def _request(self, endpoint: str, binary: bool = False):
        """GET an endpoint, using the cache when possible."""
        cached = self._load_from_cache(endpoint, binary)
        if cached is not None:
            return cached

        url = f"{self.API_URL}/{endpoint}"
        logging.debug(f"KEGG API request: {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logging.error(f"KEGG API request failed for {endpoint}: {e}")
            raise RuntimeError(f"KEGG request failed ({endpoint}): {e}") from e

        data = response.content if binary else response.text
        self._save_to_cache(endpoint, data, binary)
        return data

    @staticmethod
    def _pairs(text: str) -> List[Tuple[str, str]]:
        pairs = []
        for line in text.splitlines():
            parts = line.strip().split('\t')
            if len(parts) >= 2:
                pairs.append((parts[0], parts[1]))
        return pairs

    def list_pathways(self, organism: str) -> Dict[str, str]:
        """
        Pathway id -> name for an organism.

        The trailing organism label ("... - Mus musculus (house mouse)") is removed.
        """
        names = {}
        for pathway_id, name in self._pairs(self._request(f"list/pathway/{organism}")):
            pathway_id = pathway_id.replace('path:', '')
            names[pathway_id] = re.sub(r'\s+-\s+[^-]+\([^)]*\)\s*$', '', name).strip()
        return names

    def link_pathway_genes(self, organism: str) -> Dict[str, List[str]]:
        """Pathway id -> KEGG gene ids ('mmu:12345')"""
        links: Dict[str, List[str]] = {}
        for gene, pathway in self._pairs(self._request(f"link/pathway/{organism}")):
            links.setdefault(pathway.replace('path:', ''), []).append(gene)
        return links

    def convert_ids(self, organism: str, target_db: str) -> Dict[str, List[str]]:
        """
        KEGG gene id -> identifiers in ``target_db`` ('uniprot' or 'ncbi-geneid').

        The database prefix ('up:', 'ncbi-geneid:') is removed from the values.
        """
        conversions: Dict[str, List[str]] = {}
        for kegg_id, other in self._pairs(self._request(f"conv/{target_db}/{organism}")):
            conversions.setdefault(kegg_id, []).append(other.split(':', 1)[-1])
        return conversions

    def get_kgml(self, pathway_id: str) -> str:
        return self._request(f"get/{pathway_id}/kgml")

    def get_image(self, pathway_id: str) -> bytes:
        return self._request(f"get/{pathway_id}/image", binary=True)
