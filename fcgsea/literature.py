"""
PubMed trend of enriched terms, from Europe PMC yearly hit counts.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Sequence

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd
import requests

logger = logging.getLogger("FCGSEA.Literature")


class EuropePMCClient:
    """
    Counts Europe PMC publications matching a query.
    """

    API_URL = "https://www.ebi.ac.uk/europepmc/webservices/rest/search"

    def __init__(self, cache_dir: Optional[Path] = None, timeout: int = 30):
        self.cache_dir = Path(cache_dir) if cache_dir else Path.home() / '.fcgsea' / 'cache' / 'europepmc'
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout
        self._cache_file = self.cache_dir / 'hit_counts.json'
        self._counts = self._load_cache()

    def _load_cache(self) -> Dict[str, int]:
        if not self._cache_file.exists():
            return {}
        try:
            with open(self._cache_file, 'r') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Europe PMC cache read error: {e}")
            return {}

    def _save_cache(self):
        try:
            with open(self._cache_file, 'w') as f:
                json.dump(self._counts, f)
        except OSError as e:
            logger.warning(f"Failed to save Europe PMC cache: {e}")

    def hit_count(self, query: str) -> int:
        """Number of records matching a Europe PMC query"""
        # the current year is still accumulating records
        current_year = str(datetime.now().year)
        cacheable = current_year not in query
        if cacheable and query in self._counts:
            return self._counts[query]

        params = {'query': query, 'format': 'json', 'pageSize': 1, 'resultType': 'idlist'}
        try:
            response = requests.get(self.API_URL, params=params, timeout=self.timeout)
            response.raise_for_status()
            count = int(response.json().get('hitCount', 0))
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Europe PMC query failed ({query}): {e}")
            raise RuntimeError(f"Europe PMC query failed: {e}") from e

        if cacheable:
            self._counts[query] = count
            self._save_cache()
        return count


def pmc_trend(
    terms: Sequence[str],
    years: Sequence[int],
    proportion: bool = False,
    client: Optional[EuropePMCClient] = None
) -> pd.DataFrame:
    """
    Yearly publication counts for each term.

    Args:
        terms: Search terms (quoted as phrases)
        years: Publication years
        proportion: Divide by the total number of publications that year

    Returns:
        Long table with columns term, year, value
    """
    client = client or EuropePMCClient()
    years = list(years)
    totals = {y: client.hit_count(f"PUB_YEAR:{y}") for y in years} if proportion else {}

    rows = []
    for term in terms:
        phrase = term.replace('"', '')
        for year in years:
            count = client.hit_count(f'"{phrase}" AND PUB_YEAR:{year}')
            value = count / totals[year] if proportion and totals[year] else count
            rows.append({'term': term, 'year': year, 'value': value})
        logger.info(f"Europe PMC trend collected for '{term}'")

    return pd.DataFrame(rows, columns=['term', 'year', 'value'])


def plot_trend(trend: pd.DataFrame, output_path, proportion: bool = False, dpi: int = 300) -> Path:
    """Line plot of a pmc_trend() table"""
    fig, ax = plt.subplots(figsize=(8, 5))
    for term, group in trend.groupby('term', sort=False):
        ax.plot(group['year'], group['value'], marker='o', label=term)
    ax.set_xlabel('Year')
    ax.set_ylabel('Proportion of publications' if proportion else 'Number of publications')
    ax.legend(fontsize=7, loc='upper left')

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    logger.info(f"Saved PubMed trend to {output_path}")
    return output_path
