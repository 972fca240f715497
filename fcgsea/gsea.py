"""
GSEA (Gene Set Enrichment Analysis) for fcgsea

Wrapper around gseapy prerank. The permutation statistic is gseapy's;
this module prepares its inputs, applies the requested p-value adjustment
and cutoff, and turns the result table into typed records.
"""

import logging
import math
import warnings
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import gseapy as gp
import numpy as np
import pandas as pd
from statsmodels.stats.multitest import multipletests

from .gene_set_utils import align_gene_set_case, filter_gene_sets_by_size
from .ranking import RankedSeries

# R-style method names -> statsmodels multipletests methods
P_ADJUST_METHODS = {
    'none': None,
    'holm': 'holm',
    'hochberg': 'simes-hochberg',
    'hommel': 'hommel',
    'bonferroni': 'bonferroni',
    'BH': 'fdr_bh',
    'fdr': 'fdr_bh',
    'BY': 'fdr_by',
}


@dataclass
class GSEAOptions:
    """Options handed to the rank-based enrichment run"""
    gene_set_ontology: str = 'ALL'
    min_set_size: int = 3
    max_set_size: int = 800
    p_value_cutoff: float = 0.05
    p_adjust_method: str = 'none'
    permutation_num: int = 10000
    seed: int = 42
    threads: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class GSEAResult:
    """Result from GSEA analysis for a single gene set"""

    term: str
    term_id: str
    description: str
    category: str

    # GSEA statistics
    es: float  # Enrichment Score
    nes: float  # Normalized Enrichment Score
    p_value: float
    p_adjust: float
    q_value: float  # gseapy's own FDR
    fwer: float  # Family-Wise Error Rate

    # Leading edge
    core_enrichment: List[str]
    set_size: int

    @property
    def sign(self) -> str:
        return 'activated' if self.nes > 0 else 'suppressed'

    @property
    def leading_edge_size(self) -> int:
        return len(self.core_enrichment)

    def to_dict(self) -> Dict:
        d = asdict(self)
        d['sign'] = self.sign
        d['core_enrichment'] = '/'.join(self.core_enrichment)
        return d


@dataclass
class GSEARun:
    """Everything produced by one prerank run"""
    database: str
    results: List[GSEAResult]
    tested: int
    options: GSEAOptions
    ranking: pd.Series
    namespace: str
    prerank: Any = None
    warnings: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.results)

    def top(self, n: int) -> List[GSEAResult]:
        return self.results[:n]

    def get(self, term: str) -> Optional[GSEAResult]:
        return next((r for r in self.results if r.term == term), None)

    def to_frame(self) -> pd.DataFrame:
        """Result table, one row per enriched gene set"""
        columns = [
            'term_id', 'description', 'category', 'set_size', 'es', 'nes',
            'p_value', 'p_adjust', 'q_value', 'fwer', 'sign', 'core_enrichment'
        ]
        return pd.DataFrame([r.to_dict() for r in self.results], columns=columns + ['term'])

    def save_csv(self, output_path) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(output_path, index=False)
        logging.info(f"Exported {len(self.results)} {self.database} GSEA terms to {output_path}")
        return output_path


def adjust_pvalues(p_values, method: str) -> np.ndarray:
    """
    Adjust p-values for multiple testing.

    Args:
        p_values: Raw p-values
        method: R-style method name ('none', 'BH', 'bonferroni', ...)
    """
    if method not in P_ADJUST_METHODS:
        raise ValueError(f"Unknown p_adjust_method '{method}'. Supported: {list(P_ADJUST_METHODS)}")
    p_values = np.asarray(p_values, dtype=float)
    sm_method = P_ADJUST_METHODS[method]
    if sm_method is None or p_values.size == 0:
        return p_values.copy()
    _, adjusted, _, _ = multipletests(p_values, method=sm_method)
    return adjusted


def _parse_set_size(row: pd.Series) -> int:
    """Matched set size; the 'Tag %' column reads 'hits/size' in gseapy >= 1.0"""
    tag = row.get('Tag %')
    if isinstance(tag, str) and '/' in tag:
        try:
            return int(tag.split('/')[-1])
        except ValueError:
            pass
    for column in ('Matched Size', 'matched_size', 'Geneset Size', 'Size'):
        value = row.get(column)
        if value is not None and not pd.isna(value):
            return int(value)
    return 0


def _float(value, default: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    return default if math.isnan(value) else value


def prepare_ranking(series: RankedSeries) -> pd.Series:
    """gseapy input: finite scores only, rank order preserved"""
    rnk = series.to_series()
    finite = np.isfinite(rnk.values)
    if not finite.all():
        logging.warning(f"GSEA input: dropping {int((~finite).sum())} non-finite scores")
        rnk = rnk[finite]
    return rnk


def run_gsea_prerank(
    series: RankedSeries,
    collection,
    options: Optional[GSEAOptions] = None,
    database: Optional[str] = None
) -> GSEARun:
    """
    Run GSEA prerank on a ranked series.

    Args:
        series: Ranked identifiers -> scores
        collection: GeneSetCollection in the same namespace as ``series``
        options: Set size bounds, permutations, adjustment and cutoff
        database: Label used in logs and file names (defaults to the collection source)

    Returns:
        GSEARun with the results passing the adjusted p-value cutoff
    """
    options = options or GSEAOptions()
    database = database or collection.source
    if options.p_adjust_method not in P_ADJUST_METHODS:
        raise ValueError(
            f"Unknown p_adjust_method '{options.p_adjust_method}'. "
            f"Supported: {list(P_ADJUST_METHODS)}"
        )

    rnk = prepare_ranking(series)
    if rnk.empty:
        raise ValueError(f"No finite scores to rank for {database}")

    gene_sets = align_gene_set_case(collection.gene_sets, rnk.index)
    gene_sets = filter_gene_sets_by_size(gene_sets, rnk.index, options.min_set_size, options.max_set_size)
    if not gene_sets:
        message = (
            f"No {database} gene set overlaps the {series.namespace} ranking within "
            f"[{options.min_set_size}, {options.max_set_size}] genes"
        )
        logging.warning(message)
        return GSEARun(database, [], 0, options, rnk, series.namespace, warnings=[message])

    logging.info(
        f"Running GSEA prerank ({database}): {len(rnk)} genes, "
        f"{len(gene_sets)} gene sets, {options.permutation_num} permutations"
    )

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            pre_res = gp.prerank(
                rnk=rnk,
                gene_sets=gene_sets,
                min_size=options.min_set_size,
                max_size=options.max_set_size,
                permutation_num=options.permutation_num,
                threads=options.threads,
                outdir=None,
                no_plot=True,
                seed=options.seed,
                verbose=False
            )
    except Exception as e:
        logging.error(f"GSEA failed: {e}")
        raise RuntimeError(f"GSEA analysis failed ({database}): {e}") from e

    results = parse_prerank_table(pre_res.res2d, collection, options)
    tested = len(pre_res.res2d)

    logging.info(
        f"GSEA complete ({database}): {len(results)}/{tested} gene sets pass "
        f"{options.p_adjust_method} adjusted p < {options.p_value_cutoff}"
    )
    return GSEARun(database, results, tested, options, rnk, series.namespace, pre_res)


def parse_prerank_table(res2d: pd.DataFrame, collection, options: GSEAOptions) -> List[GSEAResult]:
    """Convert a gseapy res2d table to GSEAResults, adjusted and filtered."""
    if res2d is None or res2d.empty:
        return []

    p_values = [_float(v, 1.0) for v in res2d.get('NOM p-val', pd.Series([1.0] * len(res2d)))]
    adjusted = adjust_pvalues(p_values, options.p_adjust_method)

    results = []
    for (_, row), p_value, p_adjust in zip(res2d.iterrows(), p_values, adjusted):
        if p_adjust >= options.p_value_cutoff:
            continue

        term = str(row.get('Term', ''))
        lead_genes_str = row.get('Lead_genes', '')
        lead_genes = [g for g in str(lead_genes_str).split(';') if g] if isinstance(lead_genes_str, str) else []

        results.append(GSEAResult(
            term=term,
            term_id=collection.term_id(term),
            description=collection.description(term),
            category=collection.categories.get(term, collection.source),
            es=_float(row.get('ES'), 0.0),
            nes=_float(row.get('NES'), 0.0),
            p_value=p_value,
            p_adjust=float(p_adjust),
            q_value=_float(row.get('FDR q-val'), 1.0),
            fwer=_float(row.get('FWER p-val'), 1.0),
            core_enrichment=lead_genes,
            set_size=_parse_set_size(row),
        ))

    results.sort(key=lambda r: (r.p_value, -abs(r.nes)))
    return results
