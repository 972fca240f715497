"""
Ranked Gene List Builder for fcgsea

Turns differential-expression records into cleaned, uniquely keyed,
descending-sorted score series ready for prerank GSEA, either in the
gene symbol namespace or in a cross-referenced namespace.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import pandas as pd

from .errors import AllScoresMissingError, EmptyInputError, NoMappedIdentifiersError


class DuplicatePolicy(str, Enum):
    """Which occurrence survives when a key is seen more than once."""
    KEEP_FIRST = "first"
    KEEP_LAST = "last"

    @classmethod
    def parse(cls, value) -> 'DuplicatePolicy':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown duplicate policy: '{value}'. "
                f"Supported: {[p.value for p in cls]}"
            )


@dataclass(frozen=True)
class GeneRecord:
    """One row of the fold-change table"""
    gene_symbol: str
    log2_fold_change: Optional[float]
    row_index: int = -1

    @property
    def has_score(self) -> bool:
        return not is_missing(self.log2_fold_change)


def is_missing(score) -> bool:
    """True for None, NaN and pandas NA"""
    return score is None or bool(pd.isna(score))


class RankedSeries(Mapping):
    """
    Immutable identifier -> score mapping, ordered by descending score.

    Ties keep the input order of the surviving records. Iteration,
    ``keys()``, ``items()`` and ``to_series()`` all follow the rank order.
    """

    __slots__ = ('_entries', '_index', 'namespace')

    def __init__(self, entries: Iterable[Tuple[str, float]], namespace: str = 'SYMBOL'):
        entries = tuple((str(k), float(v)) for k, v in entries)
        index = {}
        for key, score in entries:
            if key in index:
                raise ValueError(f"Duplicate identifier in ranked series: '{key}'")
            index[key] = score
        object.__setattr__(self, '_entries', entries)
        object.__setattr__(self, '_index', index)
        object.__setattr__(self, 'namespace', namespace)

    def __setattr__(self, name, value):
        raise AttributeError("RankedSeries is immutable")

    def __getitem__(self, key: str) -> float:
        return self._index[key]

    def __iter__(self) -> Iterator[str]:
        return (key for key, _ in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other) -> bool:
        if isinstance(other, RankedSeries):
            return self._entries == other._entries and self.namespace == other.namespace
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self._entries, self.namespace))

    def __repr__(self) -> str:
        head = ", ".join(f"{k}: {v:g}" for k, v in self._entries[:5])
        more = ", ..." if len(self._entries) > 5 else ""
        return f"RankedSeries[{self.namespace}]({{{head}{more}}}, n={len(self)})"

    @property
    def entries(self) -> Tuple[Tuple[str, float], ...]:
        return self._entries

    def identifiers(self) -> List[str]:
        return [key for key, _ in self._entries]

    def to_series(self) -> pd.Series:
        """Copy into a pandas Series (the rnk format gseapy expects)"""
        return pd.Series(
            [score for _, score in self._entries],
            index=[key for key, _ in self._entries],
            name='log2fc',
            dtype=float,
        )

    def to_dict(self) -> Dict[str, float]:
        return dict(self._entries)


def _collect_scores(
    keyed_scores: Iterable[Tuple[str, Optional[float]]],
    policy: DuplicatePolicy
) -> Tuple[Dict[str, Optional[float]], int]:
    """Resolve duplicate keys. Returns the surviving entries and the duplicate count."""
    collected: Dict[str, Optional[float]] = {}
    duplicates = 0

    for key, score in keyed_scores:
        if key in collected:
            duplicates += 1
            if policy is DuplicatePolicy.KEEP_FIRST:
                continue
            # the surviving record takes the later input position
            del collected[key]
        collected[key] = score

    return collected, duplicates


def _rank(
    keyed_scores: Sequence[Tuple[str, Optional[float]]],
    policy: DuplicatePolicy,
    namespace: str
) -> RankedSeries:
    collected, duplicates = _collect_scores(keyed_scores, policy)
    if duplicates:
        logging.info(
            f"Resolved {duplicates} duplicate {namespace} identifiers "
            f"(policy: keep {policy.value})"
        )

    defined = [(key, score) for key, score in collected.items() if not is_missing(score)]
    dropped = len(collected) - len(defined)
    if not defined:
        raise AllScoresMissingError(
            f"All {len(collected)} {namespace} scores are missing; nothing to rank",
            examined=len(keyed_scores)
        )
    if dropped:
        logging.info(f"Dropped {dropped}/{len(collected)} {namespace} entries with missing scores")

    # sorted() is stable, so tied scores keep input order
    ranked = sorted(defined, key=lambda item: -float(item[1]))
    return RankedSeries(ranked, namespace=namespace)


def build_primary_ranked_series(
    records: Sequence[GeneRecord],
    policy: DuplicatePolicy = DuplicatePolicy.KEEP_LAST
) -> RankedSeries:
    """
    Build the ranked series keyed by gene symbol.

    Args:
        records: Input fold-change records
        policy: Which record wins when a symbol repeats (default: last)

    Returns:
        RankedSeries in the SYMBOL namespace

    Raises:
        EmptyInputError: No records supplied
        AllScoresMissingError: Every surviving score is missing
    """
    records = list(records)
    if not records:
        raise EmptyInputError("No gene records supplied", examined=0)

    policy = DuplicatePolicy.parse(policy)
    return _rank(
        [(r.gene_symbol, r.log2_fold_change) for r in records],
        policy,
        'SYMBOL'
    )


def build_secondary_ranked_series(
    records: Sequence[GeneRecord],
    mapping: Mapping,
    policy: DuplicatePolicy = DuplicatePolicy.KEEP_LAST,
    namespace: Optional[str] = None
) -> RankedSeries:
    """
    Build the ranked series in the mapped namespace.

    Records whose symbol is not a key of ``mapping`` are dropped. The rest
    are re-keyed to their target identifier and ranked like the primary
    series.

    Raises:
        EmptyInputError: No records supplied
        NoMappedIdentifiersError: No record has an entry in the mapping
        AllScoresMissingError: Every mapped score is missing
    """
    records = list(records)
    if not records:
        raise EmptyInputError("No gene records supplied", examined=0)

    policy = DuplicatePolicy.parse(policy)
    namespace = namespace or getattr(mapping, 'target_type', None) or 'MAPPED'

    keyed = [
        (mapping[r.gene_symbol], r.log2_fold_change)
        for r in records
        if r.gene_symbol in mapping
    ]
    if not keyed:
        raise NoMappedIdentifiersError(
            f"None of the {len(records)} records has a {namespace} mapping",
            examined=len(records)
        )

    unmapped = len(records) - len(keyed)
    if unmapped:
        logging.info(f"Dropped {unmapped}/{len(records)} records without a {namespace} mapping")

    return _rank(keyed, policy, namespace)
