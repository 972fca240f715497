"""
Gene ID Mapping Layer for fcgsea

Converts gene symbols into a cross-referenced namespace (UniProt, Entrez,
Ensembl) using the mygene.info API with a local JSON cache, and reduces the
many-to-many lookup result to a one-to-one IdentifierMapping.
"""

import hashlib
import json
import logging
import time
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import mygene

from .ranking import DuplicatePolicy, is_missing
from .species import SpeciesInfo, resolve_species


@dataclass
class MappingReport:
    """Report on gene ID mapping results"""
    input_count: int
    mapped_count: int
    unmapped_count: int
    duplicated_count: int
    unmapped_ids: List[str]
    duplicated_ids: List[str]
    source_type: str
    target_type: str
    species: str
    policy: str

    def to_dict(self) -> Dict:
        return asdict(self)


class IdentifierMapping(Mapping):
    """
    One-to-one source -> target identifier mapping.

    Built by map_identifiers(); read-only afterwards.
    """

    def __init__(
        self,
        pairs: Iterable[Tuple[str, str]],
        source_type: str = 'SYMBOL',
        target_type: str = 'UNIPROT',
        unmapped: Sequence[str] = (),
        duplicated: Sequence[str] = ()
    ):
        self._data: Dict[str, str] = dict(pairs)
        self.source_type = source_type
        self.target_type = target_type
        self.unmapped: Tuple[str, ...] = tuple(unmapped)
        self.duplicated: Tuple[str, ...] = tuple(duplicated)

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return (
            f"IdentifierMapping({self.source_type}->{self.target_type}, "
            f"mapped={len(self)}, unmapped={len(self.unmapped)})"
        )

    def to_dict(self) -> Dict[str, str]:
        return dict(self._data)

    def report(self, species: str = '', policy: DuplicatePolicy = DuplicatePolicy.KEEP_FIRST) -> MappingReport:
        return MappingReport(
            input_count=len(self._data) + len(self.unmapped),
            mapped_count=len(self._data),
            unmapped_count=len(self.unmapped),
            duplicated_count=len(self.duplicated),
            unmapped_ids=list(self.unmapped[:10]),  # Show first 10
            duplicated_ids=list(self.duplicated[:10]),
            source_type=self.source_type,
            target_type=self.target_type,
            species=species,
            policy=DuplicatePolicy.parse(policy).value,
        )


def map_identifiers(
    symbols: Iterable[str],
    pairs: Iterable[Tuple[str, Optional[str]]],
    policy: DuplicatePolicy = DuplicatePolicy.KEEP_FIRST,
    source_type: str = 'SYMBOL',
    target_type: str = 'UNIPROT'
) -> IdentifierMapping:
    """
    Reduce a many-to-many lookup result to one target per source.

    Pairs are considered in the order the lookup returned them; with the
    default policy the first target seen for a source is kept. Symbols
    without any pair are recorded as unmapped, not treated as errors.

    Args:
        symbols: Source identifiers that were looked up
        pairs: Raw (source_id, target_id) pairs from the lookup service
        policy: KEEP_FIRST (default) or KEEP_LAST candidate per source

    Returns:
        IdentifierMapping
    """
    policy = DuplicatePolicy.parse(policy)
    requested = list(dict.fromkeys(str(s) for s in symbols))
    wanted = set(requested)

    chosen: Dict[str, str] = {}
    candidates: Dict[str, set] = {}
    for source, target in pairs:
        if source is None or is_missing(target):
            continue
        source, target = str(source), str(target)
        if source not in wanted:
            continue
        candidates.setdefault(source, set()).add(target)
        if source in chosen and policy is DuplicatePolicy.KEEP_FIRST:
            continue
        chosen[source] = target

    # order follows the requested symbols
    ordered = [(s, chosen[s]) for s in requested if s in chosen]
    unmapped = [s for s in requested if s not in chosen]
    duplicated = [s for s in requested if len(candidates.get(s, ())) > 1]

    if unmapped:
        logging.info(
            f"{len(unmapped)}/{len(requested)} {source_type} identifiers have no "
            f"{target_type} mapping and were dropped"
        )
    if duplicated:
        logging.info(
            f"{len(duplicated)} {source_type} identifiers mapped to several "
            f"{target_type} ids; kept {policy.value} occurrence"
        )

    return IdentifierMapping(
        ordered,
        source_type=source_type,
        target_type=target_type,
        unmapped=unmapped,
        duplicated=duplicated,
    )


class GeneIdMapper:
    """
    Identifier lookup backed by mygene.info.

    Supported namespaces: SYMBOL, ENTREZID, ENSEMBL, UNIPROT
    """

    # namespace -> (query scope, returned field)
    NAMESPACES = {
        'SYMBOL': ('symbol', 'symbol'),
        'ENTREZID': ('entrezgene', 'entrezgene'),
        'ENSEMBL': ('ensembl.gene', 'ensembl.gene'),
        'UNIPROT': ('uniprot', 'uniprot'),
    }

    CACHE_MAX_AGE = 30 * 24 * 3600

    def __init__(self, cache_dir: Optional[Path] = None, client=None):
        """
        Initialize mapper with optional cache directory.

        Args:
            cache_dir: Directory for caching mygene results (simple JSON cache)
            client: Object with a mygene-compatible querymany(); defaults to MyGeneInfo
        """
        self.cache_dir = Path(cache_dir) if cache_dir else Path.home() / '.fcgsea' / 'cache' / 'geneid'
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.mg = client or mygene.MyGeneInfo()

    @classmethod
    def _namespace(cls, name: str) -> Tuple[str, str]:
        key = str(name).upper()
        if key not in cls.NAMESPACES:
            raise ValueError(
                f"Unsupported identifier namespace: '{name}'. "
                f"Supported: {list(cls.NAMESPACES)}"
            )
        return cls.NAMESPACES[key]

    def _cache_key(self, from_type: str, to_type: str, taxon_id: int, ids: Sequence[str]) -> str:
        digest = hashlib.sha256("\n".join(sorted(ids)).encode()).hexdigest()[:16]
        return f"{from_type}_{to_type}_{taxon_id}_{digest}".lower()

    def _load_from_cache(self, cache_key: str) -> Optional[List[Tuple[str, str]]]:
        """Load lookup result from local JSON cache"""
        cache_file = self.cache_dir / f"{cache_key}.json"
        if cache_file.exists():
            try:
                with open(cache_file, 'r') as f:
                    cached = json.load(f)
                if time.time() - cached.get('timestamp', 0) < self.CACHE_MAX_AGE:
                    logging.info(f"Cache hit: {cache_key}")
                    return [tuple(p) for p in cached.get('data', [])]
            except (OSError, ValueError) as e:
                logging.warning(f"Cache read error: {e}")
        return None

    def _save_to_cache(self, cache_key: str, pairs: List[Tuple[str, str]]):
        """Save lookup result to local JSON cache"""
        cache_file = self.cache_dir / f"{cache_key}.json"
        try:
            with open(cache_file, 'w') as f:
                json.dump({'timestamp': time.time(), 'data': [list(p) for p in pairs]}, f)
        except OSError as e:
            logging.warning(f"Cache write error: {e}")

    @staticmethod
    def _extract_targets(hit: Dict, field: str) -> List[str]:
        """Pull every target value for ``field`` out of one mygene hit, in order."""
        value = hit
        for part in field.split('.'):
            if isinstance(value, list):
                # e.g. several ensembl records for one gene
                value = [v.get(part) for v in value if isinstance(v, dict)]
            elif isinstance(value, dict):
                value = value.get(part)
            else:
                return []
            if value is None:
                return []

        if field == 'uniprot' and isinstance(value, dict):
            # reviewed accessions first
            ordered = []
            for section in ('Swiss-Prot', 'TrEMBL'):
                entry = value.get(section)
                if entry is None:
                    continue
                ordered.extend(entry if isinstance(entry, list) else [entry])
            value = ordered

        if not isinstance(value, list):
            value = [value]

        targets = []
        for v in value:
            if isinstance(v, list):
                targets.extend(str(x) for x in v if x is not None)
            elif v is not None:
                targets.append(str(v))
        return targets

    def lookup(
        self,
        gene_ids: Sequence[str],
        from_type: str = 'SYMBOL',
        to_type: str = 'UNIPROT',
        species='human'
    ) -> List[Tuple[str, str]]:
        """
        Look up target identifiers for the given source identifiers.

        Args:
            gene_ids: Source identifiers
            from_type: Source namespace
            to_type: Target namespace
            species: Species name/alias or SpeciesInfo

        Returns:
            (source_id, target_id) pairs in the order mygene returned them.
            Unmatched inputs are absent; a source may appear several times.
        """
        scope, _ = self._namespace(from_type)
        _, field = self._namespace(to_type)
        info = species if isinstance(species, SpeciesInfo) else resolve_species(species)

        ids = list(dict.fromkeys(str(g).strip() for g in gene_ids if g is not None and str(g).strip()))
        if not ids:
            return []

        cache_key = self._cache_key(from_type, to_type, info.taxon_id, ids)
        cached = self._load_from_cache(cache_key)
        if cached is not None:
            return cached

        logging.info(
            f"Querying mygene: {len(ids)} ids, {from_type} -> {to_type}, "
            f"species={info.species_key}"
        )
        try:
            results = self.mg.querymany(
                ids,
                scopes=scope,
                fields=field,
                species=info.taxon_id,
                returnall=True,
                verbose=False
            )
        except Exception as e:
            logging.error(f"mygene query failed: {e}")
            raise RuntimeError(f"Identifier lookup failed: {e}") from e

        pairs: List[Tuple[str, str]] = []
        for hit in results.get('out', []):
            if hit.get('notfound'):
                continue
            query = hit.get('query')
            if query is None:
                continue
            for target in self._extract_targets(hit, field):
                pairs.append((str(query), target))

        self._save_to_cache(cache_key, pairs)
        return pairs

    def map_genes(
        self,
        gene_ids: Sequence[str],
        from_type: str = 'SYMBOL',
        to_type: str = 'UNIPROT',
        species='human',
        policy: DuplicatePolicy = DuplicatePolicy.KEEP_FIRST
    ) -> Tuple[IdentifierMapping, MappingReport]:
        """
        Look up and deduplicate in one step, with reporting.

        Returns:
            Tuple of (mapping, mapping_report)
        """
        info = species if isinstance(species, SpeciesInfo) else resolve_species(species)
        pairs = self.lookup(gene_ids, from_type, to_type, info)
        mapping = map_identifiers(
            gene_ids, pairs,
            policy=policy,
            source_type=from_type.upper(),
            target_type=to_type.upper()
        )
        return mapping, mapping.report(species=info.species_key, policy=policy)
