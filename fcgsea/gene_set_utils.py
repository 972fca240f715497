"""
Gene Set Utilities for fcgsea
Handles GMT file reading/writing, size filtering and identifier alignment.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple


def load_gmt(file_path) -> Tuple[Dict[str, List[str]], Dict[str, str]]:
    """
    Load gene sets from GMT (Gene Matrix Transposed) format file.

    GMT Format: Each line is tab-separated:
    <gene_set_name> <description> <gene1> <gene2> ... <geneN>

    Args:
        file_path: Path to GMT file

    Returns:
        Tuple of (gene_sets, descriptions), both keyed by gene set name

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file is not valid UTF-8
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"GMT file not found: {file_path}")

    gene_sets: Dict[str, List[str]] = {}
    descriptions: Dict[str, str] = {}

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            for line_num, line in enumerate(f, 1):
                line = line.rstrip('\r\n')

                # Skip empty lines and comments
                if not line.strip() or line.startswith('#'):
                    continue

                parts = line.split('\t')

                if len(parts) < 3:
                    logging.warning(
                        f"Line {line_num}: Expected at least 3 fields (name, description, genes), "
                        f"got {len(parts)}. Skipping."
                    )
                    continue

                name = parts[0].strip()
                genes = [g.strip() for g in parts[2:] if g.strip()]

                if not genes:
                    logging.warning(f"Line {line_num}: Gene set '{name}' has no genes. Skipping.")
                    continue

                if name in gene_sets:
                    logging.warning(f"Line {line_num}: Duplicate gene set name '{name}'. Merging genes.")
                    gene_sets[name] = list(dict.fromkeys(gene_sets[name] + genes))
                else:
                    gene_sets[name] = list(dict.fromkeys(genes))
                    descriptions[name] = parts[1].strip() or name

    except UnicodeDecodeError as e:
        raise ValueError(f"Invalid file encoding. Expected UTF-8: {e}") from e

    logging.info(f"Loaded {len(gene_sets)} gene sets from {file_path}")
    return gene_sets, descriptions


def save_gmt(
    gene_sets: Dict[str, List[str]],
    file_path,
    descriptions: Optional[Dict[str, str]] = None
) -> None:
    """
    Save gene sets to GMT format file.

    Args:
        gene_sets: Dictionary mapping gene set names to gene lists
        file_path: Output file path
        descriptions: Optional per-set description (defaults to the set name)
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    descriptions = descriptions or {}

    with open(file_path, 'w', encoding='utf-8') as f:
        for name, genes in gene_sets.items():
            description = descriptions.get(name, name).replace('\t', ' ')
            f.write(f"{name}\t{description}\t" + "\t".join(genes) + "\n")

    logging.info(f"Saved {len(gene_sets)} gene sets to {file_path}")


def filter_gene_sets_by_size(
    gene_sets: Dict[str, List[str]],
    universe: Iterable[str],
    min_size: int,
    max_size: int
) -> Dict[str, List[str]]:
    """Keep sets whose overlap with ``universe`` lies within [min_size, max_size]"""
    universe = set(universe)
    kept = {}
    for name, genes in gene_sets.items():
        matched = sum(1 for g in set(genes) if g in universe)
        if min_size <= matched <= max_size:
            kept[name] = genes
    logging.info(
        f"{len(kept)}/{len(gene_sets)} gene sets within size bounds [{min_size}, {max_size}]"
    )
    return kept


def align_gene_set_case(
    gene_sets: Dict[str, List[str]],
    identifiers: Iterable[str]
) -> Dict[str, List[str]]:
    """
    Rewrite gene set members to the casing used by the ranked identifiers.

    Enrichr libraries list upper-case human symbols while mouse or fly
    tables use mixed case ('Nlgn3'). Members that match an identifier
    case-insensitively take that identifier's spelling; the rest are kept.
    """
    by_upper: Dict[str, str] = {}
    for identifier in identifiers:
        by_upper.setdefault(identifier.upper(), identifier)

    aligned = {}
    for name, genes in gene_sets.items():
        aligned[name] = list(dict.fromkeys(by_upper.get(g.upper(), g) for g in genes))
    return aligned


def get_gene_set_stats(gene_sets: Dict[str, List[str]]) -> Dict[str, Any]:
    """
    Get statistics about gene sets.

    Returns:
        Dictionary with stats: total_sets, total_genes, unique_genes, avg_size, min_size, max_size
    """
    if not gene_sets:
        return {
            "total_sets": 0,
            "total_genes": 0,
            "unique_genes": 0,
            "avg_size": 0,
            "min_size": 0,
            "max_size": 0
        }

    sizes = [len(genes) for genes in gene_sets.values()]
    all_genes = set()
    for genes in gene_sets.values():
        all_genes.update(genes)

    return {
        "total_sets": len(gene_sets),
        "total_genes": sum(sizes),
        "unique_genes": len(all_genes),
        "avg_size": sum(sizes) / len(sizes),
        "min_size": min(sizes),
        "max_size": max(sizes)
    }
