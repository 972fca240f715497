"""
fcgsea: gene set enrichment analysis on a fold-change table.

Builds symbol-keyed and mapped ranked gene lists from a differential
expression table and runs GO and KEGG GSEA on them.
"""

__version__ = "1.0.0"

from .errors import (
    AllScoresMissingError,
    EmptyInputError,
    MalformedInputRowError,
    NoMappedIdentifiersError,
    RankedListError,
)
from .id_mapper import GeneIdMapper, IdentifierMapping, MappingReport, map_identifiers
from .loader import load_gene_records, read_fold_change_table, records_from_frame
from .ranking import (
    DuplicatePolicy,
    GeneRecord,
    RankedSeries,
    build_primary_ranked_series,
    build_secondary_ranked_series,
)

__all__ = [
    "__version__",
    "RankedListError",
    "EmptyInputError",
    "AllScoresMissingError",
    "NoMappedIdentifiersError",
    "MalformedInputRowError",
    "DuplicatePolicy",
    "GeneRecord",
    "RankedSeries",
    "build_primary_ranked_series",
    "build_secondary_ranked_series",
    "GeneIdMapper",
    "IdentifierMapping",
    "MappingReport",
    "map_identifiers",
    "load_gene_records",
    "read_fold_change_table",
    "records_from_frame",
]
