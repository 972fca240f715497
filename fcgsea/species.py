"""
Species Support for fcgsea

Resolves the organism of an analysis run from user input and exposes the
codes each external collaborator needs:
- NCBI taxon id (mygene identifier lookup)
- KEGG organism code (KEGG gene sets and pathway diagrams)
- gseapy organism name (Enrichr GO libraries)
"""

import logging
from dataclasses import dataclass


# Supported species configuration
SUPPORTED_SPECIES = {
    'human': {
        'scientific_name': 'Homo sapiens',
        'taxon_id': 9606,
        'kegg_code': 'hsa',
        'gseapy_organism': 'Human',
        'common_aliases': ['human', 'hsa', 'homo sapiens', 'h.sapiens', 'org.hs.eg.db', '9606'],
    },
    'mouse': {
        'scientific_name': 'Mus musculus',
        'taxon_id': 10090,
        'kegg_code': 'mmu',
        'gseapy_organism': 'Mouse',
        'common_aliases': ['mouse', 'mmu', 'mus musculus', 'm.musculus', 'org.mm.eg.db', '10090'],
    },
    'rat': {
        'scientific_name': 'Rattus norvegicus',
        'taxon_id': 10116,
        'kegg_code': 'rno',
        'gseapy_organism': 'Human',
        'common_aliases': ['rat', 'rno', 'rattus norvegicus', 'r.norvegicus', 'org.rn.eg.db', '10116'],
    },
    'fly': {
        'scientific_name': 'Drosophila melanogaster',
        'taxon_id': 7227,
        'kegg_code': 'dme',
        'gseapy_organism': 'Fly',
        'common_aliases': ['fly', 'dme', 'drosophila melanogaster', 'd.melanogaster', 'org.dm.eg.db', '7227'],
    },
}


@dataclass(frozen=True)
class SpeciesInfo:
    """Resolved organism for a run"""
    species_key: str
    scientific_name: str
    taxon_id: int
    kegg_code: str
    gseapy_organism: str


def resolve_species(species_input) -> SpeciesInfo:
    """
    Validate and normalize a user-specified species.

    Args:
        species_input: e.g. 'mouse', 'mmu', 'Mus musculus', 'org.Mm.eg.db', 10090

    Returns:
        SpeciesInfo for the matching species

    Raises:
        ValueError: If species is not supported
    """
    species_lower = str(species_input).lower().strip()

    for species_key, config in SUPPORTED_SPECIES.items():
        if species_lower == species_key or species_lower in config['common_aliases']:
            info = SpeciesInfo(
                species_key=species_key,
                scientific_name=config['scientific_name'],
                taxon_id=config['taxon_id'],
                kegg_code=config['kegg_code'],
                gseapy_organism=config['gseapy_organism'],
            )
            logging.debug(f"Resolved species '{species_input}' -> {species_key}")
            return info

    raise ValueError(
        f"Unsupported species: '{species_input}'. "
        f"Supported: {list(SUPPORTED_SPECIES.keys())}"
    )
