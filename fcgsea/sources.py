"""
Gene Set Source Manager for fcgsea

Provides the gene set databases the two enrichment runs are tested against:
- Gene Ontology (BP / MF / CC / ALL) from gseapy's Enrichr libraries, keyed by symbol
- KEGG pathways from the KEGG REST API, keyed by UniProt, NCBI gene id or KEGG id
- Custom GMT files
"""

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import gseapy as gp

from .gene_set_utils import load_gmt, save_gmt
from .kegg_client import KEGGClient
from .species import SpeciesInfo

GO_ID_PATTERN = re.compile(r'\((GO:\d{7})\)\s*$')

# gseapy organism -> ontology -> Enrichr library
GO_LIBRARIES = {
    'Human': {
        'BP': 'GO_Biological_Process_2023',
        'MF': 'GO_Molecular_Function_2023',
        'CC': 'GO_Cellular_Component_2023',
    },
    'Mouse': {
        'BP': 'GO_Biological_Process_2023',
        'MF': 'GO_Molecular_Function_2023',
        'CC': 'GO_Cellular_Component_2023',
    },
    'Fly': {
        'BP': 'GO_Biological_Process_2018',
        'MF': 'GO_Molecular_Function_2018',
        'CC': 'GO_Cellular_Component_2018',
    },
}

KEGG_KEY_DATABASES = {
    'uniprot': 'uniprot',
    'ncbi-geneid': 'ncbi-geneid',
}


@dataclass
class GeneSetCollection:
    """Gene sets plus the annotations the result tables and plots need"""
    source: str
    version: str
    namespace: str
    gene_sets: Dict[str, List[str]]
    descriptions: Dict[str, str] = field(default_factory=dict)
    categories: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.gene_sets)

    def description(self, term: str) -> str:
        return self.descriptions.get(term, term)

    def term_id(self, term: str) -> str:
        """Short identifier for a term (GO id when present)"""
        match = GO_ID_PATTERN.search(term)
        return match.group(1) if match else term


class GeneSetSourceManager:
    """
    Loads gene set databases and caches downloads on disk.
    """

    CACHE_DAYS = 30

    def __init__(self, cache_dir: Optional[Path] = None, kegg_client: Optional[KEGGClient] = None):
        """
        Initialize source manager.

        Args:
            cache_dir: Directory for caching gene sets
            kegg_client: KEGG REST client (one sharing this cache root is created if omitted)
        """
        self.cache_dir = Path(cache_dir) if cache_dir else Path.home() / '.fcgsea' / 'cache' / 'genesets'
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.kegg_client = kegg_client or KEGGClient(cache_dir=self.cache_dir.parent / 'kegg')

        self.metadata_file = self.cache_dir / 'metadata.json'
        self.metadata = self._load_metadata()

    def _load_metadata(self) -> Dict:
        """Load cache metadata"""
        if self.metadata_file.exists():
            try:
                with open(self.metadata_file, 'r') as f:
                    return json.load(f)
            except (OSError, ValueError) as e:
                logging.warning(f"Failed to load metadata: {e}")
        return {}

    def _save_metadata(self):
        """Save cache metadata"""
        try:
            with open(self.metadata_file, 'w') as f:
                json.dump(self.metadata, f, indent=2)
        except OSError as e:
            logging.error(f"Failed to save metadata: {e}")

    def _calculate_hash(self, file_path: Path) -> str:
        """Calculate SHA256 hash of a file"""
        sha256 = hashlib.sha256()
        with open(file_path, 'rb') as f:
            for chunk in iter(lambda: f.read(8192), b''):
                sha256.update(chunk)
        return sha256.hexdigest()[:16]  # Short hash

    def _is_cache_valid(self, cache_key: str) -> bool:
        """Check if a cached library is still valid"""
        meta = self.metadata.get(cache_key)
        if not meta:
            return False

        if not Path(meta.get('cache_file', '')).exists():
            return False

        cached_date = datetime.fromisoformat(meta.get('download_date', '2000-01-01'))
        if datetime.now() - cached_date > timedelta(days=self.CACHE_DAYS):
            logging.info(f"Cache expired for {cache_key}")
            return False

        return True

    def _enrichr_library(self, library_name: str, organism: str) -> Dict[str, List[str]]:
        """Fetch one Enrichr library through gseapy, with file caching"""
        cache_key = f"{library_name}_{organism}".lower()
        if self._is_cache_valid(cache_key):
            logging.info(f"Loading {library_name} ({organism}) from cache")
            gene_sets, _ = load_gmt(self.metadata[cache_key]['cache_file'])
            return gene_sets

        logging.info(f"Downloading {library_name} ({organism}) via gseapy")
        try:
            library = gp.get_library(name=library_name, organism=organism)
        except Exception as e:
            logging.error(f"Download failed for {library_name}: {e}")
            raise RuntimeError(f"Failed to download {library_name}: {e}") from e

        gene_sets = {}
        for term, genes_data in library.items():
            # genes_data can be either a list or a tab-separated string
            if isinstance(genes_data, str):
                genes = [g.strip() for g in genes_data.split('\t') if g.strip()]
            else:
                genes = [str(g).strip() for g in genes_data if str(g).strip()]
            if genes:
                gene_sets[term] = genes

        cache_file = self.cache_dir / f"{cache_key}.gmt"
        save_gmt(gene_sets, cache_file)
        self.metadata[cache_key] = {
            'cache_file': str(cache_file),
            'download_date': datetime.now().isoformat(),
            'hash': self._calculate_hash(cache_file),
            'version': library_name,
        }
        self._save_metadata()

        logging.info(f"Downloaded {len(gene_sets)} gene sets from {library_name}")
        return gene_sets

    def load_go(self, ontology: str, species: SpeciesInfo) -> GeneSetCollection:
        """
        Load GO gene sets keyed by gene symbol.

        Args:
            ontology: 'BP', 'MF', 'CC' or 'ALL' (all three merged)
            species: Resolved species of the run
        """
        ontology = ontology.upper()
        libraries = GO_LIBRARIES.get(species.gseapy_organism, GO_LIBRARIES['Human'])
        selected = list(libraries) if ontology == 'ALL' else [ontology]
        unknown = [o for o in selected if o not in libraries]
        if unknown:
            raise ValueError(f"Unknown GO ontology: {ontology}. Supported: {list(libraries) + ['ALL']}")

        gene_sets: Dict[str, List[str]] = {}
        categories: Dict[str, str] = {}
        versions = []
        for sub_ontology in selected:
            library_name = libraries[sub_ontology]
            versions.append(library_name)
            for term, genes in self._enrichr_library(library_name, species.gseapy_organism).items():
                gene_sets[term] = genes
                categories[term] = sub_ontology

        descriptions = {term: GO_ID_PATTERN.sub('', term).strip() for term in gene_sets}
        return GeneSetCollection(
            source=f"GO_{ontology}",
            version='+'.join(versions),
            namespace='SYMBOL',
            gene_sets=gene_sets,
            descriptions=descriptions,
            categories=categories,
            metadata={'organism': species.gseapy_organism, 'ontology': ontology},
        )

    def load_kegg(self, organism: str, key_type: str = 'uniprot') -> GeneSetCollection:
        """
        Load KEGG pathway gene sets for an organism code ('mmu').

        Args:
            organism: KEGG organism code
            key_type: 'uniprot', 'ncbi-geneid' or 'kegg' (KEGG gene id without prefix)
        """
        key_type = key_type.lower()
        if key_type not in KEGG_KEY_DATABASES and key_type != 'kegg':
            raise ValueError(f"Unsupported KEGG key type: {key_type}")

        names = self.kegg_client.list_pathways(organism)
        links = self.kegg_client.link_pathway_genes(organism)
        conversions = None
        if key_type in KEGG_KEY_DATABASES:
            conversions = self.kegg_client.convert_ids(organism, KEGG_KEY_DATABASES[key_type])

        gene_sets: Dict[str, List[str]] = {}
        for pathway_id, kegg_genes in links.items():
            members = []
            for kegg_gene in kegg_genes:
                if conversions is None:
                    members.append(kegg_gene.split(':', 1)[-1])
                else:
                    members.extend(conversions.get(kegg_gene, []))
            members = list(dict.fromkeys(members))
            if members:
                gene_sets[pathway_id] = members

        logging.info(f"Built {len(gene_sets)} KEGG gene sets for {organism} keyed by {key_type}")
        return GeneSetCollection(
            source='KEGG',
            version=datetime.now().strftime('%Y-%m-%d'),
            namespace=key_type.upper(),
            gene_sets=gene_sets,
            descriptions={pid: names.get(pid, pid) for pid in gene_sets},
            metadata={'organism': organism, 'key_type': key_type},
        )

    def load_custom_gmt(self, gmt_path, source: str = 'custom', namespace: str = 'SYMBOL') -> GeneSetCollection:
        """Load gene sets from a user GMT file"""
        gmt_path = Path(gmt_path)
        gene_sets, descriptions = load_gmt(gmt_path)
        return GeneSetCollection(
            source=source,
            version=gmt_path.name,
            namespace=namespace,
            gene_sets=gene_sets,
            descriptions=descriptions,
            metadata={'file_hash': self._calculate_hash(gmt_path), 'path': str(gmt_path)},
        )

    def clear_cache(self):
        """Remove cached Enrichr libraries"""
        for file in self.cache_dir.glob("*.gmt"):
            file.unlink()
        self.metadata = {}
        self._save_metadata()
        logging.info("Cleared gene set cache")
