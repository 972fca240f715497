"""
Analysis configuration for fcgsea.

Settings come from (lowest to highest precedence) the dataclass defaults,
a YAML file, FCGSEA_* environment variables (a .env file is honoured) and
explicit overrides from the command line.
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from .gsea import P_ADJUST_METHODS
from .ranking import DuplicatePolicy
from .species import resolve_species

ENV_PREFIX = 'FCGSEA_'

GO_ONTOLOGIES = ('BP', 'MF', 'CC', 'ALL')
KEGG_KEY_TYPES = ('uniprot', 'ncbi-geneid', 'kegg')

# KEGG gene set keys that can match each mapped namespace; the first is the default
KEGG_KEYS_FOR_NAMESPACE = {
    'UNIPROT': ('uniprot',),
    'ENTREZID': ('ncbi-geneid', 'kegg'),
}


@dataclass
class AnalysisConfig:
    """Everything a single analysis run needs"""

    input_path: Optional[Path] = None
    results_dir: Path = Path('results')
    cache_dir: Optional[Path] = None

    # Input table
    score_column: str = 'log2fc'
    separator: Optional[str] = None
    label: str = 'analysis'
    title: str = ''

    # Organism / namespaces
    organism: str = 'mouse'
    kegg_organism: Optional[str] = None
    key_type: str = 'SYMBOL'
    target_key_type: str = 'UNIPROT'
    kegg_key_type: Optional[str] = None

    # Duplicate handling
    score_duplicate_policy: str = DuplicatePolicy.KEEP_LAST.value
    mapping_duplicate_policy: str = DuplicatePolicy.KEEP_FIRST.value

    # GSEA options
    go_ontology: str = 'ALL'
    min_set_size: int = 3
    max_set_size: int = 800
    p_value_cutoff: float = 0.05
    p_adjust_method: str = 'none'
    permutation_num: int = 10000
    seed: int = 42
    threads: int = 1
    go_gmt: Optional[Path] = None
    kegg_gmt: Optional[Path] = None

    # Plots
    show_category: int = 10
    dot_colors: Tuple[str, str] = ('yellow', 'green')
    dpi: int = 300
    make_plots: bool = True

    # PubMed trend
    literature_trend: bool = True
    literature_terms: int = 3
    literature_years: Tuple[int, int] = (2010, 2018)
    literature_proportion: bool = False

    # Pathway diagrams
    pathway_ids: List[str] = field(default_factory=lambda: ['04130'])
    pathway_native: bool = True
    pathway_graph: bool = True
    pathway_node_sum: str = 'sum'
    pathway_limit: float = 1.0

    log_level: str = 'INFO'

    def __post_init__(self):
        self.validate()

    @property
    def species(self):
        return resolve_species(self.organism)

    @property
    def kegg_code(self) -> str:
        return self.kegg_organism or self.species.kegg_code

    @property
    def kegg_gene_key(self) -> str:
        """KEGG gene set key type, derived from target_key_type unless set"""
        return self.kegg_key_type or KEGG_KEYS_FOR_NAMESPACE[self.target_key_type][0]

    @property
    def resolved_cache_dir(self) -> Path:
        return Path(self.cache_dir) if self.cache_dir else Path.home() / '.fcgsea' / 'cache'

    def validate(self):
        """Normalize types and reject values the pipeline cannot use"""
        if self.input_path is not None:
            self.input_path = Path(self.input_path)
        self.results_dir = Path(self.results_dir)
        if self.cache_dir is not None:
            self.cache_dir = Path(self.cache_dir)
        for name in ('go_gmt', 'kegg_gmt'):
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, Path(value))

        resolve_species(self.organism)
        DuplicatePolicy.parse(self.score_duplicate_policy)
        DuplicatePolicy.parse(self.mapping_duplicate_policy)

        self.go_ontology = str(self.go_ontology).upper()
        if self.go_ontology not in GO_ONTOLOGIES:
            raise ValueError(f"go_ontology must be one of {GO_ONTOLOGIES}, got '{self.go_ontology}'")
        self._validate_namespaces()
        if self.p_adjust_method not in P_ADJUST_METHODS:
            raise ValueError(
                f"Unknown p_adjust_method '{self.p_adjust_method}'. "
                f"Supported: {list(P_ADJUST_METHODS)}"
            )

        if self.min_set_size < 1 or self.max_set_size < self.min_set_size:
            raise ValueError(
                f"Invalid gene set size bounds: min={self.min_set_size}, max={self.max_set_size}"
            )
        if not 0 < self.p_value_cutoff <= 1:
            raise ValueError(f"p_value_cutoff must be in (0, 1], got {self.p_value_cutoff}")
        if self.permutation_num < 1:
            raise ValueError(f"permutation_num must be positive, got {self.permutation_num}")

        self.dot_colors = tuple(self.dot_colors)
        if len(self.dot_colors) != 2:
            raise ValueError(f"dot_colors needs exactly two colours, got {self.dot_colors}")
        self.literature_years = tuple(int(y) for y in self.literature_years)
        if len(self.literature_years) != 2 or self.literature_years[0] > self.literature_years[1]:
            raise ValueError(f"literature_years must be (start, end), got {self.literature_years}")
        self.pathway_ids = [str(p) for p in self.pathway_ids]

    def _validate_namespaces(self):
        """The mapped namespace must be one the KEGG gene sets can be keyed by"""
        self.key_type = str(self.key_type).upper()
        self.target_key_type = str(self.target_key_type).upper()
        if self.kegg_key_type is not None:
            self.kegg_key_type = str(self.kegg_key_type).lower()
            if self.kegg_key_type not in KEGG_KEY_TYPES:
                raise ValueError(f"kegg_key_type must be one of {KEGG_KEY_TYPES}, got '{self.kegg_key_type}'")
        if self.kegg_gmt is not None:
            return

        allowed = KEGG_KEYS_FOR_NAMESPACE.get(self.target_key_type)
        if allowed is None:
            raise ValueError(
                f"target_key_type '{self.target_key_type}' has no KEGG gene set key. "
                f"Use one of {list(KEGG_KEYS_FOR_NAMESPACE)} or provide kegg_gmt"
            )
        if self.kegg_key_type is not None and self.kegg_key_type not in allowed:
            raise ValueError(
                f"kegg_key_type '{self.kegg_key_type}' cannot match '{self.target_key_type}' "
                f"identifiers. Expected one of {list(allowed)}"
            )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        for key, value in d.items():
            if isinstance(value, Path):
                d[key] = str(value)
            elif isinstance(value, tuple):
                d[key] = list(value)
        return d

    def replace(self, **overrides) -> 'AnalysisConfig':
        """Return a copy with the non-None overrides applied"""
        data = asdict(self)
        data.update({k: v for k, v in overrides.items() if v is not None})
        return AnalysisConfig(**data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnalysisConfig':
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path) -> 'AnalysisConfig':
        """Load configuration from a YAML mapping"""
        path = Path(path)
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: configuration must be a mapping")
        logging.info(f"Loaded configuration from {path}")
        return cls.from_dict(data)

    @classmethod
    def load(cls, path=None, env_file: Optional[str] = None, **overrides) -> 'AnalysisConfig':
        """
        Build the effective configuration.

        Args:
            path: Optional YAML file
            env_file: Optional .env file (defaults to ./.env when present)
            **overrides: Highest-precedence values; None means "not given"
        """
        config = cls.from_yaml(path) if path else cls()
        env = env_overrides(env_file)
        env.update({k: v for k, v in overrides.items() if v is not None})
        return config.replace(**env) if env else config


def _coerce(value: str, target_type) -> Any:
    """Turn an environment string into the dataclass field's type"""
    type_name = getattr(target_type, '__name__', str(target_type))
    if target_type is bool or type_name == 'bool':
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    if target_type is int or type_name == 'int':
        return int(value)
    if target_type is float or type_name == 'float':
        return float(value)
    text = str(target_type)
    if text.startswith(('typing.Tuple', 'typing.List', 'tuple', 'list')):
        return [item.strip() for item in value.split(',') if item.strip()]
    return value


def env_overrides(env_file: Optional[str] = None) -> Dict[str, Any]:
    """Collect FCGSEA_<FIELD> variables, after loading a .env file"""
    load_dotenv(env_file or os.path.join(os.getcwd(), '.env'), override=False)

    overrides = {}
    for f in fields(AnalysisConfig):
        raw = os.getenv(f"{ENV_PREFIX}{f.name.upper()}")
        if raw is None:
            continue
        try:
            overrides[f.name] = _coerce(raw, f.type)
        except ValueError as e:
            raise ValueError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r} ({e})") from e
    return overrides
