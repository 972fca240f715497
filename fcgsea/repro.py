"""
Reproducibility Logger for fcgsea

Tracks and logs all metadata required for scientific reproducibility:
- Software versions
- Gene set database versions and hashes
- Analysis parameters
- Input/output summaries
"""

import hashlib
from importlib import metadata as importlib_metadata
import json
import logging
import sys
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

import yaml

from . import __version__
from .gene_set_utils import get_gene_set_stats

TRACKED_DEPENDENCIES = (
    'gseapy', 'pandas', 'numpy', 'scipy', 'statsmodels',
    'mygene', 'networkx', 'matplotlib', 'requests',
)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


@dataclass
class PipelineMetadata:
    """Complete metadata for a single analysis run"""

    # Unique identifiers
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=_utc_now)

    # Software versions
    software_version: str = __version__
    python_version: str = ""
    dependencies: Dict[str, str] = field(default_factory=dict)

    # Gene set information, one entry per database ('GO', 'KEGG')
    gene_sets: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    # Analysis parameters
    parameters: Dict[str, Any] = field(default_factory=dict)

    # Input summary
    input_summary: Dict[str, Any] = field(default_factory=dict)

    # Mapping information
    mapping_report: Dict[str, Any] = field(default_factory=dict)

    # Output summary
    output_summary: Dict[str, Any] = field(default_factory=dict)

    # Warnings/Notes
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization"""
        return asdict(self)

    def to_json(self) -> str:
        """Convert to JSON string"""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def save(self, output_path: Path):
        """Save metadata to JSON file"""
        with open(output_path, 'w') as f:
            f.write(self.to_json())
        logging.info(f"Saved pipeline metadata to {output_path}")


class ReproducibilityLogger:
    """
    Logger for tracking reproducibility metadata during an analysis run.
    """

    def __init__(self):
        self.metadata = PipelineMetadata()
        self._initialize_versions()

    def _initialize_versions(self):
        """Detect and record software versions"""
        v = sys.version_info
        self.metadata.python_version = f"{v.major}.{v.minor}.{v.micro}"

        deps = {}
        for name in TRACKED_DEPENDENCIES:
            try:
                deps[name] = importlib_metadata.version(name)
            except importlib_metadata.PackageNotFoundError:
                deps[name] = "not installed"
        self.metadata.dependencies = deps

    def set_gene_set_info(self, database: str, source: str, version: str, gene_sets: Dict[str, list]):
        """
        Record gene set database information.

        Args:
            database: Which run the gene sets belong to ('GO', 'KEGG')
            source: Gene set source name (e.g., 'GO_ALL', 'KEGG')
            version: Version identifier (e.g., 'GO_Biological_Process_2023', '2026-10-16')
            gene_sets: The actual gene sets for hash calculation
        """
        self.metadata.gene_sets[database] = {
            'source': source,
            'version': version,
            'hash': self._calculate_gene_set_hash(gene_sets),
            **get_gene_set_stats(gene_sets),
            'loaded_at': _utc_now(),
        }

    def _calculate_gene_set_hash(self, gene_sets: Dict[str, list]) -> str:
        """
        Calculate SHA256 hash of gene sets for reproducibility tracking.

        Hash is based on sorted gene set names and their sorted gene lists.
        """
        sorted_items = []
        for name in sorted(gene_sets.keys()):
            genes = sorted(gene_sets[name])
            sorted_items.append(f"{name}::{','.join(genes)}")

        content = "||".join(sorted_items)
        return hashlib.sha256(content.encode()).hexdigest()[:16]  # Short hash

    def set_parameters(self, **params):
        """Set analysis parameters"""
        self.metadata.parameters.update(params)

    def set_input_summary(self, **summary):
        """Set input data summary"""
        self.metadata.input_summary.update(summary)

    def set_mapping_report(self, mapping_report: Dict):
        """Set gene ID mapping report"""
        self.metadata.mapping_report = mapping_report

    def set_output_summary(self, **summary):
        """Set output summary"""
        self.metadata.output_summary.update(summary)

    def add_warning(self, warning: str):
        """Add a warning message"""
        self.metadata.warnings.append(warning)
        logging.warning(f"Pipeline warning: {warning}")

    def get_metadata(self) -> PipelineMetadata:
        """Get current metadata"""
        return self.metadata

    def export_yaml(self, output_path: Path):
        """Export pipeline metadata as YAML (for maximum readability)."""
        with open(output_path, 'w') as f:
            yaml.safe_dump(json.loads(self.metadata.to_json()), f, default_flow_style=False, sort_keys=False)
        logging.info(f"Saved pipeline metadata (YAML) to {output_path}")

    def export_json(self, output_path: Path):
        """Export pipeline metadata as JSON"""
        self.metadata.save(output_path)
