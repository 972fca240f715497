"""
KEGG pathway diagrams: KGML models, parser and pathview-style renderer.
"""

from .kgml import parse_kgml
from .models import EdgeType, KeggPathway, NodeType, PathwayEdge, PathwayNode
from .render import PathviewRenderer, normalize_pathway_id

__all__ = [
    "parse_kgml",
    "KeggPathway",
    "PathwayNode",
    "PathwayEdge",
    "NodeType",
    "EdgeType",
    "PathviewRenderer",
    "normalize_pathway_id",
]
