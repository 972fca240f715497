"""
KEGG pathway data models for fcgsea.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class NodeType(str, Enum):
    """Types of nodes in pathway diagrams."""
    GENE = "gene"
    ORTHOLOG = "ortholog"
    COMPOUND = "compound"
    GROUP = "group"
    MAP = "map"
    OTHER = "other"


class EdgeType(str, Enum):
    """Types of edges/relationships in pathway diagrams."""
    ACTIVATION = "activation"
    INHIBITION = "inhibition"
    BINDING = "binding"
    EXPRESSION = "expression"
    REPRESSION = "repression"
    PHOSPHORYLATION = "phosphorylation"
    COMPOUND = "compound"
    INDIRECT = "indirect"
    OTHER = "other"


@dataclass
class PathwayNode:
    """
    One KGML entry with its diagram box. ``x``/``y`` are the box centre
    in image pixels.
    """
    id: str
    name: str
    type: NodeType
    kegg_ids: List[str] = field(default_factory=list)
    label: str = ''
    x: float = 0.0
    y: float = 0.0
    width: float = 46.0
    height: float = 17.0
    shape: str = 'rectangle'

    # Expression overlay
    value: Optional[float] = None
    color: Optional[str] = None

    @property
    def is_gene(self) -> bool:
        return self.type in (NodeType.GENE, NodeType.ORTHOLOG)

    @property
    def symbols(self) -> List[str]:
        """Gene names listed in the diagram label ("Stx1a, Stx1...")"""
        return [s.strip().rstrip('.') for s in self.label.split(',') if s.strip()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type.value,
            'kegg_ids': self.kegg_ids,
            'label': self.label,
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height,
            'value': self.value,
            'color': self.color,
        }


@dataclass
class PathwayEdge:
    """A KGML relation between two entries"""
    source: str
    target: str
    type: EdgeType
    relation: str = ''  # PPrel, GErel, ECrel, PCrel

    @property
    def style(self) -> str:
        return 'dashed' if self.type == EdgeType.INDIRECT else 'solid'


@dataclass
class KeggPathway:
    """Parsed KGML pathway"""
    id: str
    organism: str
    number: str
    title: str
    nodes: List[PathwayNode] = field(default_factory=list)
    edges: List[PathwayEdge] = field(default_factory=list)
    image_url: Optional[str] = None

    @property
    def gene_nodes(self) -> List[PathwayNode]:
        return [n for n in self.nodes if n.is_gene]

    @property
    def source_url(self) -> str:
        return f"https://www.kegg.jp/pathway/{self.id}"

    def node(self, node_id: str) -> Optional[PathwayNode]:
        return next((n for n in self.nodes if n.id == node_id), None)
