"""
KGML parser: converts KEGG Markup Language documents to KeggPathway.
"""

import logging
import xml.etree.ElementTree as ET

from .models import EdgeType, KeggPathway, NodeType, PathwayEdge, PathwayNode


def _map_node_type(kegg_type: str) -> NodeType:
    """Map KGML entry type to node type."""
    mapping = {
        'gene': NodeType.GENE,
        'ortholog': NodeType.ORTHOLOG,
        'compound': NodeType.COMPOUND,
        'group': NodeType.GROUP,
        'map': NodeType.MAP,
    }
    return mapping.get(kegg_type.lower(), NodeType.OTHER)


def _map_edge_type(subtype: str) -> EdgeType:
    """Map KGML relation subtype to edge type."""
    mapping = {
        'activation': EdgeType.ACTIVATION,
        'inhibition': EdgeType.INHIBITION,
        'binding/association': EdgeType.BINDING,
        'expression': EdgeType.EXPRESSION,
        'repression': EdgeType.REPRESSION,
        'phosphorylation': EdgeType.PHOSPHORYLATION,
        'compound': EdgeType.COMPOUND,
        'indirect effect': EdgeType.INDIRECT,
    }
    return mapping.get(subtype.lower(), EdgeType.OTHER)


def parse_kgml(text: str) -> KeggPathway:
    """
    Parse a KGML document.

    Raises:
        ValueError: If the document is not a KGML pathway
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise ValueError(f"Invalid KGML: {e}") from e
    if root.tag != 'pathway':
        raise ValueError(f"Invalid KGML: root element is <{root.tag}>, expected <pathway>")

    pathway = KeggPathway(
        id=root.get('name', '').replace('path:', ''),
        organism=root.get('org', ''),
        number=root.get('number', ''),
        title=root.get('title', ''),
        image_url=root.get('image'),
    )

    for entry in root.findall('entry'):
        graphics = entry.find('graphics')
        node = PathwayNode(
            id=entry.get('id', ''),
            name=entry.get('name', ''),
            type=_map_node_type(entry.get('type', 'other')),
            kegg_ids=entry.get('name', '').split(),
        )
        if graphics is not None:
            node.label = graphics.get('name', '') or ''
            node.shape = graphics.get('type', 'rectangle')
            node.x = float(graphics.get('x', 0) or 0)
            node.y = float(graphics.get('y', 0) or 0)
            node.width = float(graphics.get('width', 46) or 46)
            node.height = float(graphics.get('height', 17) or 17)
        pathway.nodes.append(node)

    for relation in root.findall('relation'):
        subtypes = [s.get('name', '') for s in relation.findall('subtype')]
        pathway.edges.append(PathwayEdge(
            source=relation.get('entry1', ''),
            target=relation.get('entry2', ''),
            type=_map_edge_type(subtypes[0]) if subtypes else EdgeType.OTHER,
            relation=relation.get('type', ''),
        ))

    logging.info(
        f"Parsed KGML {pathway.id}: {len(pathway.gene_nodes)} gene nodes, "
        f"{len(pathway.edges)} relations"
    )
    return pathway
