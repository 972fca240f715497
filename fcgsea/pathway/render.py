"""
Pathway diagram rendering (pathview-style).

Colours the gene boxes of a KEGG pathway by the scores of a ranked series,
either on top of the native KEGG image (PNG) or as a graph drawn from the
KGML relations (PDF).
"""

import io
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

import matplotlib
matplotlib.use("Agg")
import matplotlib.image as mpimg
import matplotlib.pyplot as plt
from matplotlib.colors import LinearSegmentedColormap, Normalize, to_hex
from matplotlib.patches import Rectangle
import networkx as nx
import numpy as np

from ..kegg_client import KEGGClient
from ..ranking import RankedSeries
from .kgml import parse_kgml
from .models import KeggPathway

NODE_SUMMARIES = {
    'sum': np.sum,
    'mean': np.mean,
    'median': np.median,
    'max': np.max,
    'max.abs': lambda values: max(values, key=abs),
}

# ranked-series namespace -> KEGG conv database
CONV_DATABASES = {
    'UNIPROT': 'uniprot',
    'ENTREZID': 'ncbi-geneid',
    'NCBI-GENEID': 'ncbi-geneid',
}


def normalize_pathway_id(pathway_id: str, organism: str) -> str:
    """'dme04130' / '04130' / 'path:mmu04130' -> '<organism>04130'"""
    match = re.search(r'(\d{5})$', str(pathway_id).strip())
    if not match:
        raise ValueError(f"Invalid KEGG pathway id: '{pathway_id}'")
    return f"{organism}{match.group(1)}"


class PathviewRenderer:
    """
    Renders KEGG pathways coloured by fold change.

    Colours run low -> mid -> high over [-limit, limit]; values beyond
    the limit take the end colour.
    """

    def __init__(
        self,
        client: Optional[KEGGClient] = None,
        limit: float = 1.0,
        node_sum: str = 'sum',
        low: str = 'green',
        mid: str = 'gray',
        high: str = 'red'
    ):
        if node_sum not in NODE_SUMMARIES:
            raise ValueError(f"node_sum must be one of {list(NODE_SUMMARIES)}, got '{node_sum}'")
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")
        self.client = client or KEGGClient()
        self.limit = limit
        self.node_sum = node_sum
        self.cmap = LinearSegmentedColormap.from_list('pathview', [low, mid, high])
        self.norm = Normalize(vmin=-limit, vmax=limit, clip=True)

    def color_for(self, value: float) -> str:
        return to_hex(self.cmap(self.norm(value)))

    def _kegg_values(self, series: RankedSeries, organism: str) -> Dict[str, List[float]]:
        """KEGG gene id -> scores of the series identifiers it corresponds to"""
        namespace = series.namespace.upper()
        values: Dict[str, List[float]] = {}

        if namespace in CONV_DATABASES:
            conversions = self.client.convert_ids(organism, CONV_DATABASES[namespace])
            for kegg_id, others in conversions.items():
                scores = [series[o] for o in others if o in series]
                if scores:
                    values[kegg_id] = scores
        elif namespace == 'KEGG':
            for identifier, score in series.items():
                key = identifier if ':' in identifier else f"{organism}:{identifier}"
                values.setdefault(key, []).append(score)

        return values

    def node_values(self, pathway: KeggPathway, series: RankedSeries) -> Dict[str, float]:
        """
        Summarised score per gene node.

        SYMBOL series are matched against the gene names in the node labels;
        other namespaces are converted to KEGG gene ids first.
        """
        summary = NODE_SUMMARIES[self.node_sum]
        by_symbol = {k.upper(): v for k, v in series.items()} if series.namespace.upper() == 'SYMBOL' else None
        kegg_values = {} if by_symbol is not None else self._kegg_values(series, pathway.organism)

        result = {}
        for node in pathway.gene_nodes:
            if by_symbol is not None:
                scores = [by_symbol[s.upper()] for s in node.symbols if s.upper() in by_symbol]
            else:
                scores = [v for kegg_id in node.kegg_ids for v in kegg_values.get(kegg_id, [])]
            if scores:
                result[node.id] = float(summary(scores))

        logging.info(
            f"{pathway.id}: {len(result)}/{len(pathway.gene_nodes)} gene nodes carry data"
        )
        return result

    def _apply(self, pathway: KeggPathway, values: Dict[str, float]):
        for node_id, value in values.items():
            node = pathway.node(node_id)
            node.value = value
            node.color = self.color_for(value)

    def _colorbar(self, fig, ax):
        sm = plt.cm.ScalarMappable(norm=self.norm, cmap=self.cmap)
        cbar = fig.colorbar(sm, ax=ax, fraction=0.025, pad=0.01)
        cbar.set_label('log2 fold change')

    def render_native(self, pathway: KeggPathway, image: bytes, output_path, dpi: int = 100) -> Path:
        """Overlay coloured boxes on the KEGG PNG."""
        img = mpimg.imread(io.BytesIO(image), format='png')
        height, width = img.shape[:2]

        fig = plt.figure(figsize=(width / dpi * 1.08, height / dpi))
        ax = fig.add_axes([0, 0, 0.92, 1])
        ax.imshow(img)
        for node in pathway.gene_nodes:
            if node.color is None:
                continue
            ax.add_patch(Rectangle(
                (node.x - node.width / 2, node.y - node.height / 2),
                node.width, node.height,
                facecolor=node.color, edgecolor='black', linewidth=0.5
            ))
            ax.text(node.x, node.y, node.symbols[0] if node.symbols else node.label,
                    fontsize=5, ha='center', va='center')
        ax.set_xlim(0, width)
        ax.set_ylim(height, 0)
        ax.set_axis_off()
        self._colorbar(fig, ax)

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=dpi)
        plt.close(fig)
        return output_path

    def render_graph(self, pathway: KeggPathway, output_path) -> Path:
        """Draw gene nodes and their relations at their KGML positions."""
        G = nx.DiGraph()
        genes = {n.id: n for n in pathway.gene_nodes}
        for node in genes.values():
            G.add_node(node.id)
        for edge in pathway.edges:
            if edge.source in genes and edge.target in genes:
                G.add_edge(edge.source, edge.target, style=edge.style)

        pos = {n.id: (n.x, -n.y) for n in genes.values()}
        colors = [genes[n].color or '#FFFFFF' for n in G.nodes()]
        labels = {n: (genes[n].symbols[0] if genes[n].symbols else n) for n in G.nodes()}

        fig, ax = plt.subplots(figsize=(14, 10))
        nx.draw_networkx_nodes(G, pos=pos, node_color=colors, node_shape='s',
                               node_size=300, edgecolors='black', linewidths=0.5, ax=ax)
        for style in ('solid', 'dashed'):
            edgelist = [(u, v) for u, v, s in G.edges(data='style') if s == style]
            nx.draw_networkx_edges(G, pos=pos, edgelist=edgelist, style=style,
                                   arrows=True, arrowsize=8, ax=ax)
        nx.draw_networkx_labels(G, pos=pos, labels=labels, font_size=5, ax=ax)
        ax.set_title(f"{pathway.title} ({pathway.id})")
        ax.set_axis_off()
        self._colorbar(fig, ax)

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, bbox_inches='tight')
        plt.close(fig)
        return output_path

    def render(
        self,
        series: RankedSeries,
        pathway_id: str,
        organism: str,
        output_dir,
        kegg_native: bool = True
    ) -> Path:
        """
        Fetch, colour and save one pathway.

        Returns:
            ``<output_dir>/<pathway>.pathview.png`` when ``kegg_native``,
            otherwise ``<output_dir>/<pathway>.pathview.pdf``
        """
        pathway_id = normalize_pathway_id(pathway_id, organism)
        pathway = parse_kgml(self.client.get_kgml(pathway_id))
        pathway.organism = pathway.organism or organism
        self._apply(pathway, self.node_values(pathway, series))

        output_dir = Path(output_dir)
        if kegg_native:
            path = self.render_native(pathway, self.client.get_image(pathway_id),
                                      output_dir / f"{pathway_id}.pathview.png")
        else:
            path = self.render_graph(pathway, output_dir / f"{pathway_id}.pathview.pdf")
        logging.info(f"Saved pathway diagram for {pathway.title} ({pathway.source_url}) to {path}")
        return path
