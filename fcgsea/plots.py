"""
Result plots for fcgsea

Dot plot, enrichment map, category network, ridge plot and running-score
plot for a GSEARun. Every function writes one image and returns its path.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import matplotlib
matplotlib.use("Agg")  # non-interactive backend for batch saving
import matplotlib.pyplot as plt
from matplotlib.colors import LinearSegmentedColormap, Normalize
import gseapy as gp
import networkx as nx
import numpy as np
import pandas as pd
from scipy.stats import gaussian_kde

from .gsea import GSEARun
from .ranking import RankedSeries


def _save(fig, output_path, dpi: int) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    logging.info(f"Saved plot to {output_path}")
    return output_path


def _p_floor(run: GSEARun) -> float:
    # permutation p-values can be exactly zero
    return 1.0 / (run.options.permutation_num + 1)


def plot_frame(run: GSEARun) -> pd.DataFrame:
    """Result table in the column layout gseapy's plotting helpers read"""
    floor = _p_floor(run)
    rows = []
    for r in run.results:
        rows.append({
            'Term': r.description,
            'ES': r.es,
            'NES': r.nes,
            'NOM p-val': max(r.p_value, floor),
            'FDR q-val': max(r.p_adjust, floor),
            'Tag %': f"{r.leading_edge_size}/{r.set_size}",
            'Lead_genes': ';'.join(r.core_enrichment),
            'sign': r.sign,
        })
    return pd.DataFrame(rows, columns=['Term', 'ES', 'NES', 'NOM p-val', 'FDR q-val', 'Tag %', 'Lead_genes', 'sign'])


def dot_colormap(colors: Sequence[str], name: str = 'fcgsea_dot') -> str:
    """Register a two-colour map and return its name"""
    cmap = LinearSegmentedColormap.from_list(name, list(colors))
    matplotlib.colormaps.register(cmap, name=name, force=True)
    return name


def dot_plot(
    run: GSEARun,
    output_path,
    title: str = '',
    show_category: int = 10,
    colors: Sequence[str] = ('yellow', 'green'),
    dpi: int = 300
) -> Optional[Path]:
    """
    Dot plot of the top terms, split into activated and suppressed columns.
    """
    frame = plot_frame(run)
    if frame.empty:
        logging.warning(f"{run.database}: no enriched terms, skipping dot plot")
        return None

    ax = gp.dotplot(
        frame,
        column='FDR q-val',
        x='sign',
        title=title,
        cutoff=1.0,
        top_term=show_category,
        size=6,
        figsize=(6, 8),
        cmap=dot_colormap(colors),
        show_ring=False,
    )
    ax.set_xlabel('')
    return _save(ax.get_figure(), output_path, dpi)


def _pick(columns, candidates) -> Optional[str]:
    for c in candidates:
        if c in columns:
            return c
    return None


def enrichment_map_plot(
    run: GSEARun,
    output_path,
    show_category: int = 10,
    dpi: int = 300
) -> Optional[Path]:
    """Network of the top terms; edges join terms with overlapping leading edges."""
    frame = plot_frame(run)
    if len(frame) < 2:
        logging.warning(f"{run.database}: fewer than two enriched terms, skipping enrichment map")
        return None

    nodes, edges = gp.enrichment_map(frame, column='FDR q-val', cutoff=1.0, top_term=show_category)

    if 'id' not in nodes.columns:
        nodes = nodes.reset_index()
        if 'id' not in nodes.columns:
            nodes = nodes.rename(columns={nodes.columns[0]: 'id'})
    node_attr = nodes.set_index('id').to_dict(orient='index')

    G = nx.Graph()
    G.add_nodes_from(node_attr)
    src_col = _pick(edges.columns, ['src_idx', 'src', 'source'])
    tgt_col = _pick(edges.columns, ['targ_idx', 'targ', 'target'])
    if src_col and tgt_col:
        for _, edge in edges.iterrows():
            G.add_edge(edge[src_col], edge[tgt_col], weight=float(edge.get('jaccard_coef', 0.0)))

    pos = nx.spring_layout(G, seed=42)
    sizes = [float(node_attr[n].get('Hits_ratio', 0.2)) * 1000.0 for n in G.nodes()]
    colors = [float(node_attr[n].get('NES', 0.0)) for n in G.nodes()]
    widths = [max(0.5, w * 10.0) for _, _, w in G.edges(data='weight', default=0.0)]

    fig, ax = plt.subplots(figsize=(12, 9))
    sc = nx.draw_networkx_nodes(G, pos=pos, node_color=colors, node_size=sizes, cmap=plt.cm.RdYlBu_r, ax=ax)
    nx.draw_networkx_edges(G, pos=pos, width=widths, edge_color='#CDDBD4', ax=ax)
    for n, (x, y) in pos.items():
        ax.text(x, y, str(node_attr[n].get('Term', n)), fontsize=7, ha='center', va='center')
    fig.colorbar(sc, ax=ax).set_label('NES')
    ax.set_axis_off()
    return _save(fig, output_path, dpi)


def category_network_plot(
    run: GSEARun,
    series: RankedSeries,
    output_path,
    show_category: int = 5,
    dpi: int = 300
) -> Optional[Path]:
    """
    Terms linked to their core genes. Term nodes are sized by -log10(p);
    gene nodes are coloured by fold change.
    """
    top = run.top(show_category)
    if not top:
        logging.warning(f"{run.database}: no enriched terms, skipping category network")
        return None

    floor = _p_floor(run)
    G = nx.Graph()
    for r in top:
        G.add_node(r.description, kind='term', size=-np.log10(max(r.p_value, floor)))
        for gene in r.core_enrichment:
            if gene not in G:
                G.add_node(gene, kind='gene', fold_change=series.get(gene, 0.0))
            G.add_edge(r.description, gene)

    pos = nx.spring_layout(G, seed=42)
    terms = [n for n, d in G.nodes(data=True) if d['kind'] == 'term']
    genes = [n for n, d in G.nodes(data=True) if d['kind'] == 'gene']
    fold_changes = [G.nodes[g]['fold_change'] for g in genes]
    limit = max([abs(v) for v in fold_changes] + [1e-9])

    fig, ax = plt.subplots(figsize=(12, 10))
    nx.draw_networkx_edges(G, pos=pos, edge_color='#BBBBBB', alpha=0.6, ax=ax)
    nx.draw_networkx_nodes(
        G, pos=pos, nodelist=terms, node_color='#E5C494',
        node_size=[200 + 150 * G.nodes[t]['size'] for t in terms], ax=ax
    )
    sc = nx.draw_networkx_nodes(
        G, pos=pos, nodelist=genes, node_color=fold_changes, node_size=60,
        cmap=plt.cm.RdBu_r, vmin=-limit, vmax=limit, ax=ax
    )
    nx.draw_networkx_labels(G, pos=pos, labels={t: t for t in terms}, font_size=8, ax=ax)
    nx.draw_networkx_labels(G, pos=pos, labels={g: g for g in genes}, font_size=5, ax=ax)
    fig.colorbar(sc, ax=ax).set_label('fold change')
    ax.set_axis_off()
    return _save(fig, output_path, dpi)


def ridge_plot(
    run: GSEARun,
    series: RankedSeries,
    output_path,
    show_category: int = 10,
    dpi: int = 300
) -> Optional[Path]:
    """Density of core-gene fold changes per term, coloured by adjusted p-value."""
    distributions: Dict[str, List[float]] = {}
    p_adjust: Dict[str, float] = {}
    for r in run.top(show_category):
        values = [series[g] for g in r.core_enrichment if g in series and np.isfinite(series[g])]
        if len(values) >= 2:
            distributions[r.description] = values
            p_adjust[r.description] = max(r.p_adjust, _p_floor(run))
    if not distributions:
        logging.warning(f"{run.database}: not enough core genes, skipping ridge plot")
        return None

    all_values = np.concatenate([np.asarray(v) for v in distributions.values()])
    grid = np.linspace(all_values.min() - 0.5, all_values.max() + 0.5, 300)
    norm = Normalize(vmin=min(p_adjust.values()), vmax=max(p_adjust.values()) + 1e-12)
    cmap = plt.cm.viridis_r

    fig, ax = plt.subplots(figsize=(7, 1 + 0.6 * len(distributions)))
    for offset, (term, values) in enumerate(reversed(list(distributions.items()))):
        values = np.asarray(values)
        if np.ptp(values) == 0:
            density = np.exp(-0.5 * ((grid - values[0]) / 0.1) ** 2)
        else:
            density = gaussian_kde(values)(grid)
        density = density / density.max() * 0.9
        ax.fill_between(grid, offset, offset + density, color=cmap(norm(p_adjust[term])), alpha=0.8)
        ax.plot(grid, offset + density, color='black', linewidth=0.5)

    ax.set_yticks(range(len(distributions)))
    ax.set_yticklabels(list(reversed(list(distributions))), fontsize=8)
    ax.set_xlabel('enrichment distribution')
    fig.colorbar(plt.cm.ScalarMappable(norm=norm, cmap=cmap), ax=ax).set_label('p.adjust')
    return _save(fig, output_path, dpi)


def running_score_plot(
    run: GSEARun,
    output_path,
    term: Optional[str] = None
) -> Optional[Path]:
    """GSEA running enrichment score plot for one term (the top term by default)."""
    if run.prerank is None or not run.results:
        logging.warning(f"{run.database}: no enriched terms, skipping GSEA plot")
        return None

    result = run.get(term) if term else run.results[0]
    if result is None:
        raise ValueError(f"Term not among {run.database} results: {term}")

    stats = run.prerank.results[result.term]
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    gp.gseaplot(
        rank_metric=run.prerank.ranking,
        term=result.description,
        hits=stats['hits'],
        nes=stats['nes'],
        pval=stats['pval'],
        fdr=stats['fdr'],
        RES=stats['RES'],
        ofname=str(output_path),
    )
    plt.close('all')
    logging.info(f"Saved plot to {output_path}")
    return output_path
