"""
Unit tests for result plots.
"""

import gseapy as gp
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd
import pytest

from fcgsea.gsea import GSEAOptions, GSEAResult, GSEARun
from fcgsea.plots import (
    category_network_plot,
    dot_plot,
    enrichment_map_plot,
    plot_frame,
    ridge_plot,
    running_score_plot,
)
from fcgsea.ranking import RankedSeries


def result(term, nes, p, genes):
    return GSEAResult(
        term=term, term_id=term, description=term, category='BP',
        es=nes / 2, nes=nes, p_value=p, p_adjust=p, q_value=p, fwer=p,
        core_enrichment=genes, set_size=len(genes) + 1,
    )


@pytest.fixture
def series():
    return RankedSeries([('Stx1a', 2.0), ('Snap25', 1.5), ('Vamp2', 1.0), ('Mapk1', -0.5), ('Mapk3', -1.0)])


@pytest.fixture
def run(series):
    results = [
        result('exocytosis', 1.8, 0.0, ['Stx1a', 'Snap25', 'Vamp2']),
        result('ERK cascade', -1.4, 0.02, ['Mapk3', 'Mapk1']),
    ]
    return GSEARun('GO', results, 5, GSEAOptions(permutation_num=99), series.to_series(), 'SYMBOL')


@pytest.fixture
def empty_run(series):
    return GSEARun('KEGG', [], 0, GSEAOptions(), series.to_series(), 'UNIPROT')


class TestPlotFrame:
    """Test the gseapy-style plotting table."""

    def test_columns(self, run):
        """Rows carry sign and floored p-values."""
        frame = plot_frame(run)

        assert list(frame['Term']) == ['exocytosis', 'ERK cascade']
        assert list(frame['sign']) == ['activated', 'suppressed']
        assert frame.loc[0, 'FDR q-val'] == pytest.approx(0.01)
        assert frame.loc[0, 'Tag %'] == '3/4'
        assert frame.loc[1, 'Lead_genes'] == 'Mapk3;Mapk1'


class TestPlots:
    """Test that plots are written, or skipped when there is nothing to draw."""

    def test_category_network(self, run, series, tmp_path):
        """The category network is written."""
        path = category_network_plot(run, series, tmp_path / 'cnet.png', dpi=50)
        assert path.exists()

    def test_ridge(self, run, series, tmp_path):
        """The ridge plot is written."""
        path = ridge_plot(run, series, tmp_path / 'ridge.png', dpi=50)
        assert path.exists()

    def test_dot_plot(self, run, tmp_path, monkeypatch):
        """gseapy draws the dot plot split by sign."""
        seen = {}

        def dotplot(df, **kwargs):
            seen.update(kwargs)
            fig, ax = plt.subplots()
            return ax

        monkeypatch.setattr(gp, 'dotplot', dotplot)
        path = dot_plot(run, tmp_path / 'dot.png', title='GO', show_category=10,
                        colors=('yellow', 'green'), dpi=50)

        assert path.exists()
        assert seen['x'] == 'sign'
        assert seen['top_term'] == 10
        assert seen['title'] == 'GO'

    def test_enrichment_map(self, run, tmp_path, monkeypatch):
        """The enrichment map is drawn from gseapy's nodes and edges."""
        nodes = pd.DataFrame({
            'Term': ['exocytosis', 'ERK cascade'], 'NES': [1.8, -1.4], 'Hits_ratio': [0.75, 0.67]
        })
        edges = pd.DataFrame({'src_idx': [0], 'targ_idx': [1], 'jaccard_coef': [0.2]})
        monkeypatch.setattr(gp, 'enrichment_map', lambda df, **kwargs: (nodes, edges))

        path = enrichment_map_plot(run, tmp_path / 'emap.png', dpi=50)
        assert path.exists()

    @pytest.mark.parametrize('plot', [category_network_plot, ridge_plot])
    def test_skipped_without_results(self, plot, empty_run, series, tmp_path):
        """No enriched terms, no file."""
        assert plot(empty_run, series, tmp_path / 'x.png') is None
        assert not (tmp_path / 'x.png').exists()

    def test_dot_plot_skipped(self, empty_run, tmp_path):
        """No enriched terms, no dot plot."""
        assert dot_plot(empty_run, tmp_path / 'dot.png') is None

    def test_enrichment_map_needs_two_terms(self, run, tmp_path):
        """A single term has no map to draw."""
        run.results = run.results[:1]
        assert enrichment_map_plot(run, tmp_path / 'emap.png') is None

    def test_running_score_needs_prerank(self, run, tmp_path):
        """Without the gseapy result object there is no running score."""
        assert running_score_plot(run, tmp_path / 'gsea.png') is None
