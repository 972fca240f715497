"""
Integration tests for the GSEA pipeline and CLI, with every network
collaborator replaced.
"""

import json
from types import SimpleNamespace

import gseapy as gp
import pandas as pd
import pytest

from fcgsea import cli
from fcgsea.config import AnalysisConfig
from fcgsea.errors import AllScoresMissingError, NoMappedIdentifiersError
from fcgsea.id_mapper import map_identifiers
from fcgsea.pipeline import GSEAPipeline
from fcgsea.sources import GeneSetCollection

TABLE = (
    "gene,baseMean,log2fc\n"
    "Stx1a,10,2.0\n"
    "Snap25,12,1.5\n"
    "Vamp2,8,1.0\n"
    "Syt1,9,0.5\n"
    "Mapk1,20,-0.5\n"
    "Mapk3,22,-1.0\n"
    "Stx1a,11,2.5\n"
    "Orphan,5,\n"
)

UNIPROT = {
    'Stx1a': 'O35526',
    'Snap25': 'P60879',
    'Vamp2': 'Q9D8U1',
    'Syt1': 'P46096',
    'Mapk1': 'P63085',
    'Mapk3': 'Q63844',
}


class FakeMapper:
    """map_genes() over a fixed symbol -> UniProt table"""

    def __init__(self, table=None):
        self.table = UNIPROT if table is None else table
        self.calls = []

    def map_genes(self, gene_ids, from_type, to_type, species, policy):
        self.calls.append(list(gene_ids))
        pairs = [(g, self.table[g]) for g in gene_ids if g in self.table]
        mapping = map_identifiers(gene_ids, pairs, policy=policy, source_type=from_type, target_type=to_type)
        return mapping, mapping.report(species=species.species_key, policy=policy)


class FakeSources:
    """GO sets keyed by symbol, KEGG sets keyed by UniProt"""

    def load_go(self, ontology, species):
        return GeneSetCollection(
            source=f"GO_{ontology}",
            version='test',
            namespace='SYMBOL',
            gene_sets={
                'synaptic vesicle exocytosis (GO:0016079)': ['STX1A', 'SNAP25', 'VAMP2', 'SYT1'],
                'ERK1 and ERK2 cascade (GO:0070371)': ['MAPK1', 'MAPK3', 'STX1A'],
            },
            categories={'synaptic vesicle exocytosis (GO:0016079)': 'BP'},
        )

    def load_kegg(self, organism, key_type):
        return GeneSetCollection(
            source='KEGG',
            version='test',
            namespace='UNIPROT',
            gene_sets={
                f'{organism}04130': ['O35526', 'P60879', 'Q9D8U1'],
                f'{organism}04010': ['P63085', 'Q63844', 'P46096'],
            },
            descriptions={f'{organism}04130': 'SNARE interactions in vesicular transport'},
        )

    def load_custom_gmt(self, gmt_path, source='custom', namespace='SYMBOL'):
        raise AssertionError('not expected')


@pytest.fixture
def fake_prerank(monkeypatch):
    """gseapy.prerank returning one significant row per gene set"""
    calls = []

    def prerank(rnk, gene_sets, **kwargs):
        calls.append({'rnk': rnk, 'gene_sets': gene_sets, **kwargs})
        rows = []
        for i, (term, genes) in enumerate(gene_sets.items()):
            hits = [g for g in genes if g in rnk.index]
            rows.append({
                'Term': term,
                'ES': 0.6 - i,
                'NES': 1.5 - 2 * i,
                'NOM p-val': 0.01 * (i + 1),
                'FDR q-val': 0.02,
                'FWER p-val': 0.02,
                'Tag %': f"{len(hits)}/{len(hits)}",
                'Lead_genes': ';'.join(hits),
            })
        return SimpleNamespace(res2d=pd.DataFrame(rows), results={}, ranking=rnk)

    monkeypatch.setattr(gp, 'prerank', prerank)
    return calls


@pytest.fixture
def config(tmp_path):
    path = tmp_path / 'de.csv'
    path.write_text(TABLE)
    return AnalysisConfig(
        input_path=path,
        results_dir=tmp_path / 'results',
        cache_dir=tmp_path / 'cache',
        label='test',
        permutation_num=100,
        make_plots=False,
        literature_trend=False,
        pathway_native=False,
        pathway_graph=False,
    )


class TestGSEAPipeline:
    """Test the end-to-end run."""

    def test_run(self, config, fake_prerank):
        """Both runs complete and write their tables and metadata."""
        pipeline = GSEAPipeline(config, id_mapper=FakeMapper(), source_manager=FakeSources())
        summary = pipeline.run()

        assert summary['status'] == 'ok'
        assert summary['runs']['GO'] == {'tested': 2, 'significant': 2, 'namespace': 'SYMBOL'}
        assert summary['runs']['KEGG']['namespace'] == 'UNIPROT'
        assert summary['series'] == {'primary': 6, 'secondary': 6}
        for key in ('go_csv', 'kegg_csv', 'metadata_json', 'metadata_yaml'):
            assert key in summary['outputs']

        go = pd.read_csv(config.results_dir / 'gsea_go_results_test.csv')
        assert list(go['term_id']) == ['GO:0016079', 'GO:0070371']

    def test_gseapy_inputs(self, config, fake_prerank):
        """GO runs on the symbol ranking, KEGG on the UniProt ranking."""
        GSEAPipeline(config, id_mapper=FakeMapper(), source_manager=FakeSources()).run()
        go_call, kegg_call = fake_prerank

        # Stx1a keeps its last score (2.5); Orphan has none
        assert go_call['rnk'].to_dict() == {
            'Stx1a': 2.5, 'Snap25': 1.5, 'Vamp2': 1.0, 'Syt1': 0.5, 'Mapk1': -0.5, 'Mapk3': -1.0
        }
        assert go_call['gene_sets']['synaptic vesicle exocytosis (GO:0016079)'] == [
            'Stx1a', 'Snap25', 'Vamp2', 'Syt1'
        ]
        assert list(kegg_call['rnk'].index)[0] == 'O35526'
        assert go_call['permutation_num'] == 100

    def test_mapping_requests_every_symbol(self, config, fake_prerank):
        """Each distinct input symbol is looked up once, in file order."""
        mapper = FakeMapper()
        GSEAPipeline(config, id_mapper=mapper, source_manager=FakeSources()).run()

        assert mapper.calls == [['Stx1a', 'Snap25', 'Vamp2', 'Syt1', 'Mapk1', 'Mapk3', 'Orphan']]

    def test_unmapped_symbols_warned(self, config, fake_prerank):
        """Symbols without a mapping are reported as a warning."""
        table = {k: v for k, v in UNIPROT.items() if k != 'Syt1'}
        summary = GSEAPipeline(config, id_mapper=FakeMapper(table), source_manager=FakeSources()).run()

        assert summary['mapping_report']['unmapped_ids'] == ['Syt1', 'Orphan']
        assert any('Failed to map 2/7' in w for w in summary['warnings'])

    def test_metadata(self, config, fake_prerank):
        """Metadata records parameters, gene sets and output counts."""
        GSEAPipeline(config, id_mapper=FakeMapper(), source_manager=FakeSources()).run()

        with open(config.results_dir / 'metadata_test.json') as f:
            metadata = json.load(f)

        assert metadata['parameters']['permutation_num'] == 100
        assert set(metadata['gene_sets']) == {'GO', 'KEGG'}
        assert metadata['gene_sets']['KEGG']['total_sets'] == 2
        assert metadata['gene_sets']['KEGG']['max_size'] == 3
        assert metadata['input_summary']['total_records'] == 8
        assert metadata['input_summary']['ranked_symbols'] == 6
        assert metadata['output_summary']['kegg_significant'] == 2

    def test_nothing_maps(self, config, fake_prerank):
        """No mapped symbol aborts before any enrichment or output."""
        with pytest.raises(NoMappedIdentifiersError):
            GSEAPipeline(config, id_mapper=FakeMapper({}), source_manager=FakeSources()).run()

        assert fake_prerank == []
        assert not config.results_dir.exists()

    def test_mapped_scores_missing(self, config, fake_prerank):
        """Mapped records without scores abort before any output."""
        config.input_path.write_text("gene,log2fc\nStx1a,1.0\nSnap25,\n")
        table = {'Snap25': 'P60879'}

        with pytest.raises(AllScoresMissingError):
            GSEAPipeline(config, id_mapper=FakeMapper(table), source_manager=FakeSources()).run()

        assert fake_prerank == []
        assert not config.results_dir.exists()

    def test_all_scores_missing(self, config, fake_prerank):
        """A table without scores aborts before any enrichment."""
        config.input_path.write_text("gene,log2fc\nA,\nB,NA\n")

        with pytest.raises(AllScoresMissingError):
            GSEAPipeline(config, id_mapper=FakeMapper(), source_manager=FakeSources()).run()
        assert fake_prerank == []


class TestCLI:
    """Test the command line entry point."""

    def test_parser(self):
        """Flags map onto configuration fields."""
        args = cli.build_parser().parse_args([
            'run', 'de.csv', '--results-dir', 'out', '--permutations', '50',
            '--p-adjust', 'BH', '--no-plots', '--pathway', '04010', '--pathway', '04130', '-v'
        ])

        assert args.input_path == 'de.csv'
        assert args.permutation_num == 50
        assert args.p_adjust_method == 'BH'
        assert args.make_plots is False
        assert args.literature_trend is None
        assert args.pathway_ids == ['04010', '04130']
        assert args.verbose is True

    def test_run_command(self, config, monkeypatch, capsys):
        """`fcgsea run` builds the configuration and runs the pipeline."""
        seen = {}

        class FakePipeline:
            def __init__(self, config):
                seen['config'] = config

            def run(self):
                return {'status': 'ok', 'runs': {}, 'outputs': {}, 'warnings': []}

        monkeypatch.setattr(cli, 'GSEAPipeline', FakePipeline)
        code = cli.main([
            'run', str(config.input_path), '--results-dir', str(config.results_dir),
            '--organism', 'human', '--no-pathview'
        ])

        assert code == 0
        assert seen['config'].organism == 'human'
        assert seen['config'].pathway_native is False
        assert seen['config'].pathway_graph is False
        assert json.loads(capsys.readouterr().out)['status'] == 'ok'

    def test_input_error_exit_code(self, tmp_path, monkeypatch):
        """Missing input files exit with status 2."""
        monkeypatch.setenv('FCGSEA_CACHE_DIR', str(tmp_path / 'cache'))
        code = cli.main([
            'run', str(tmp_path / 'missing.csv'), '--results-dir', str(tmp_path / 'out'),
            '--no-plots', '--no-literature', '--no-pathview'
        ])
        assert code == 2
