"""
Unit tests for identifier mapping.
"""

import pytest

from fcgsea.id_mapper import GeneIdMapper, IdentifierMapping, map_identifiers
from fcgsea.ranking import DuplicatePolicy


class FakeMyGene:
    """Stands in for mygene.MyGeneInfo"""

    def __init__(self, out=None, error=None):
        self.out = out or []
        self.error = error
        self.calls = []

    def querymany(self, ids, **kwargs):
        self.calls.append((list(ids), kwargs))
        if self.error:
            raise self.error
        return {'out': self.out, 'missing': []}


class TestMapIdentifiers:
    """Test reduction of lookup pairs to one target per symbol."""

    def test_first_candidate_kept(self):
        """Default policy keeps the first target per symbol."""
        mapping = map_identifiers(["A", "B"], [("A", "x"), ("A", "y"), ("B", "z")])

        assert mapping.to_dict() == {"A": "x", "B": "z"}
        assert mapping.duplicated == ("A",)

    def test_keep_last(self):
        """KEEP_LAST keeps the last target."""
        mapping = map_identifiers(["A"], [("A", "x"), ("A", "y")], policy=DuplicatePolicy.KEEP_LAST)
        assert mapping["A"] == "y"

    def test_unmapped_recorded(self):
        """Symbols without a pair are reported, not raised."""
        mapping = map_identifiers(["A", "B", "C"], [("B", "z")])

        assert list(mapping) == ["B"]
        assert mapping.unmapped == ("A", "C")

    def test_missing_targets_ignored(self):
        """Pairs with an empty target do not count as a mapping."""
        mapping = map_identifiers(["A"], [("A", None), ("A", float("nan"))])

        assert len(mapping) == 0
        assert mapping.unmapped == ("A",)

    def test_unrequested_sources_ignored(self):
        """Pairs for symbols that were not asked for are skipped."""
        mapping = map_identifiers(["A"], [("Q", "q"), ("A", "a")])
        assert mapping.to_dict() == {"A": "a"}

    def test_order_follows_symbols(self):
        """Mapping order follows the requested symbols, not the pair order."""
        mapping = map_identifiers(["A", "B"], [("B", "b"), ("A", "a")])
        assert list(mapping) == ["A", "B"]

    def test_report(self):
        """The report counts mapped, unmapped and duplicated symbols."""
        mapping = map_identifiers(["A", "B", "C"], [("A", "x"), ("A", "y"), ("B", "z")])
        report = mapping.report(species="mouse")

        assert report.input_count == 3
        assert report.mapped_count == 2
        assert report.unmapped_count == 1
        assert report.unmapped_ids == ["C"]
        assert report.duplicated_ids == ["A"]
        assert report.policy == "first"
        assert report.to_dict()["target_type"] == "UNIPROT"


class TestExtractTargets:
    """Test pulling target ids out of mygene hits."""

    def test_swissprot_before_trembl(self):
        """Reviewed accessions come first."""
        hit = {'uniprot': {'TrEMBL': ['T1', 'T2'], 'Swiss-Prot': 'P1'}}
        assert GeneIdMapper._extract_targets(hit, 'uniprot') == ['P1', 'T1', 'T2']

    def test_nested_ensembl(self):
        """Dotted fields are followed through lists of records."""
        hit = {'ensembl': [{'gene': 'ENSG1'}, {'gene': 'ENSG2'}]}
        assert GeneIdMapper._extract_targets(hit, 'ensembl.gene') == ['ENSG1', 'ENSG2']

    def test_scalar(self):
        """Scalar fields become a one-item list."""
        assert GeneIdMapper._extract_targets({'entrezgene': 20907}, 'entrezgene') == ['20907']

    def test_absent(self):
        """Missing fields give no targets."""
        assert GeneIdMapper._extract_targets({'symbol': 'A'}, 'uniprot') == []


class TestGeneIdMapper:
    """Test the mygene-backed lookup."""

    def test_lookup_pairs(self, tmp_path):
        """Hits become (query, target) pairs; notfound hits are skipped."""
        client = FakeMyGene(out=[
            {'query': 'Stx1a', 'uniprot': {'Swiss-Prot': 'O35526'}},
            {'query': 'Nope', 'notfound': True},
        ])
        mapper = GeneIdMapper(cache_dir=tmp_path, client=client)

        pairs = mapper.lookup(['Stx1a', 'Nope'], 'SYMBOL', 'UNIPROT', species='mouse')

        assert pairs == [('Stx1a', 'O35526')]
        ids, kwargs = client.calls[0]
        assert kwargs['scopes'] == 'symbol'
        assert kwargs['fields'] == 'uniprot'
        assert kwargs['species'] == 10090

    def test_lookup_cached(self, tmp_path):
        """A repeated lookup is served from the cache."""
        client = FakeMyGene(out=[{'query': 'A', 'entrezgene': 1}])
        mapper = GeneIdMapper(cache_dir=tmp_path, client=client)

        first = mapper.lookup(['A'], 'SYMBOL', 'ENTREZID', species='human')
        second = mapper.lookup(['A'], 'SYMBOL', 'ENTREZID', species='human')

        assert first == second == [('A', '1')]
        assert len(client.calls) == 1

    def test_lookup_failure(self, tmp_path):
        """Service failures surface as RuntimeError."""
        mapper = GeneIdMapper(cache_dir=tmp_path, client=FakeMyGene(error=ConnectionError("down")))

        with pytest.raises(RuntimeError):
            mapper.lookup(['A'], species='human')

    def test_unsupported_namespace(self, tmp_path):
        """Unknown namespaces are rejected."""
        mapper = GeneIdMapper(cache_dir=tmp_path, client=FakeMyGene())

        with pytest.raises(ValueError):
            mapper.lookup(['A'], 'SYMBOL', 'REFSEQ', species='human')

    def test_map_genes(self, tmp_path):
        """Lookup, reduction and report in one call."""
        client = FakeMyGene(out=[
            {'query': 'A', 'uniprot': {'Swiss-Prot': ['P1', 'P2']}},
            {'query': 'B', 'notfound': True},
        ])
        mapper = GeneIdMapper(cache_dir=tmp_path, client=client)

        mapping, report = mapper.map_genes(['A', 'B'], species='mmu')

        assert isinstance(mapping, IdentifierMapping)
        assert mapping.to_dict() == {'A': 'P1'}
        assert report.species == 'mouse'
        assert report.unmapped_ids == ['B']
