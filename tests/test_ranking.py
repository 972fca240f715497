"""
Unit tests for the ranked gene list builder.
"""

import math

import pandas as pd
import pytest

from fcgsea.errors import (
    AllScoresMissingError,
    EmptyInputError,
    NoMappedIdentifiersError,
    RankedListError,
)
from fcgsea.id_mapper import map_identifiers
from fcgsea.ranking import (
    DuplicatePolicy,
    GeneRecord,
    RankedSeries,
    build_primary_ranked_series,
    build_secondary_ranked_series,
)


def rec(symbol, score, row=-1):
    return GeneRecord(gene_symbol=symbol, log2_fold_change=score, row_index=row)


class TestPrimaryRankedSeries:
    """Test the symbol-keyed ranking."""

    def test_sorted_descending(self):
        """Scores come out highest first."""
        series = build_primary_ranked_series([rec("A", 0.5), rec("B", 2.0), rec("C", -1.0)])

        assert series.identifiers() == ["B", "A", "C"]
        assert list(series.values()) == [2.0, 0.5, -1.0]
        assert series.namespace == "SYMBOL"

    def test_duplicate_keeps_last_by_default(self):
        """A repeated symbol takes the score of its last record."""
        series = build_primary_ranked_series([rec("A", 1), rec("B", 3), rec("A", 2)])

        assert series.to_dict() == {"B": 3.0, "A": 2.0}
        assert series.identifiers() == ["B", "A"]

    def test_duplicate_keep_first(self):
        """KEEP_FIRST keeps the first score instead."""
        series = build_primary_ranked_series(
            [rec("A", 1), rec("B", 3), rec("A", 2)],
            policy=DuplicatePolicy.KEEP_FIRST
        )

        assert series.to_dict() == {"B": 3.0, "A": 1.0}

    def test_policy_accepts_strings(self):
        """Policies can be given by name."""
        series = build_primary_ranked_series([rec("A", 1), rec("A", 2)], policy="first")
        assert series["A"] == 1.0

    def test_unknown_policy(self):
        """An unknown policy name is rejected."""
        with pytest.raises(ValueError):
            build_primary_ranked_series([rec("A", 1)], policy="middle")

    def test_missing_scores_dropped(self):
        """Records with missing scores never reach the series."""
        series = build_primary_ranked_series([
            rec("A", None), rec("B", 1.0), rec("C", float("nan")), rec("D", pd.NA)
        ])

        assert series.to_dict() == {"B": 1.0}

    def test_later_missing_duplicate_removes_key(self):
        """Last write wins before missing values are dropped."""
        series = build_primary_ranked_series([rec("A", 1.0), rec("B", 0.5), rec("A", None)])

        assert "A" not in series
        assert series.identifiers() == ["B"]

    def test_earlier_missing_duplicate_is_overwritten(self):
        """A defined later score replaces an earlier missing one."""
        series = build_primary_ranked_series([rec("A", None), rec("A", 0.7)])
        assert series.to_dict() == {"A": 0.7}

    def test_ties_keep_input_order(self):
        """Tied scores follow the input order of the surviving records."""
        series = build_primary_ranked_series([rec("X", 1.0), rec("Y", 1.0), rec("Z", 1.0)])
        assert series.identifiers() == ["X", "Y", "Z"]

    def test_tie_uses_position_of_surviving_duplicate(self):
        """Under keep-last the winner sits at its later input position."""
        series = build_primary_ranked_series([rec("A", 1.0), rec("B", 1.0), rec("A", 1.0)])
        assert series.identifiers() == ["B", "A"]

    def test_infinite_scores_are_kept(self):
        """Infinite scores are valid and sort to the ends."""
        series = build_primary_ranked_series([rec("A", 0.0), rec("B", math.inf), rec("C", -math.inf)])
        assert series.identifiers() == ["B", "A", "C"]

    def test_idempotent(self):
        """Same input, same output."""
        records = [rec("A", 1), rec("B", 3), rec("A", 2), rec("C", None)]
        assert build_primary_ranked_series(records) == build_primary_ranked_series(records)

    def test_input_not_mutated(self):
        """The record list is left untouched."""
        records = [rec("A", 1), rec("A", 2)]
        build_primary_ranked_series(records)
        assert records == [rec("A", 1), rec("A", 2)]

    def test_empty_input(self):
        """No records is an error."""
        with pytest.raises(EmptyInputError) as exc:
            build_primary_ranked_series([])
        assert exc.value.examined == 0

    def test_all_scores_missing(self):
        """Nothing to rank when every score is missing."""
        with pytest.raises(AllScoresMissingError) as exc:
            build_primary_ranked_series([rec("A", None), rec("B", float("nan"))])
        assert exc.value.examined == 2
        assert isinstance(exc.value, RankedListError)
        assert isinstance(exc.value, ValueError)


class TestSecondaryRankedSeries:
    """Test the ranking in the mapped namespace."""

    def test_records_are_rekeyed(self):
        """Mapped records take their target identifier."""
        mapping = map_identifiers(["A", "B"], [("A", "P1"), ("B", "P2")])
        series = build_secondary_ranked_series([rec("A", 1.0), rec("B", 2.0)], mapping)

        assert series.identifiers() == ["P2", "P1"]
        assert series.namespace == "UNIPROT"

    def test_unmapped_records_dropped(self):
        """Symbols absent from the mapping are dropped."""
        mapping = map_identifiers(["A", "B"], [("A", "P1")])
        series = build_secondary_ranked_series([rec("A", 1.0), rec("B", 2.0)], mapping)

        assert series.to_dict() == {"P1": 1.0}

    def test_collision_keeps_last(self):
        """Two symbols mapped to one target: the later record wins."""
        mapping = {"A": "P1", "B": "P1"}
        series = build_secondary_ranked_series([rec("A", 1.0), rec("B", -2.0)], mapping, namespace="UNIPROT")

        assert series.to_dict() == {"P1": -2.0}

    def test_plain_dict_mapping_needs_namespace(self):
        """A plain dict carries no namespace, so a fallback name is used."""
        series = build_secondary_ranked_series([rec("A", 1.0)], {"A": "x"})
        assert series.namespace == "MAPPED"

    def test_no_mapped_identifiers(self):
        """Nothing maps: NoMappedIdentifiersError."""
        with pytest.raises(NoMappedIdentifiersError) as exc:
            build_secondary_ranked_series([rec("A", 1.0), rec("B", 2.0)], {"C": "P3"})
        assert exc.value.examined == 2

    def test_mapped_scores_all_missing(self):
        """Only missing scores survive mapping: AllScoresMissingError."""
        with pytest.raises(AllScoresMissingError):
            build_secondary_ranked_series([rec("A", None), rec("B", 2.0)], {"A": "P1"})

    def test_empty_input(self):
        """No records is an error, whatever the mapping."""
        with pytest.raises(EmptyInputError):
            build_secondary_ranked_series([], {"A": "P1"})


class TestRankedSeries:
    """Test the RankedSeries container."""

    def test_immutable(self):
        """Attributes cannot be reassigned."""
        series = RankedSeries([("A", 1.0)])
        with pytest.raises(AttributeError):
            series.namespace = "OTHER"

    def test_rejects_duplicate_keys(self):
        """Keys must be unique."""
        with pytest.raises(ValueError):
            RankedSeries([("A", 1.0), ("A", 2.0)])

    def test_to_series(self):
        """pandas export keeps rank order."""
        s = RankedSeries([("B", 2.0), ("A", 1.0)]).to_series()

        assert list(s.index) == ["B", "A"]
        assert s.name == "log2fc"

    def test_mapping_interface(self):
        """Behaves like a read-only mapping."""
        series = RankedSeries([("B", 2.0), ("A", 1.0)])

        assert len(series) == 2
        assert series.get("C") is None
        assert dict(series.items()) == {"B": 2.0, "A": 1.0}

    def test_equality_includes_order(self):
        """Same pairs in another order are a different series."""
        assert RankedSeries([("A", 1.0), ("B", 1.0)]) != RankedSeries([("B", 1.0), ("A", 1.0)])
        assert hash(RankedSeries([("A", 1.0)])) == hash(RankedSeries([("A", 1.0)]))
