"""
Error taxonomy for ranked gene list preparation.

All errors are terminal for the analysis run that raises them.
"""

from typing import Optional


class RankedListError(ValueError):
    """Base class for errors raised while turning input into a ranked list"""

    def __init__(self, message: str, identifier: Optional[str] = None,
                 row_index: Optional[int] = None, examined: Optional[int] = None):
        super().__init__(message)
        self.identifier = identifier
        self.row_index = row_index
        self.examined = examined


class EmptyInputError(RankedListError):
    """No records were supplied"""


class AllScoresMissingError(RankedListError):
    """Every candidate record has a missing score, so nothing can be ranked"""


class NoMappedIdentifiersError(RankedListError):
    """No record survived identifier mapping"""


class MalformedInputRowError(RankedListError):
    """A row (or the whole table) lacks a required field"""
