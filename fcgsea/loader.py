"""
Fold-change table loader.

Reads a delimited differential-expression table into GeneRecords. The first
column is always taken as the gene symbol, whatever its header says.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from .errors import MalformedInputRowError
from .ranking import GeneRecord

GENE_SYMBOL_COLUMN = 'gene_symbol'
DEFAULT_SCORE_COLUMN = 'log2fc'

# pandas' default missing-value markers, applied to the score column only
SCORE_NA_VALUES = [
    '', '#N/A', '#N/A N/A', '#NA', '-1.#IND', '-1.#QNAN', '-NaN', '-nan',
    '1.#IND', '1.#QNAN', '<NA>', 'N/A', 'NA', 'NULL', 'NaN', 'None', 'n/a', 'nan', 'null',
]


def read_fold_change_table(
    path: Union[str, Path],
    score_column: str = DEFAULT_SCORE_COLUMN,
    sep: Optional[str] = None
) -> pd.DataFrame:
    """
    Read the table and rename its first column to ``gene_symbol``.

    Args:
        path: CSV/TSV file with a header row
        score_column: Column holding the ranking score
        sep: Field separator; sniffed from the file extension when None

    Raises:
        FileNotFoundError: If the file doesn't exist
        MalformedInputRowError: If a required column is absent
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input table not found: {path}")

    if sep is None:
        sep = '\t' if path.suffix.lower() in ('.tsv', '.txt', '.tab') else ','

    # Identifiers keep their text: no float coercion, no NA markers
    df = pd.read_csv(
        path,
        sep=sep,
        encoding='utf-8',
        converters={0: str},
        keep_default_na=False,
        na_values={score_column: SCORE_NA_VALUES},
    )
    if df.shape[1] < 2:
        raise MalformedInputRowError(
            f"{path.name}: expected a gene column and a '{score_column}' column, "
            f"got {list(df.columns)}"
        )

    df = df.rename(columns={df.columns[0]: GENE_SYMBOL_COLUMN})
    if score_column not in df.columns:
        raise MalformedInputRowError(
            f"{path.name}: required column '{score_column}' not found "
            f"(columns: {list(df.columns)})"
        )

    logging.info(f"Loaded {len(df)} rows from {path}")
    return df


def records_from_frame(df: pd.DataFrame, score_column: str = DEFAULT_SCORE_COLUMN) -> List[GeneRecord]:
    """
    Convert a loaded table into GeneRecords.

    Empty score cells become missing scores. A blank gene identifier or a
    non-numeric score is a malformed row.
    """
    for column in (GENE_SYMBOL_COLUMN, score_column):
        if column not in df.columns:
            raise MalformedInputRowError(f"Required column '{column}' not found")

    records = []
    for row_index, (symbol, raw_score) in enumerate(zip(df[GENE_SYMBOL_COLUMN], df[score_column])):
        if pd.isna(symbol) or not str(symbol).strip():
            raise MalformedInputRowError(
                f"Row {row_index}: missing gene identifier",
                row_index=row_index
            )
        symbol = str(symbol).strip()

        if pd.isna(raw_score) or (isinstance(raw_score, str) and raw_score.strip().upper() in ('', 'NA', 'NAN')):
            score = None
        else:
            try:
                score = float(raw_score)
            except (TypeError, ValueError):
                raise MalformedInputRowError(
                    f"Row {row_index}: gene '{symbol}' has non-numeric {score_column} value {raw_score!r}",
                    identifier=symbol,
                    row_index=row_index
                )
        records.append(GeneRecord(gene_symbol=symbol, log2_fold_change=score, row_index=row_index))

    return records


def load_gene_records(
    path: Union[str, Path],
    score_column: str = DEFAULT_SCORE_COLUMN,
    sep: Optional[str] = None
) -> List[GeneRecord]:
    """Read a fold-change table straight into GeneRecords"""
    df = read_fold_change_table(path, score_column=score_column, sep=sep)
    return records_from_frame(df, score_column=score_column)
