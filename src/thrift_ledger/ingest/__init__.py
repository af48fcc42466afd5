"""Sheet ingest: column resolution, row normalization and framing."""

from thrift_ledger.ingest.columns import (
    COLUMN_ALIASES,
    column_summary,
    find_column,
    require_identity_columns,
    resolve_columns,
)
from thrift_ledger.ingest.normalizer import RowNormalizer, canonical_code, parse_amount
from thrift_ledger.ingest.sheet import detect_month, parse_grid, resolve_upload_month
from thrift_ledger.ingest.types import NormalizedRow, ParsedSheet, RowFailure, RowWarning

__all__ = [
    "COLUMN_ALIASES",
    "NormalizedRow",
    "ParsedSheet",
    "RowFailure",
    "RowNormalizer",
    "RowWarning",
    "canonical_code",
    "column_summary",
    "detect_month",
    "find_column",
    "parse_amount",
    "parse_grid",
    "require_identity_columns",
    "resolve_columns",
    "resolve_upload_month",
]
