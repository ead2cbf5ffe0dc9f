"""Turning raw input into typed columns."""

from pivot_host.ingestion.inference import infer_column_type, infer_type
from pivot_host.ingestion.normalize import NormalizedData, normalize

__all__ = ["NormalizedData", "infer_column_type", "infer_type", "normalize"]
