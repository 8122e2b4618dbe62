"""Legacy source adapters."""

from .csv_source import CSVAdapterError, CSVDecodeError, CSVHeaderError, LegacyCSVAdapter, LegacyCSVStatistics

__all__ = ["CSVAdapterError", "CSVDecodeError", "CSVHeaderError", "LegacyCSVAdapter", "LegacyCSVStatistics"]
