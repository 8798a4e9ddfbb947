"""Client-side field-level encryption for CSV and JSON files."""

__version__ = "0.1.0"
