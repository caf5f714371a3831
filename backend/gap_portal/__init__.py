"""GAP Portal API: grant proposal and concept paper submissions."""

__version__ = "1.0.0"
