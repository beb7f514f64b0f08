"""WasteTrace - draft collection record session and attachment reconciliation."""

__version__ = "0.1.0"
