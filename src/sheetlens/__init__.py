"""SheetLens - offline-first typed table model over Google Sheets."""

__version__ = "0.1.0"
