"""Landing-page funnel: lead capture forms and the spreadsheet ingestion endpoint."""

__version__ = "1.0.0"
