"""
Pydantic schemas for lead records and ingestion acknowledgments.
"""

from funnel.schemas.lead import UTM_FIELDS, IngestAck, LeadRecord

__all__ = [
    "UTM_FIELDS",
    "IngestAck",
    "LeadRecord",
]
