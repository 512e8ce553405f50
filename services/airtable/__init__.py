"""
Airtable Integration

Gateway to the Airtable REST API and its error translation.
"""

from .client import AirtableClient
from .exceptions import AirtableAPIError, translate_airtable_error

__all__ = ["AirtableClient", "AirtableAPIError", "translate_airtable_error"]
