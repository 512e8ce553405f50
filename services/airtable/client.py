"""
Airtable Client Module

Thin async gateway over the Airtable REST API.

Every call is a single attempt with a bearer token: 2xx bodies are returned
decoded, anything else raises AirtableAPIError carrying the status and the
provider payload. There is no retry or backoff here; the only retry policy
in the application is the bounded response-sync counter.

Usage:
    client = AirtableClient(settings)
    bases = await client.list_bases(user.airtable_access_token)
    record = await client.create_record(token, base_id, table_id, {"fld1": "x"})
"""

import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from config.constants import SUPPORTED_FIELD_TYPES
from config.settings import Settings
from services.airtable.exceptions import AirtableAPIError
from utils.logging import get_logger, log_api_call

logger = get_logger(__name__)


class AirtableClient:
    """
    Stateless Airtable REST helper.

    The httpx client is shared across requests and closed at shutdown;
    tests inject one built on httpx.MockTransport.
    """

    SERVICE_NAME = "Airtable"

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.base_url = settings.AIRTABLE_API_URL.rstrip("/")
        self.timeout = settings.AIRTABLE_TIMEOUT_SECONDS
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # Core call
    # =========================================================================

    async def call(
        self,
        token: str,
        path: str,
        method: str = "GET",
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Issue one authenticated request.

        Args:
            token: Airtable access token
            path: Path below the API base URL, e.g. "/meta/bases"
            method: HTTP method
            body: JSON body (POST/PATCH only)
            params: Query parameters

        Returns:
            Decoded JSON body

        Raises:
            AirtableAPIError: On non-2xx status or transport failure
        """
        client = await self._get_client()
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        json_body = body if method.upper() in ("POST", "PATCH", "PUT") else None
        endpoint = f"{method.upper()} {path}"

        start = time.perf_counter()
        try:
            response = await client.request(
                method.upper(), url, headers=headers, json=json_body, params=params
            )
        except httpx.HTTPError as e:
            duration_ms = (time.perf_counter() - start) * 1000
            log_api_call(self.SERVICE_NAME, endpoint, False, duration_ms, error=str(e))
            raise AirtableAPIError(0, str(e) or e.__class__.__name__, endpoint) from e

        duration_ms = (time.perf_counter() - start) * 1000

        if response.is_success:
            log_api_call(self.SERVICE_NAME, endpoint, True, duration_ms)
            if not response.content:
                return {}
            return response.json()

        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        error = AirtableAPIError(response.status_code, payload, endpoint)
        log_api_call(self.SERVICE_NAME, endpoint, False, duration_ms, error=error.error_message)
        raise error

    # =========================================================================
    # Schema reads
    # =========================================================================

    async def whoami(self, token: str) -> Dict[str, Any]:
        """Identity of the token's user: {id, email?, scopes}."""
        return await self.call(token, "/meta/whoami")

    async def list_bases(self, token: str) -> List[Dict[str, Any]]:
        """Accessible bases reduced to id, name and permission level."""
        data = await self.call(token, "/meta/bases")
        return [
            {
                "id": base["id"],
                "name": base.get("name"),
                "permissionLevel": base.get("permissionLevel"),
            }
            for base in data.get("bases", [])
        ]

    async def list_tables(self, token: str, base_id: str) -> List[Dict[str, Any]]:
        """Tables of a base with their complete field list."""
        data = await self.call(token, f"/meta/bases/{base_id}/tables")
        return [
            {
                **self._table_info(table),
                "fields": [self._field_info(field) for field in table.get("fields", [])],
            }
            for table in data.get("tables", [])
        ]

    async def list_fields(
        self,
        token: str,
        base_id: str,
        table_id: str,
    ) -> Optional[Tuple[List[Dict[str, Any]], Dict[str, Any]]]:
        """
        Fields of one table that a form can bind to.

        Returns:
            (fields, table_info), or None when the base has no such table
        """
        data = await self.call(token, f"/meta/bases/{base_id}/tables")
        table = next((t for t in data.get("tables", []) if t.get("id") == table_id), None)
        if table is None:
            return None

        fields = [
            self._field_info(field)
            for field in table.get("fields", [])
            if field.get("type") in SUPPORTED_FIELD_TYPES
        ]
        return fields, self._table_info(table)

    # =========================================================================
    # Records
    # =========================================================================

    async def create_record(
        self,
        token: str,
        base_id: str,
        table_id: str,
        fields: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Create one record; Airtable coerces values to the field types."""
        return await self.call(
            token,
            f"/{base_id}/{table_id}",
            method="POST",
            body={"fields": fields, "typecast": True},
        )

    async def list_records(
        self,
        token: str,
        base_id: str,
        table_id: str,
        max_records: int = 10,
        offset: Optional[str] = None,
    ) -> Dict[str, Any]:
        """One page of records, for previews."""
        params: Dict[str, Any] = {"maxRecords": max_records}
        if offset:
            params["offset"] = offset
        return await self.call(token, f"/{base_id}/{table_id}", params=params)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _table_info(table: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": table.get("id"),
            "name": table.get("name"),
            "description": table.get("description"),
            "primaryFieldId": table.get("primaryFieldId"),
        }

    @staticmethod
    def _field_info(field: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": field.get("id"),
            "name": field.get("name"),
            "type": field.get("type"),
            "description": field.get("description"),
            "options": field.get("options"),
        }
