"""
Airtable Router

Proxies the Airtable schema and record calls the form builder needs,
using the current user's Airtable token.

Endpoints:
    GET  /api/airtable/bases
    GET  /api/airtable/bases/{base_id}/tables
    GET  /api/airtable/bases/{base_id}/tables/{table_id}/fields
    POST /api/airtable/bases/{base_id}/tables/{table_id}/records
    GET  /api/airtable/bases/{base_id}/tables/{table_id}/records
    POST /api/airtable/test-connection
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from core import schemas
from core.dependencies import get_airtable_client
from auth import get_airtable_token
from services.airtable.client import AirtableClient
from services.airtable.exceptions import AirtableAPIError, translate_airtable_error
from utils.exceptions import InvalidRequestError, NotFoundError
from utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/airtable", tags=["Airtable"])


@router.get("/bases", response_model=schemas.BaseListResponse, summary="List bases")
async def list_bases(
    token: str = Depends(get_airtable_token),
    airtable: AirtableClient = Depends(get_airtable_client),
):
    """Bases the user granted access to: id, name and permission level."""
    try:
        bases = await airtable.list_bases(token)
    except AirtableAPIError as e:
        raise translate_airtable_error(e, "Failed to fetch bases")
    return {"bases": bases}


@router.get("/bases/{base_id}/tables", response_model=schemas.TableListResponse, summary="List tables")
async def list_tables(
    base_id: str,
    token: str = Depends(get_airtable_token),
    airtable: AirtableClient = Depends(get_airtable_client),
):
    """Tables of a base with all of their fields."""
    try:
        tables = await airtable.list_tables(token, base_id)
    except AirtableAPIError as e:
        raise translate_airtable_error(e, "Failed to fetch tables", not_found_message="Base not found")
    return {"tables": tables}


@router.get(
    "/bases/{base_id}/tables/{table_id}/fields",
    response_model=schemas.FieldListResponse,
    summary="List form-compatible fields",
    responses={404: {"description": "Base or table not found"}},
)
async def list_fields(
    base_id: str,
    table_id: str,
    token: str = Depends(get_airtable_token),
    airtable: AirtableClient = Depends(get_airtable_client),
):
    """
    Fields of one table whose type a form question can bind to.

    Raises:
        NotFoundError: Base or table does not exist
    """
    try:
        result = await airtable.list_fields(token, base_id, table_id)
    except AirtableAPIError as e:
        raise translate_airtable_error(e, "Failed to fetch fields", not_found_message="Base not found")

    if result is None:
        raise NotFoundError("Table not found", resource="table", resource_id=table_id)

    fields, table = result
    return {"fields": fields, "table": table}


@router.post(
    "/bases/{base_id}/tables/{table_id}/records",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.RecordCreateResponse,
    summary="Create record",
)
async def create_record(
    base_id: str,
    table_id: str,
    data: schemas.CreateRecordRequest,
    token: str = Depends(get_airtable_token),
    airtable: AirtableClient = Depends(get_airtable_client),
):
    """
    Create one record from a {fieldId: value} map.

    Raises:
        InvalidRequestError: No fields given
        InvalidPayloadError: Airtable rejected the values
    """
    if not data.fields:
        raise InvalidRequestError("Fields data is required", field="fields")

    try:
        record = await airtable.create_record(token, base_id, table_id, data.fields)
    except AirtableAPIError as e:
        raise translate_airtable_error(e, "Failed to create record", not_found_message="Table not found")

    logger.info(f"Record created in {base_id}/{table_id}: {record.get('id')}")
    return {"message": "Record created successfully", "record": record}


@router.get(
    "/bases/{base_id}/tables/{table_id}/records",
    response_model=schemas.RecordListResponse,
    summary="Preview records",
)
async def list_records(
    base_id: str,
    table_id: str,
    max_records: int = Query(10, alias="maxRecords", ge=1, le=100),
    offset: Optional[str] = None,
    token: str = Depends(get_airtable_token),
    airtable: AirtableClient = Depends(get_airtable_client),
):
    """One page of records; pass the returned offset to continue."""
    try:
        data = await airtable.list_records(token, base_id, table_id, max_records=max_records, offset=offset)
    except AirtableAPIError as e:
        raise translate_airtable_error(e, "Failed to fetch records", not_found_message="Table not found")
    return {"records": data.get("records", []), "offset": data.get("offset")}


@router.post(
    "/test-connection",
    response_model=schemas.ConnectionTestResponse,
    summary="Test Airtable connection",
)
async def test_connection(
    token: str = Depends(get_airtable_token),
    airtable: AirtableClient = Depends(get_airtable_client),
):
    """Cheap authenticated call proving the stored token works."""
    try:
        bases = await airtable.list_bases(token)
    except AirtableAPIError as e:
        raise translate_airtable_error(e, "Airtable connection failed")
    return {
        "message": "Airtable connection successful",
        "basesCount": len(bases),
    }
