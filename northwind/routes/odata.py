"""
OData endpoints.

URL shapes (all under the /odata prefix):

    GET    /                                      service document
    GET    /$metadata                             JSON CSDL
    GET    /{set}                                 collection (entity set or view)
    GET    /{set}({key})                          single entity
    POST   /{set}                                 create
    PATCH  /{set}({key})                          update
    DELETE /{set}({key})                          delete
    POST   /{action}                              unbound action, e.g. /ResetDataSource
    POST   /{set}({key})/Northwind.{action}       action bound to an entity
    GET    /{set}/Northwind.{function}()          function bound to a collection

Caller roles are read from the X-Roles header (comma separated).
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Header, Request, Response
from sqlmodel import Session

from northwind.api import get_api
from northwind.database import get_session
from northwind.services import odata_service
from northwind.services.api_config import ApiConfiguration, ApiContext
from northwind.services.errors import ODataQueryError
from northwind.services.query_options import parse_segment

logger = logging.getLogger(__name__)

router = APIRouter()


def get_caller_roles(x_roles: Optional[str] = Header(default=None)) -> List[str]:
    if not x_roles:
        return []
    return [role.strip() for role in x_roles.split(",") if role.strip()]


def get_api_context(
    session: Session = Depends(get_session),
    config: ApiConfiguration = Depends(get_api),
    roles: List[str] = Depends(get_caller_roles),
) -> ApiContext:
    return ApiContext(config=config, session=session, roles=roles)


def _function_args(request: Request) -> Dict[str, Any]:
    """Query-string parameters minus system query options."""
    return {name: value for name, value in request.query_params.items() if not name.startswith("$")}


def _is_unbound_operation(context: ApiContext, name: str) -> bool:
    operation = odata_service.find_operation(context, name)
    return operation is not None and operation.binding is None


# ============================================================================
# Service document & metadata
# ============================================================================


@router.get("/")
def get_service_document(context: ApiContext = Depends(get_api_context)):
    return odata_service.service_document(context)


@router.get("/$metadata")
def get_metadata(context: ApiContext = Depends(get_api_context)):
    return odata_service.metadata_document(context)


# ============================================================================
# Entity sets, views and single entities
# ============================================================================


@router.get("/{resource}")
def get_resource(resource: str, request: Request, context: ApiContext = Depends(get_api_context)):
    """Collection, single entity, or an unbound function."""
    if _is_unbound_operation(context, resource):
        return odata_service.invoke_operation(context, resource, None, _function_args(request), is_post=False)

    name, key_text = parse_segment(resource)
    params = dict(request.query_params)
    if key_text is None:
        return odata_service.query_collection(context, name, params)
    return odata_service.get_entity(context, name, key_text, params)


@router.post("/{resource}", status_code=201)
def post_resource(
    resource: str,
    body: Optional[Dict[str, Any]] = Body(default=None),
    context: ApiContext = Depends(get_api_context),
):
    """Create an entity, or invoke an unbound action."""
    body = body or {}

    if _is_unbound_operation(context, resource):
        result = odata_service.invoke_operation(context, resource, None, body, is_post=True)
        if result is None:
            return Response(status_code=204)
        return result

    name, key_text = parse_segment(resource)
    if key_text is not None:
        raise ODataQueryError("POST to a single entity is not supported; use PATCH")
    return odata_service.create_entity(context, name, body)


@router.patch("/{resource}")
def patch_resource(
    resource: str,
    body: Optional[Dict[str, Any]] = Body(default=None),
    context: ApiContext = Depends(get_api_context),
):
    body = body or {}
    name, key_text = parse_segment(resource)
    if key_text is None:
        raise ODataQueryError("PATCH requires an entity key")
    return odata_service.update_entity(context, name, key_text, body)


@router.delete("/{resource}", status_code=204)
def delete_resource(resource: str, context: ApiContext = Depends(get_api_context)):
    name, key_text = parse_segment(resource)
    if key_text is None:
        raise ODataQueryError("DELETE requires an entity key")
    odata_service.delete_entity(context, name, key_text)
    return Response(status_code=204)


# ============================================================================
# Bound operations
# ============================================================================


@router.get("/{resource}/{operation}")
def get_bound_operation(
    resource: str, operation: str, request: Request, context: ApiContext = Depends(get_api_context)
):
    return odata_service.invoke_operation(context, operation, resource, _function_args(request), is_post=False)


@router.post("/{resource}/{operation}")
def post_bound_operation(
    resource: str,
    operation: str,
    body: Optional[Dict[str, Any]] = Body(default=None),
    context: ApiContext = Depends(get_api_context),
):
    body = body or {}
    result = odata_service.invoke_operation(context, operation, resource, body, is_post=True)
    if result is None:
        return Response(status_code=204)
    return result
