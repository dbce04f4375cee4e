"""
OData request handling.

Resolves a request against the configured API: checks the permission table,
serves views, entity sets and single entities with system query options,
persists changes through the submit pipeline, and invokes operations. Every
function takes an ``ApiContext`` and returns a JSON-ready payload; HTTP
concerns stay in ``northwind.routes.odata``.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, ValidationError, create_model
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.sql import ColumnElement, Select

from northwind.services.api_config import ApiContext, Operation
from northwind.services.edm import EdmEntityType, EdmModel, EdmNavigationProperty
from northwind.services.errors import (
    AuthorizationError,
    EntityConflictError,
    EntityNotFoundError,
    MethodNotAllowedError,
    ODataQueryError,
    OperationError,
    ViewReadOnlyError,
)
from northwind.services.query_options import (
    apply_filter_and_order,
    apply_paging,
    coerce_value,
    count_query,
    parse_key,
    parse_query_options,
    parse_segment,
    validate_shape,
    where_key,
)
from northwind.services.security import PermissionKind
from northwind.services.serializer import expansions_for, serialize_collection, serialize_entity, with_eager_loading
from northwind.services.submit import ChangeType, submit_change
from northwind.utils.sql import scalar_int

logger = logging.getLogger(__name__)


def _model(context: ApiContext) -> EdmModel:
    return context.config.build_model()


def _entity_type(context: ApiContext, name: str) -> EdmEntityType:
    entity_set = _model(context).find_entity_set(name)
    if entity_set is None:
        raise EntityNotFoundError(f"Resource '{name}' does not exist")
    return entity_set.entity_type


def _source(context: ApiContext, name: str) -> Select:
    """Queryable for an entity set or view, after the Read check."""
    config = context.config
    if name not in config.entity_sets and name not in config.views:
        raise EntityNotFoundError(f"Resource '{name}' does not exist")

    config.permissions.require(name, PermissionKind.READ, context.roles)
    view = config.views.get(name)
    if view is not None:
        return view.query(context)
    return config.get_queryable_source(name)


def _reject_view_writes(context: ApiContext, name: str) -> None:
    if name in context.config.views:
        raise ViewReadOnlyError(name)
    if name not in context.config.entity_sets:
        raise EntityNotFoundError(f"Resource '{name}' does not exist")


def _find_entity(context: ApiContext, name: str, query: Select, key_text: str, entity_type: EdmEntityType):
    key = parse_key(key_text, entity_type)
    entity = context.session.exec(where_key(query, entity_type, key)).first()
    if entity is None:
        raise EntityNotFoundError(f"No entity in '{name}' with key ({key_text})")
    return entity


def _payload_values(entity_type: EdmEntityType, body: Dict[str, Any]) -> Dict[str, Any]:
    """Map an OData JSON payload to {python_name: value}."""
    if not isinstance(body, dict):
        raise ODataQueryError("Request body must be a JSON object")

    values: Dict[str, Any] = {}
    for name, value in body.items():
        if name.startswith("@odata."):
            continue
        prop = entity_type.find_structural(name)
        if prop is None:
            if entity_type.find_navigation(name) is not None:
                raise ODataQueryError(f"Deep insert/update through '{name}' is not supported")
            raise ODataQueryError(f"Property '{name}' not found on type '{entity_type.name}'")
        values[prop.python_name] = coerce_value(prop, value)
    return values


def _check_required(entity_type: EdmEntityType, entity: Any) -> None:
    for prop in entity_type.structural_properties:
        if getattr(entity, prop.python_name) is not None:
            continue
        is_generated_key = prop.name in entity_type.key and prop.python_type is int and len(entity_type.key) == 1
        if not prop.nullable and not is_generated_key:
            raise ODataQueryError(f"Property '{prop.name}' is required")


def _check_dependents(name: str, entity: Any) -> None:
    """Refuse a delete that would leave rows pointing at ``entity`` through their key."""
    for rel in sa_inspect(type(entity)).relationships:
        if not rel.uselist or rel.cascade.delete:
            continue
        # Nullable references are cleared by the ORM on delete
        if not any(column.primary_key or not column.nullable for column in rel.remote_side):
            continue
        if getattr(entity, rel.key):
            label = rel.info.get("edm_name") or rel.key
            raise EntityConflictError(f"Cannot delete from '{name}': related {label} rows still exist")


def _navigation_loads(
    context: ApiContext, entity_type: EdmEntityType, requested: List[EdmNavigationProperty]
) -> List[Tuple[EdmNavigationProperty, Optional[ColumnElement]]]:
    """
    Navigations to load with ``entity_type``: auto-expanded ones plus ``$expand``.

    ``$expand`` needs Read on the target entity set; auto-expanded navigations
    are covered by the grant on the set being queried. The target set's
    entity-set filter applies to both.
    """
    config = context.config
    model = _model(context)
    loads = []
    for nav in expansions_for(model, entity_type, requested):
        target_class = model.find_type(nav.target_type).model_class
        set_name = config.entity_set_for_class(target_class)
        if nav in requested:
            if set_name is None:
                raise AuthorizationError(nav.target_type, PermissionKind.READ.value)
            config.permissions.require(set_name, PermissionKind.READ, context.roles)
        loads.append((nav, config.filter_criteria(set_name) if set_name is not None else None))
    return loads


# ============================================================================
# Service document & metadata
# ============================================================================


def _visible_names(context: ApiContext) -> Tuple[List[str], List[str]]:
    config = context.config
    model = _model(context)
    sets = [
        name
        for name in model.entity_sets
        if config.permissions.is_allowed(name, PermissionKind.INSPECT, context.roles)
    ]
    operations = []
    for operation in config.operations.values():
        target = operation.binding or operation.name
        if config.permissions.is_allowed(target, PermissionKind.INSPECT, context.roles):
            operations.append(operation.name)
    return sets, operations


def service_document(context: ApiContext) -> Dict[str, Any]:
    sets, _ = _visible_names(context)
    return {
        "@odata.context": "$metadata",
        "value": [{"name": name, "kind": "EntitySet", "url": name} for name in sets],
    }


def metadata_document(context: ApiContext) -> Dict[str, Any]:
    sets, operations = _visible_names(context)
    return _model(context).to_csdl(visible_sets=sets, visible_operations=operations)


# ============================================================================
# Queries
# ============================================================================


def query_collection(context: ApiContext, name: str, params: Dict[str, str]) -> Dict[str, Any]:
    query = _source(context, name)
    entity_type = _entity_type(context, name)
    model = _model(context)

    options = parse_query_options(params)
    requested = validate_shape(options, entity_type)
    query = apply_filter_and_order(query, options, entity_type)

    count = None
    if options.count:
        count = scalar_int(context.session.exec(count_query(query)).one())

    query = apply_paging(query, options, entity_type)
    query = with_eager_loading(query, entity_type, _navigation_loads(context, entity_type, requested))
    entities = context.session.exec(query).all()

    logger.debug("Query %s returned %d rows", name, len(entities))
    return serialize_collection(model, name, entities, entity_type, options.select, requested, count)


def get_entity(context: ApiContext, name: str, key_text: str, params: Dict[str, str]) -> Dict[str, Any]:
    query = _source(context, name)
    entity_type = _entity_type(context, name)
    model = _model(context)

    options = parse_query_options(params)
    requested = validate_shape(options, entity_type)
    query = with_eager_loading(query, entity_type, _navigation_loads(context, entity_type, requested))
    entity = _find_entity(context, name, query, key_text, entity_type)

    payload = {"@odata.context": f"$metadata#{name}/$entity"}
    payload.update(serialize_entity(model, entity, entity_type, options.select, requested))
    return payload


# ============================================================================
# Changes
# ============================================================================


def create_entity(context: ApiContext, name: str, body: Dict[str, Any]) -> Dict[str, Any]:
    _reject_view_writes(context, name)
    context.config.permissions.require(name, PermissionKind.CREATE, context.roles)
    entity_type = _entity_type(context, name)

    entity = entity_type.model_class(**_payload_values(entity_type, body))
    _check_required(entity_type, entity)
    submit_change(context, name, entity, ChangeType.INSERT)
    return serialize_entity(_model(context), entity, entity_type)


def update_entity(context: ApiContext, name: str, key_text: str, body: Dict[str, Any]) -> Dict[str, Any]:
    _reject_view_writes(context, name)
    context.config.permissions.require(name, PermissionKind.UPDATE, context.roles)
    entity_type = _entity_type(context, name)

    entity = _find_entity(context, name, context.config.get_queryable_source(name), key_text, entity_type)
    values = _payload_values(entity_type, body)
    for prop in entity_type.key_properties:
        if prop.python_name in values and values[prop.python_name] != getattr(entity, prop.python_name):
            raise ODataQueryError(f"Key property '{prop.name}' cannot be changed")

    for python_name, value in values.items():
        setattr(entity, python_name, value)
    _check_required(entity_type, entity)
    submit_change(context, name, entity, ChangeType.UPDATE)
    return serialize_entity(_model(context), entity, entity_type)


def delete_entity(context: ApiContext, name: str, key_text: str) -> None:
    _reject_view_writes(context, name)
    context.config.permissions.require(name, PermissionKind.DELETE, context.roles)
    entity_type = _entity_type(context, name)

    entity = _find_entity(context, name, context.config.get_queryable_source(name), key_text, entity_type)
    _check_dependents(name, entity)
    submit_change(context, name, entity, ChangeType.DELETE)


# ============================================================================
# Operations
# ============================================================================


def _operation_name(segment: str) -> str:
    name = segment[:-2] if segment.endswith("()") else segment
    return name.rsplit(".", 1)[-1]


def find_operation(context: ApiContext, segment: str) -> Optional[Operation]:
    return context.config.operations.get(_operation_name(segment))


@lru_cache(maxsize=None)
def _parameters_model(operation: Operation) -> Type[BaseModel]:
    """Request model for an operation's declared parameters; unknown names are rejected."""
    fields = {name: (python_type, ...) for name, python_type in operation.parameters}
    return create_model(f"{operation.name}Parameters", __config__=ConfigDict(extra="forbid"), **fields)


def _bind_arguments(operation: Operation, args: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(args, dict):
        raise OperationError("Operation parameters must be a JSON object")

    try:
        parameters = _parameters_model(operation).model_validate(args)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        raise OperationError(f"Invalid parameters for {operation.name}: {problems}")
    return parameters.model_dump()


def invoke_operation(
    context: ApiContext,
    operation_segment: str,
    binding_segment: Optional[str],
    args: Dict[str, Any],
    is_post: bool,
) -> Optional[Dict[str, Any]]:
    """
    Invoke an action (POST) or function (GET).

    Unbound operations need Execute on the operation name. Bound actions need
    Update, and bound functions Read, on the entity set they are bound to.
    Permission is checked before the binding is resolved or the body runs.
    """
    config = context.config
    operation = find_operation(context, operation_segment)
    if operation is None:
        raise EntityNotFoundError(f"Operation '{operation_segment}' does not exist")

    if operation.has_side_effects and not is_post:
        raise MethodNotAllowedError(f"Action '{operation.name}' must be invoked with POST")
    if not operation.has_side_effects and is_post:
        raise MethodNotAllowedError(f"Function '{operation.name}' must be invoked with GET")

    if operation.binding is None:
        if binding_segment is not None:
            raise OperationError(f"Operation '{operation.name}' is not bound")
        config.permissions.require(operation.name, PermissionKind.EXECUTE, context.roles)
        binding_args: Tuple[Any, ...] = ()
    else:
        if binding_segment is None:
            raise OperationError(f"Operation '{operation.name}' must be bound to '{operation.binding}'")
        set_name, key_text = parse_segment(binding_segment)
        source_name = config.views[set_name].source if set_name in config.views else set_name
        if source_name != operation.binding:
            raise OperationError(f"Operation '{operation.name}' cannot be bound to '{set_name}'")
        if operation.has_side_effects and set_name in config.views:
            raise ViewReadOnlyError(set_name)

        kind = PermissionKind.UPDATE if operation.has_side_effects else PermissionKind.READ
        config.permissions.require(set_name, kind, context.roles)
        query = _source(context, set_name)

        if operation.bound_to_collection:
            if key_text is not None:
                raise OperationError(f"Operation '{operation.name}' is bound to a collection, not an entity")
            binding_args = (query,)
        else:
            if key_text is None:
                raise OperationError(f"Operation '{operation.name}' is bound to a single entity; a key is required")
            binding_args = (_find_entity(context, set_name, query, key_text, _entity_type(context, set_name)),)

    kwargs = _bind_arguments(operation, args)
    logger.info("Invoking %s (bound to %s)", operation.name, binding_segment or "-")
    result = operation.func(context, *binding_args, **kwargs)

    if operation.return_type is None:
        return None
    return {"@odata.context": f"$metadata#{_edm_return_type(context, operation)}", "value": result}


def _edm_return_type(context: ApiContext, operation: Operation) -> str:
    edm_operation = _model(context).find_operation(operation.name)
    return edm_operation.return_type if edm_operation is not None else "Edm.Untyped"
