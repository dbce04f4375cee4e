"""
OData JSON serialization of SQLModel entities.

Navigation properties annotated with ``QueryableRestrictions(auto_expand=True)``
are expanded on every entity of the declaring type, in addition to anything
requested with ``$expand``.
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import selectinload
from sqlalchemy.sql import ColumnElement, Select

from northwind.services.edm import EdmEntityType, EdmModel, EdmNavigationProperty
from northwind.services.errors import ODataQueryError

# Auto-expanded navigation properties are followed this many levels deep
MAX_EXPAND_DEPTH = 2


def _json_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def expansions_for(
    model: EdmModel, entity_type: EdmEntityType, requested: Iterable[EdmNavigationProperty] = ()
) -> List[EdmNavigationProperty]:
    expanded = list(model.auto_expand_properties(entity_type))
    for nav in requested:
        if nav not in expanded:
            expanded.append(nav)
    return expanded


def with_eager_loading(
    query: Select,
    entity_type: EdmEntityType,
    loads: Iterable[Tuple[EdmNavigationProperty, Optional[ColumnElement]]],
) -> Select:
    """
    Load expanded navigation properties with one extra query each instead of one per row.

    A navigation paired with criteria only loads the related rows matching them.
    """
    filtered = False
    for nav, criteria in loads:
        attribute = getattr(entity_type.model_class, nav.python_name)
        if criteria is not None:
            attribute = attribute.and_(criteria)
            filtered = True
        query = query.options(selectinload(attribute))
    if filtered:
        # Reload relationships already present in the session
        query = query.execution_options(populate_existing=True)
    return query


def serialize_entity(
    model: EdmModel,
    entity: Any,
    entity_type: Optional[EdmEntityType] = None,
    select: Iterable[str] = (),
    expand: Iterable[EdmNavigationProperty] = (),
    depth: int = 0,
) -> Dict[str, Any]:
    if entity_type is None:
        entity_type = model.find_type_for_class(type(entity))
        if entity_type is None:
            raise ODataQueryError(f"No entity type registered for {type(entity).__name__}")

    selected = set(select)
    if "*" in selected:
        selected = set()

    body: Dict[str, Any] = {}
    for prop in entity_type.structural_properties:
        if selected and prop.name not in selected and prop.name not in entity_type.key:
            continue
        body[prop.name] = _json_value(getattr(entity, prop.python_name))

    if depth >= MAX_EXPAND_DEPTH:
        return body

    for nav in expansions_for(model, entity_type, expand):
        related = getattr(entity, nav.python_name)
        target_type = model.find_type(nav.target_type)
        if nav.is_collection:
            body[nav.name] = [serialize_entity(model, item, target_type, depth=depth + 1) for item in related]
        else:
            body[nav.name] = (
                serialize_entity(model, related, target_type, depth=depth + 1) if related is not None else None
            )

    return body


def serialize_collection(
    model: EdmModel,
    name: str,
    entities: Iterable[Any],
    entity_type: EdmEntityType,
    select: Iterable[str] = (),
    expand: Iterable[EdmNavigationProperty] = (),
    count: Optional[int] = None,
) -> Dict[str, Any]:
    select = list(select)
    expand = list(expand)
    payload: Dict[str, Any] = {"@odata.context": f"$metadata#{name}"}
    if count is not None:
        payload["@odata.count"] = count
    payload["value"] = [serialize_entity(model, entity, entity_type, select, expand) for entity in entities]
    return payload
