"""
Entity-data model (EDM) for the OData surface.

A small in-memory schema: entity types with structural and navigation
properties, entity sets, operations, and annotations attached to schema
elements. Built once at startup by the model builder chain
(see ``northwind.services.model_builder``) and read-only afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple, Type, Union

EDM_PRIMITIVES: Dict[type, str] = {
    bool: "Edm.Boolean",
    int: "Edm.Int32",
    float: "Edm.Double",
    str: "Edm.String",
    datetime: "Edm.DateTimeOffset",
    date: "Edm.Date",
}


def edm_type_name(python_type: Optional[type]) -> str:
    return EDM_PRIMITIVES.get(python_type, "Edm.String")


@dataclass(eq=False)
class EdmStructuralProperty:
    name: str
    python_name: str
    python_type: type
    nullable: bool = True

    @property
    def type_name(self) -> str:
        return edm_type_name(self.python_type)


@dataclass(eq=False)
class EdmNavigationProperty:
    name: str
    python_name: str
    target_type: str
    is_collection: bool
    partner: Optional[str] = None


@dataclass(eq=False)
class EdmEntityType:
    name: str
    namespace: str
    model_class: type
    key: List[str] = field(default_factory=list)
    structural_properties: List[EdmStructuralProperty] = field(default_factory=list)
    navigation_properties: List[EdmNavigationProperty] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.namespace}.{self.name}"

    @property
    def declared_properties(self) -> List[Union[EdmStructuralProperty, EdmNavigationProperty]]:
        return [*self.structural_properties, *self.navigation_properties]

    @property
    def key_properties(self) -> List[EdmStructuralProperty]:
        return [self.find_structural(name) for name in self.key]

    def find_structural(self, name: str) -> Optional[EdmStructuralProperty]:
        return next((p for p in self.structural_properties if p.name == name), None)

    def find_navigation(self, name: str) -> Optional[EdmNavigationProperty]:
        return next((p for p in self.navigation_properties if p.name == name), None)


@dataclass(eq=False)
class EdmEntitySet:
    name: str
    entity_type: EdmEntityType
    is_view: bool = False


@dataclass(eq=False)
class EdmOperation:
    """Action (side-effecting) or function declared on the service."""

    name: str
    is_action: bool
    parameters: List[Tuple[str, str]] = field(default_factory=list)
    return_type: Optional[str] = None
    binding_type: Optional[str] = None  # full type name, "Collection(...)" for collection binding

    @property
    def is_bound(self) -> bool:
        return self.binding_type is not None


@dataclass(frozen=True)
class QueryableRestrictions:
    """Query-shape restrictions on a property. ``auto_expand`` forces expansion
    of a navigation property on every query that returns its declaring type."""

    auto_expand: bool = False
    not_filterable: bool = False
    not_sortable: bool = False
    not_navigable: bool = False
    not_expandable: bool = False
    not_countable: bool = False

    def to_csdl(self) -> Dict[str, bool]:
        flags = {
            "AutoExpand": self.auto_expand,
            "NotFilterable": self.not_filterable,
            "NotSortable": self.not_sortable,
            "NotNavigable": self.not_navigable,
            "NotExpandable": self.not_expandable,
            "NotCountable": self.not_countable,
        }
        return {name: value for name, value in flags.items() if value}


SchemaElement = Union[EdmEntityType, EdmEntitySet, EdmOperation, EdmStructuralProperty, EdmNavigationProperty]


class EdmModel:
    def __init__(self, namespace: str):
        self.namespace = namespace
        self.schema_elements: List[EdmEntityType] = []
        self.entity_sets: Dict[str, EdmEntitySet] = {}
        self.operations: Dict[str, EdmOperation] = {}
        self._annotations: Dict[Tuple[SchemaElement, type], Any] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find_type(self, name: str) -> Optional[EdmEntityType]:
        return next((t for t in self.schema_elements if t.name == name or t.full_name == name), None)

    def find_type_for_class(self, model_class: type) -> Optional[EdmEntityType]:
        return next((t for t in self.schema_elements if t.model_class is model_class), None)

    def find_entity_set(self, name: str) -> Optional[EdmEntitySet]:
        return self.entity_sets.get(name)

    def find_operation(self, name: str) -> Optional[EdmOperation]:
        if name.startswith(self.namespace + "."):
            name = name[len(self.namespace) + 1 :]
        return self.operations.get(name)

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    def set_annotation_value(self, element: SchemaElement, value: Any) -> None:
        self._annotations[(element, type(value))] = value

    def get_annotation_value(self, element: SchemaElement, annotation_type: Type) -> Any:
        return self._annotations.get((element, annotation_type))

    def auto_expand_properties(self, entity_type: EdmEntityType) -> List[EdmNavigationProperty]:
        result = []
        for nav in entity_type.navigation_properties:
            restrictions = self.get_annotation_value(nav, QueryableRestrictions)
            if restrictions is not None and restrictions.auto_expand:
                result.append(nav)
        return result

    # ------------------------------------------------------------------
    # CSDL (JSON)
    # ------------------------------------------------------------------

    def to_csdl(self, visible_sets: Optional[List[str]] = None, visible_operations: Optional[List[str]] = None):
        """Render the model as an OData JSON CSDL document."""
        ns = self.namespace
        schema: Dict[str, Any] = {}

        for entity_type in self.schema_elements:
            body: Dict[str, Any] = {"$Kind": "EntityType", "$Key": list(entity_type.key)}
            for prop in entity_type.structural_properties:
                prop_body: Dict[str, Any] = {"$Type": prop.type_name}
                if prop.nullable:
                    prop_body["$Nullable"] = True
                body[prop.name] = prop_body
            for nav in entity_type.navigation_properties:
                target = f"{ns}.{nav.target_type}"
                nav_body: Dict[str, Any] = {"$Kind": "NavigationProperty", "$Type": target}
                if nav.is_collection:
                    nav_body["$Collection"] = True
                if nav.partner:
                    nav_body["$Partner"] = nav.partner
                restrictions = self.get_annotation_value(nav, QueryableRestrictions)
                if restrictions is not None:
                    nav_body["@Org.OData.Capabilities.V1.QueryableRestrictions"] = restrictions.to_csdl()
                body[nav.name] = nav_body
            schema[entity_type.name] = body

        for operation in self.operations.values():
            if visible_operations is not None and operation.name not in visible_operations:
                continue
            op_body: Dict[str, Any] = {"$Kind": "Action" if operation.is_action else "Function"}
            params = []
            if operation.binding_type:
                op_body["$IsBound"] = True
                params.append({"$Name": "bindingParameter", "$Type": operation.binding_type})
            params.extend({"$Name": name, "$Type": type_name} for name, type_name in operation.parameters)
            if params:
                op_body["$Parameter"] = params
            if operation.return_type:
                op_body["$ReturnType"] = {"$Type": operation.return_type}
            schema[operation.name] = [op_body]

        container: Dict[str, Any] = {"$Kind": "EntityContainer"}
        for entity_set in self.entity_sets.values():
            if visible_sets is not None and entity_set.name not in visible_sets:
                continue
            container[entity_set.name] = {"$Collection": True, "$Type": entity_set.entity_type.full_name}
        for operation in self.operations.values():
            if operation.is_bound:
                continue
            if visible_operations is not None and operation.name not in visible_operations:
                continue
            kind = "$Action" if operation.is_action else "$Function"
            container[operation.name] = {kind: f"{ns}.{operation.name}"}
        schema["Container"] = container

        return {"$Version": "4.0", "$EntityContainer": f"{ns}.Container", ns: schema}
