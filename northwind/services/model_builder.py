"""
Model builder chain.

Builders are stacked: each one holds an ``inner_handler`` and decides what to
do with the model its inner handler returns. The store producer sits at the
bottom and only fills ``ModelContext.entity_set_type_map``; builders above it
turn that map into an ``EdmModel`` and decorate it.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlalchemy import inspect as sa_inspect

from northwind.services.edm import EdmEntitySet, EdmEntityType, EdmModel, EdmNavigationProperty, EdmStructuralProperty

logger = logging.getLogger(__name__)


def to_edm_name(python_name: str) -> str:
    """unit_price -> UnitPrice"""
    return "".join(part[:1].upper() + part[1:] for part in python_name.split("_") if part)


@dataclass
class ModelContext:
    entity_set_type_map: Dict[str, type] = field(default_factory=dict)


class ModelBuilder:
    """Base class for a link in the model builder chain."""

    def __init__(self):
        self.inner_handler: Optional["ModelBuilder"] = None

    def get_model(self, context: ModelContext) -> Optional[EdmModel]:
        if self.inner_handler is None:
            return None
        return self.inner_handler.get_model(context)


class EntitySetMapProducer(ModelBuilder):
    """
    Bottom of the chain for the SQLModel store.

    Publishes the declared entity sets as a name -> model class map on the
    context and returns no model; building the schema is left to the
    builders stacked above.
    """

    def __init__(self, entity_sets: Dict[str, type]):
        super().__init__()
        self.entity_sets = dict(entity_sets)
        self._produced = False

    def get_model(self, context: ModelContext) -> Optional[EdmModel]:
        model = super().get_model(context)
        if model is not None:
            return model

        # Only publish once per process; a consumer clears the map after use
        if not self._produced:
            context.entity_set_type_map.update(self.entity_sets)
            self._produced = True
        return None


class ConventionModelBuilder:
    """
    Builds entity types from SQLModel table classes.

    Structural properties come from mapped columns, keys from the primary key,
    navigation properties from relationships. Related types reachable through
    relationships are added even when no entity set is registered for them.
    EDM names are the PascalCase form of attribute names unless the column or
    relationship carries ``info={"edm_name": ...}``.
    """

    def __init__(self, namespace: str):
        self.namespace = namespace
        self._entity_sets: List[Tuple[str, type]] = []

    def entity_set(self, name: str, model_class: type) -> "ConventionModelBuilder":
        self._entity_sets.append((name, model_class))
        return self

    def get_edm_model(self) -> EdmModel:
        model = EdmModel(self.namespace)
        types_by_class: Dict[type, EdmEntityType] = {}

        pending = [cls for _, cls in self._entity_sets]
        while pending:
            cls = pending.pop(0)
            if cls in types_by_class:
                continue
            entity_type = self._build_entity_type(cls)
            types_by_class[cls] = entity_type
            model.schema_elements.append(entity_type)
            for rel in sa_inspect(cls).relationships:
                pending.append(rel.mapper.class_)

        for name, cls in self._entity_sets:
            model.entity_sets[name] = EdmEntitySet(name=name, entity_type=types_by_class[cls])

        logger.debug(
            "Convention model built: %d types, %d entity sets", len(model.schema_elements), len(model.entity_sets)
        )
        return model

    def _build_entity_type(self, cls: type) -> EdmEntityType:
        mapper = sa_inspect(cls)
        entity_type = EdmEntityType(name=cls.__name__, namespace=self.namespace, model_class=cls)

        key_columns = set(mapper.primary_key)
        for attr in mapper.column_attrs:
            column = attr.columns[0]
            try:
                python_type = column.type.python_type
            except NotImplementedError:
                python_type = str
            name = column.info.get("edm_name") or to_edm_name(attr.key)
            entity_type.structural_properties.append(
                EdmStructuralProperty(
                    name=name,
                    python_name=attr.key,
                    python_type=python_type,
                    nullable=bool(column.nullable) and column not in key_columns,
                )
            )
            if column in key_columns:
                entity_type.key.append(name)

        for rel in mapper.relationships:
            partner = None
            if rel.back_populates:
                partner_rel = rel.mapper.relationships[rel.back_populates]
                partner = partner_rel.info.get("edm_name") or to_edm_name(partner_rel.key)
            entity_type.navigation_properties.append(
                EdmNavigationProperty(
                    name=rel.info.get("edm_name") or to_edm_name(rel.key),
                    python_name=rel.key,
                    target_type=rel.mapper.class_.__name__,
                    is_collection=bool(rel.uselist),
                    partner=partner,
                )
            )

        return entity_type
