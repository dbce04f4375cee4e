"""
API configuration.

``ApiConfiguration`` is the process-wide description of the published API:
entity sets, imperative views, entity-set filters, operations, submit hooks,
the permission table and the model builder chain. It is assembled by
``configure_api`` from an ordered list of steps and is read-only once the
model has been built.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Sequence, Tuple

from sqlalchemy.sql import ColumnElement, Select
from sqlmodel import Session, select

from northwind.services.edm import EdmEntitySet, EdmModel, EdmOperation, edm_type_name
from northwind.services.errors import ModelBuildError, ODataQueryError
from northwind.services.model_builder import ModelBuilder, ModelContext
from northwind.services.security import PermissionTable

logger = logging.getLogger(__name__)


class SubmitEvent(str, Enum):
    INSERTING = "Inserting"
    INSERTED = "Inserted"
    UPDATING = "Updating"
    UPDATED = "Updated"
    DELETING = "Deleting"
    DELETED = "Deleted"


@dataclass(frozen=True)
class View:
    """Read-only entity set computed from another entity set at request time."""

    name: str
    source: str
    query: Callable[["ApiContext"], Select]


@dataclass(frozen=True)
class Operation:
    """
    Callable exposed on the service.

    ``binding`` names the entity set an operation is bound to; with
    ``bound_to_collection`` the body receives the (filtered) collection as a
    Select, otherwise the single bound entity.
    """

    name: str
    func: Callable
    has_side_effects: bool = False
    binding: Optional[str] = None
    bound_to_collection: bool = False
    parameters: Tuple[Tuple[str, type], ...] = ()
    return_type: Optional[type] = None


@dataclass
class ApiContext:
    """Per-request view of the API: the configuration plus a session and the caller's roles."""

    config: "ApiConfiguration"
    session: Session
    roles: Sequence[str] = field(default_factory=tuple)

    def get_queryable_source(self, name: str) -> Select:
        return self.config.get_queryable_source(name)


ConfigurationStep = Callable[["ApiConfiguration"], "ApiConfiguration"]


class ApiConfiguration:
    def __init__(self, namespace: str):
        self.namespace = namespace
        self.entity_sets: Dict[str, type] = {}
        self.views: Dict[str, View] = {}
        self.entity_set_filters: Dict[str, Callable[[Select], Select]] = {}
        self.operations: Dict[str, Operation] = {}
        self.submit_hooks: Dict[Tuple[str, SubmitEvent], Callable] = {}
        self.permissions: PermissionTable = PermissionTable([])
        self.model_builder: Optional[ModelBuilder] = None
        self.model: Optional[EdmModel] = None

    def add_model_builder(self, builder: ModelBuilder) -> "ApiConfiguration":
        """Stack ``builder`` on top of the current chain."""
        builder.inner_handler = self.model_builder
        self.model_builder = builder
        return self

    def build_model(self) -> EdmModel:
        """Run the model builder chain once; later calls return the cached model."""
        if self.model is not None:
            return self.model
        if self.model_builder is None:
            raise ModelBuildError("No model builder configured")

        model = self.model_builder.get_model(ModelContext())
        if model is None:
            raise ModelBuildError("Model builder chain produced no model")

        self.model = model
        logger.info(
            "Model built: %d entity types, %d entity sets, %d operations",
            len(model.schema_elements),
            len(model.entity_sets),
            len(model.operations),
        )
        return model

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def get_queryable_source(self, name: str) -> Select:
        """Select over an entity set with its entity-set filter applied."""
        if name not in self.entity_sets:
            raise ODataQueryError(f"Entity set '{name}' does not exist")
        query = select(self.entity_sets[name])
        set_filter = self.entity_set_filters.get(name)
        if set_filter is not None:
            query = set_filter(query)
        return query

    def entity_set_for_class(self, model_class: type) -> Optional[str]:
        return next((name for name, cls in self.entity_sets.items() if cls is model_class), None)

    def filter_criteria(self, name: str) -> Optional[ColumnElement]:
        """WHERE criteria of the entity-set filter on ``name``, if it has one."""
        if name not in self.entity_set_filters:
            return None
        return self.get_queryable_source(name).whereclause

    def get_hook(self, entity_set: str, event: SubmitEvent) -> Optional[Callable]:
        return self.submit_hooks.get((entity_set, event))


def configure_api(config: ApiConfiguration, steps: Iterable[ConfigurationStep]) -> ApiConfiguration:
    """Apply configuration steps in order, each receiving the previous step's result."""
    for step in steps:
        config = step(config)
        logger.debug("Applied configuration step %s", getattr(step, "__name__", step))
    return config


class ConventionBasedApiModelBuilder(ModelBuilder):
    """
    Top of the chain: publishes the configuration's views and operations into
    the model produced by the inner handlers.
    """

    def __init__(self, config: ApiConfiguration):
        super().__init__()
        self.config = config

    def get_model(self, context: ModelContext) -> Optional[EdmModel]:
        model = super().get_model(context)
        if model is None:
            return None

        for view in self.config.views.values():
            source = model.find_entity_set(view.source)
            if source is None:
                raise ModelBuildError(f"View '{view.name}' refers to unknown entity set '{view.source}'")
            model.entity_sets[view.name] = EdmEntitySet(name=view.name, entity_type=source.entity_type, is_view=True)

        for operation in self.config.operations.values():
            model.operations[operation.name] = self._build_operation(model, operation)

        return model

    def _build_operation(self, model: EdmModel, operation: Operation) -> EdmOperation:
        binding_type = None
        if operation.binding is not None:
            entity_set = model.find_entity_set(operation.binding)
            if entity_set is None:
                raise ModelBuildError(
                    f"Operation '{operation.name}' is bound to unknown entity set '{operation.binding}'"
                )
            binding_type = entity_set.entity_type.full_name
            if operation.bound_to_collection:
                binding_type = f"Collection({binding_type})"

        return EdmOperation(
            name=operation.name,
            is_action=operation.has_side_effects,
            parameters=[(name, edm_type_name(python_type)) for name, python_type in operation.parameters],
            return_type=edm_type_name(operation.return_type) if operation.return_type is not None else None,
            binding_type=binding_type,
        )
