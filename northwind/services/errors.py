"""Exceptions raised by the Northwind API services.

Routes translate these into HTTP responses; see the exception handlers
registered in ``northwind.main``.
"""


class NorthwindApiError(Exception):
    """Base class for service-layer errors."""


class AuthorizationError(NorthwindApiError):
    """Caller lacks the grant required for an entity set or operation."""

    def __init__(self, name: str, permission: str):
        self.name = name
        self.permission = permission
        super().__init__(f"Access denied: '{permission}' is not granted on '{name}'")


class ModelBuildError(NorthwindApiError):
    """The entity-data model could not be built. Fatal at startup."""


class ODataQueryError(NorthwindApiError):
    """Malformed URL, key, payload or system query option."""


class EntityNotFoundError(NorthwindApiError):
    """Entity, entity set or operation does not exist (or is filtered out)."""


class MethodNotAllowedError(NorthwindApiError):
    """The resource exists but does not support the request's HTTP method."""


class ViewReadOnlyError(MethodNotAllowedError):
    """Create/update/delete attempted against an imperative view."""

    def __init__(self, view_name: str):
        self.view_name = view_name
        super().__init__(f"'{view_name}' is a read-only view; create, update and delete are not supported")


class OperationError(NorthwindApiError):
    """An operation was invoked with invalid arguments or binding."""


class EntityConflictError(NorthwindApiError):
    """The change would break a reference held by other rows."""
