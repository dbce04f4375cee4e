"""
Submit pipeline.

Persists a single change (insert, update or delete) for an entity set and
fires the configured submit hooks around it: the "-ing" hook before the
change is flushed, the "-ed" hook after it is committed. Hooks are observers.
A hook that raises is logged and ignored; it never rolls back the change.
"""

import logging
from enum import Enum
from typing import Any

from northwind.services.api_config import ApiContext, SubmitEvent

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


_EVENTS = {
    ChangeType.INSERT: (SubmitEvent.INSERTING, SubmitEvent.INSERTED),
    ChangeType.UPDATE: (SubmitEvent.UPDATING, SubmitEvent.UPDATED),
    ChangeType.DELETE: (SubmitEvent.DELETING, SubmitEvent.DELETED),
}


def fire_hook(context: ApiContext, entity_set: str, event: SubmitEvent, entity: Any) -> None:
    hook = context.config.get_hook(entity_set, event)
    if hook is None:
        return
    try:
        hook(context, entity)
    except Exception:
        logger.exception("Submit hook On%s%s failed; change is unaffected", event.value, entity_set)


def submit_change(context: ApiContext, entity_set: str, entity: Any, change_type: ChangeType) -> Any:
    """Persist ``entity`` and run the hooks registered for ``entity_set``."""
    before, after = _EVENTS[change_type]
    session = context.session

    fire_hook(context, entity_set, before, entity)

    if change_type == ChangeType.DELETE:
        session.delete(entity)
    else:
        session.add(entity)

    try:
        session.commit()
    except Exception:
        session.rollback()
        raise

    if change_type != ChangeType.DELETE:
        session.refresh(entity)

    logger.debug("Submitted %s on %s", change_type.value, entity_set)
    fire_hook(context, entity_set, after, entity)
    return entity
