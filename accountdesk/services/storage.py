"""Transaction and audit helpers shared by the services.

Usage:
    with transaction():
        ...  # reads, conditional updates, inserts
        record_event(workspace_id, actor_id, "member.removed", user_id=...)

The block commits on success. Domain errors roll back and propagate
unchanged; SQLAlchemy errors roll back and surface as StorageError.
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from accountdesk.errors import AccountDeskError, StorageError
from accountdesk.extensions import db
from accountdesk.models.audit import AuditEvent

logger = logging.getLogger(__name__)


@contextmanager
def transaction():
    try:
        yield db.session
        db.session.commit()
    except AccountDeskError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Database error, transaction rolled back")
        raise StorageError() from e


def record_event(workspace_id, actor_user_id, action, **metadata):
    """Add an AuditEvent to the current transaction (no flush, no commit)."""
    event = AuditEvent(
        workspace_id=workspace_id,
        actor_user_id=actor_user_id,
        action=action,
        metadata_=metadata,
    )
    db.session.add(event)
    return event
