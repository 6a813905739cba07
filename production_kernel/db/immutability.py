"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The article log is the only record of how units moved between floors.  If a
row could be edited after the fact, a double-counted transfer could be made
to disappear.  This module intercepts UPDATE and DELETE of ArticleLog rows
before the SQL reaches the database.

    session.flush()
         |
         v
    [before_update] --> _check_article_log_update() --> ImmutabilityViolationError
    [before_delete] --> _check_article_log_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity        | When Immutable         | Why
--------------|------------------------|----------------------------------
ArticleLog    | ALWAYS (from creation) | Production history is append-only

Articles themselves are mutable state and may be deleted administratively;
their logs stay behind.

===============================================================================
USAGE
===============================================================================

Called by ``init_engine_from_url``; safe to call more than once:

    from production_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from production_kernel.exceptions import ImmutabilityViolationError
from production_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_article_log_update(mapper, connection, target):
    """Prevent any update to ArticleLog rows."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "ArticleLog",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="ArticleLog",
        entity_id=str(target.id),
        reason="Article logs are immutable and cannot be modified",
    )


def _check_article_log_delete(mapper, connection, target):
    """Prevent deletion of ArticleLog rows."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "ArticleLog",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="ArticleLog",
        entity_id=str(target.id),
        reason="Article logs cannot be deleted",
    )


_LISTENERS = (
    ("before_update", _check_article_log_update),
    ("before_delete", _check_article_log_delete),
)


def register_immutability_listeners() -> None:
    """Register immutability listeners (idempotent)."""
    from production_kernel.models.article_log import ArticleLog

    for event_name, listener in _LISTENERS:
        if not event.contains(ArticleLog, event_name, listener):
            event.listen(ArticleLog, event_name, listener)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that need to tamper with history to
    verify chain validation detects it.
    """
    from production_kernel.models.article_log import ArticleLog

    for event_name, listener in _LISTENERS:
        if event.contains(ArticleLog, event_name, listener):
            event.remove(ArticleLog, event_name, listener)
