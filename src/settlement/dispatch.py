"""Synchronous command dispatch.

Commands are handled in-process with ``asynchronous=False`` so that callers
get the handler's result (the id of the record it wrote) or its exception.
The active order store's write guard is held for the whole handler,
including the commit of the handler's Unit of Work.
"""

from contextlib import contextmanager

import structlog
from protean.exceptions import ExpectedVersionError
from protean.exceptions import ValidationError as DomainValidationError
from protean.utils.globals import current_domain

from settlement.exceptions import ConcurrencyConflict, ValidationError
from settlement.store import deadline_for, get_store

logger = structlog.get_logger(__name__)


@contextmanager
def translate_domain_errors(operation: str):
    """Report Protean's version and validation errors in settlement terms."""
    try:
        yield
    except ExpectedVersionError as exc:
        logger.warning("store.version_conflict", operation=operation, error=str(exc))
        raise ConcurrencyConflict(f"{operation} lost a concurrent update", operation=operation) from exc
    except DomainValidationError as exc:
        raise ValidationError.from_messages(f"Invalid {operation}", exc.messages) from exc


def dispatch(command):
    """Process *command* synchronously and return what its handler returned."""
    operation = type(command).__name__
    timeout = getattr(command, "timeout", None)
    with translate_domain_errors(operation), get_store().exclusive(operation, deadline_for(timeout)):
        return current_domain.process(command, asynchronous=False)
