"""Commit/rollback discipline shared by every ledger write."""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from ...extensions import db
from ..errors import BatchLedgerError, InvariantViolationError

logger = logging.getLogger(__name__)


@contextmanager
def ledger_transaction(operation: str):
    """
    Run the enclosed block as one unit of work.

    Commits on success. Any failure rolls back every staged change and
    re-raises, so row locks are released either way.
    """
    try:
        yield db.session
        db.session.commit()
    except InvariantViolationError as e:
        db.session.rollback()
        logger.error("LEDGER INVARIANT VIOLATION during %s: %s", operation, e.message)
        raise
    except BatchLedgerError as e:
        db.session.rollback()
        logger.info("%s rejected (%s): %s", operation, e.code, e.message)
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("Database error during %s: %s", operation, e)
        raise
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected error during %s", operation)
        raise
