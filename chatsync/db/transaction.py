# chatsync/db/transaction.py
from contextlib import contextmanager
from typing import Iterator, Optional, Type, TypeVar, Any
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import FlushError
from sqlmodel import Session, SQLModel
import logging

from chatsync.core.errors import PersistenceError

logger = logging.getLogger(__name__)

Row = TypeVar("Row", bound=SQLModel)


class Transaction:
    """Row-level primitives a mutator is allowed to use.

    Every write goes through the same session, so the reads a mutator makes
    (to check ownership) and the writes it then issues share one database
    transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, model: Type[Row], key: Any) -> Optional[Row]:
        return self.session.get(model, key)

    def query(self, statement) -> list:
        return list(self.session.exec(statement).all())

    def insert(self, row: Row) -> Row:
        self.session.add(row)
        self._flush()
        return row

    def update(self, row: Row, **fields) -> Row:
        for name, value in fields.items():
            setattr(row, name, value)
        self.session.add(row)
        self._flush()
        return row

    def delete(self, row: SQLModel) -> None:
        self.session.delete(row)
        self._flush()

    def _flush(self):
        try:
            self.session.flush()
        except (IntegrityError, FlushError) as e:
            raise PersistenceError(_describe(e)) from e


def _describe(error: Exception) -> str:
    return f"Write rejected by database: {getattr(error, 'orig', None) or error}"


@contextmanager
def transaction(session: Session) -> Iterator[Transaction]:
    """Commit the block's writes atomically, or none of them."""
    tx = Transaction(session)
    try:
        yield tx
        session.commit()
    except (IntegrityError, FlushError) as e:
        session.rollback()
        logger.warning(f"Transaction rolled back: {e}")
        raise PersistenceError(_describe(e)) from e
    except Exception:
        session.rollback()
        raise
