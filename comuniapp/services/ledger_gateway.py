from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")
ResultT = TypeVar("ResultT")


class LedgerGateway:
    """Unit of work over a SQLAlchemy session.

    Writes issued through the gateway are flushed but not committed; only
    ``run_in_transaction`` commits, and it rolls everything back when the
    wrapped callable raises.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_unique(self, model: Type[ModelT], **filters: Any) -> Optional[ModelT]:
        return self.session.query(model).filter_by(**filters).one_or_none()

    def find_many(self, model: Type[ModelT], *order_by: Any, **filters: Any) -> List[ModelT]:
        query = self.session.query(model).filter_by(**filters)
        if order_by:
            query = query.order_by(*order_by)
        return query.all()

    def create(self, instance: ModelT) -> ModelT:
        self.session.add(instance)
        self.session.flush()
        return instance

    def create_many(self, instances: Iterable[ModelT]) -> List[ModelT]:
        created = list(instances)
        self.session.add_all(created)
        self.session.flush()
        return created

    def update(self, instance: ModelT, **values: Any) -> ModelT:
        for field, value in values.items():
            setattr(instance, field, value)
        self.session.add(instance)
        self.session.flush()
        return instance

    def delete(self, instance: Any) -> None:
        self.session.delete(instance)
        self.session.flush()

    def delete_many(self, model: Type[ModelT], **filters: Any) -> int:
        rows = self.find_many(model, **filters)
        for row in rows:
            self.session.delete(row)
        self.session.flush()
        return len(rows)

    def run_in_transaction(self, fn: Callable[["LedgerGateway"], ResultT]) -> ResultT:
        try:
            result = fn(self)
            self.session.commit()
        except Exception:
            logger.debug("Rolling back unit of work", exc_info=True)
            self.session.rollback()
            raise
        return result
