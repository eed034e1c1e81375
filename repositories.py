from __future__ import annotations

from itertools import count
from typing import Iterable, Optional, Protocol, Sequence, TypedDict

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models import Category, Transaction, TransactionType, new_id, utcnow


class TransactionFields(TypedDict, total=False):
    title: str
    type: TransactionType
    value: float
    user_id: str
    category_id: Optional[str]


class CategoryRepository(Protocol):
    def find_by_title(self, title: str) -> Optional[Category]: ...

    def find_many(self, titles: Iterable[str]) -> list[Category]: ...

    def create(self, title: str) -> Category: ...

    def create_many(self, titles: Sequence[str]) -> list[Category]: ...

    def list_all(self) -> list[Category]: ...


class TransactionRepository(Protocol):
    def find_by_id(self, transaction_id: str) -> Optional[Transaction]: ...

    def find_all_for_user(self, user_id: str) -> list[Transaction]: ...

    def find_page_for_user(
        self, user_id: str, page: int, page_size: int = 10
    ) -> tuple[list[Transaction], int]: ...

    def count_for_user(self, user_id: str) -> int: ...

    def insert(self, fields: TransactionFields) -> Transaction: ...

    def insert_many(self, rows: Sequence[TransactionFields]) -> list[Transaction]: ...

    def update(
        self,
        transaction_id: str,
        *,
        title: Optional[str] = None,
        type: Optional[TransactionType] = None,
        value: Optional[float] = None,
    ) -> Optional[Transaction]: ...

    def delete_by_id(self, transaction_id: str) -> None: ...


def _page_offset(page: int, page_size: int) -> int:
    return max(page - 1, 0) * page_size


class SqlCategoriesRepository:
    """Category store backed by a SQLAlchemy session. Writes are flushed, not committed."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_title(self, title: str) -> Optional[Category]:
        return self.session.scalar(select(Category).where(Category.title == title))

    def find_many(self, titles: Iterable[str]) -> list[Category]:
        wanted = list(dict.fromkeys(titles))
        if not wanted:
            return []
        stmt = select(Category).where(Category.title.in_(wanted))
        return list(self.session.scalars(stmt).all())

    def create(self, title: str) -> Category:
        category = Category(title=title)
        self.session.add(category)
        self.session.flush()
        return category

    def create_many(self, titles: Sequence[str]) -> list[Category]:
        categories = [Category(title=title) for title in titles]
        if categories:
            self.session.add_all(categories)
            self.session.flush()
        return categories

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.title)
        return list(self.session.scalars(stmt).all())


class SqlTransactionsRepository:
    """Transaction store backed by a SQLAlchemy session. Writes are flushed, not committed."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_id(self, transaction_id: str) -> Optional[Transaction]:
        return self.session.get(Transaction, transaction_id)

    def find_all_for_user(self, user_id: str) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def find_page_for_user(
        self, user_id: str, page: int, page_size: int = 10
    ) -> tuple[list[Transaction], int]:
        total = self.count_for_user(user_id)
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .offset(_page_offset(page, page_size))
            .limit(page_size)
        )
        return list(self.session.scalars(stmt).all()), total

    def count_for_user(self, user_id: str) -> int:
        stmt = select(func.count(Transaction.id)).where(
            Transaction.user_id == user_id
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def insert(self, fields: TransactionFields) -> Transaction:
        txn = Transaction(**fields)
        self.session.add(txn)
        self.session.flush()
        return txn

    def insert_many(self, rows: Sequence[TransactionFields]) -> list[Transaction]:
        txns = [Transaction(**fields) for fields in rows]
        if txns:
            self.session.add_all(txns)
            self.session.flush()
        return txns

    def update(
        self,
        transaction_id: str,
        *,
        title: Optional[str] = None,
        type: Optional[TransactionType] = None,
        value: Optional[float] = None,
    ) -> Optional[Transaction]:
        txn = self.session.get(Transaction, transaction_id)
        if not txn:
            return None
        if title is not None:
            txn.title = title
        if type is not None:
            txn.type = type
        if value is not None:
            txn.value = value
        self.session.flush()
        return txn

    def delete_by_id(self, transaction_id: str) -> None:
        txn = self.session.get(Transaction, transaction_id)
        if txn is None:
            return
        self.session.delete(txn)
        self.session.flush()


class InMemoryCategoriesRepository:
    """Dict-backed category store for unit tests."""

    def __init__(self) -> None:
        self.rows: dict[str, Category] = {}

    def find_by_title(self, title: str) -> Optional[Category]:
        for category in self.rows.values():
            if category.title == title:
                return category
        return None

    def find_many(self, titles: Iterable[str]) -> list[Category]:
        wanted = set(titles)
        return [c for c in self.rows.values() if c.title in wanted]

    def create(self, title: str) -> Category:
        now = utcnow()
        category = Category(id=new_id(), title=title, created_at=now, updated_at=now)
        self.rows[category.id] = category
        return category

    def create_many(self, titles: Sequence[str]) -> list[Category]:
        return [self.create(title) for title in titles]

    def list_all(self) -> list[Category]:
        return sorted(self.rows.values(), key=lambda c: c.title)


class InMemoryTransactionsRepository:
    """Dict-backed transaction store for unit tests.

    Rows created within the same clock tick keep their insertion order, so
    recency ordering stays deterministic.
    """

    def __init__(self) -> None:
        self.rows: dict[str, Transaction] = {}
        self._sequence: dict[str, int] = {}
        self._counter = count()

    def _recent_first(self, user_id: str) -> list[Transaction]:
        owned = [t for t in self.rows.values() if t.user_id == user_id]
        return sorted(
            owned,
            key=lambda t: (t.created_at, self._sequence[t.id]),
            reverse=True,
        )

    def find_by_id(self, transaction_id: str) -> Optional[Transaction]:
        return self.rows.get(transaction_id)

    def find_all_for_user(self, user_id: str) -> list[Transaction]:
        return self._recent_first(user_id)

    def find_page_for_user(
        self, user_id: str, page: int, page_size: int = 10
    ) -> tuple[list[Transaction], int]:
        ordered = self._recent_first(user_id)
        offset = _page_offset(page, page_size)
        return ordered[offset : offset + page_size], len(ordered)

    def count_for_user(self, user_id: str) -> int:
        return sum(1 for t in self.rows.values() if t.user_id == user_id)

    def insert(self, fields: TransactionFields) -> Transaction:
        now = utcnow()
        txn = Transaction(
            id=new_id(),
            category_id=fields.get("category_id"),
            created_at=now,
            updated_at=now,
            **{k: v for k, v in fields.items() if k != "category_id"},
        )
        self.rows[txn.id] = txn
        self._sequence[txn.id] = next(self._counter)
        return txn

    def insert_many(self, rows: Sequence[TransactionFields]) -> list[Transaction]:
        return [self.insert(fields) for fields in rows]

    def update(
        self,
        transaction_id: str,
        *,
        title: Optional[str] = None,
        type: Optional[TransactionType] = None,
        value: Optional[float] = None,
    ) -> Optional[Transaction]:
        txn = self.rows.get(transaction_id)
        if txn is None:
            return None
        if title is not None:
            txn.title = title
        if type is not None:
            txn.type = type
        if value is not None:
            txn.value = value
        txn.updated_at = utcnow()
        return txn

    def delete_by_id(self, transaction_id: str) -> None:
        self.rows.pop(transaction_id, None)
        self._sequence.pop(transaction_id, None)
