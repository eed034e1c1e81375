from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from csv_utils import parse_csv
from models import Category, Transaction, TransactionType
from repositories import (
    CategoryRepository,
    SqlCategoriesRepository,
    SqlTransactionsRepository,
    TransactionFields,
    TransactionRepository,
)
from schemas import ImportRow, TransactionIn, TransactionUpdateIn

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10


class LedgerError(ValueError):
    pass


class InsufficientBalance(LedgerError):
    def __init__(self, message: str = "insufficient balance") -> None:
        super().__init__(message)


class TransactionNotFound(LedgerError):
    def __init__(self, message: str = "transaction not found") -> None:
        super().__init__(message)


class ImportValidationError(LedgerError):
    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors))


@dataclass(frozen=True)
class Balance:
    income: float
    outcome: float
    total: float


@dataclass
class TransactionList:
    transactions: list[Transaction]
    total_transactions: int
    balance: Balance


@dataclass
class ImportResult:
    transactions: list[Transaction]
    categories: list[Category]


class BalanceCalculator:
    def __init__(self, transactions: TransactionRepository) -> None:
        self.transactions = transactions

    def compute(self, user_id: str) -> Balance:
        income = 0.0
        outcome = 0.0
        for txn in self.transactions.find_all_for_user(user_id):
            if txn.type == TransactionType.income:
                income += txn.value
            elif txn.type == TransactionType.outcome:
                outcome += txn.value
        return Balance(income=income, outcome=outcome, total=income - outcome)


class CategoryService:
    """Single place where category titles are resolved to rows.

    Titles match exactly (case-sensitive); a title is never inserted twice.
    """

    def __init__(self, categories: CategoryRepository) -> None:
        self.categories = categories

    def list_all(self) -> list[Category]:
        return self.categories.list_all()

    def resolve(self, title: str) -> Category:
        existing = self.categories.find_by_title(title)
        if existing:
            return existing
        category = self.categories.create(title)
        logger.info(f"category_created: id={category.id} title={title!r}")
        return category

    def resolve_many(self, titles: Iterable[str]) -> dict[str, Category]:
        """
        Map every distinct title to a category, creating the missing ones in one
        batch. The returned dict keeps first-appearance order.
        """
        wanted = list(dict.fromkeys(titles))
        if not wanted:
            return {}

        found = {c.title: c for c in self.categories.find_many(wanted)}
        missing = [title for title in wanted if title not in found]
        created = self.categories.create_many(missing)
        if created:
            logger.info(
                f"categories_created: count={len(created)} "
                f"titles={[c.title for c in created]!r}"
            )
        found.update((c.title, c) for c in created)
        return {title: found[title] for title in wanted}


class TransactionService:
    def __init__(
        self,
        transactions: TransactionRepository,
        categories: CategoryRepository,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.transactions = transactions
        self.category_service = CategoryService(categories)
        self.balance = BalanceCalculator(transactions)
        self.page_size = page_size

    @classmethod
    def for_session(
        cls, session: Session, page_size: int = DEFAULT_PAGE_SIZE
    ) -> "TransactionService":
        return cls(
            SqlTransactionsRepository(session),
            SqlCategoriesRepository(session),
            page_size=page_size,
        )

    def create(self, data: TransactionIn, user_id: str) -> Transaction:
        if data.type == TransactionType.outcome:
            balance = self.balance.compute(user_id)
            if balance.total - data.value < 0:
                logger.info(
                    f"outcome_rejected: user={user_id} value={data.value} "
                    f"total={balance.total}"
                )
                raise InsufficientBalance(
                    f"Outcome of {data.value:g} exceeds available balance "
                    f"of {balance.total:g}"
                )

        category = self.category_service.resolve(data.category)
        txn = self.transactions.insert(
            TransactionFields(
                title=data.title,
                type=data.type,
                value=data.value,
                user_id=user_id,
                category_id=category.id,
            )
        )
        logger.info(
            f"transaction_created: id={txn.id} user={user_id} "
            f"type={data.type.value} value={data.value}"
        )
        return txn

    def get(self, transaction_id: str, user_id: Optional[str] = None) -> Transaction:
        txn = self.transactions.find_by_id(transaction_id)
        if not txn or (user_id is not None and txn.user_id != user_id):
            raise TransactionNotFound()
        return txn

    def update(
        self,
        transaction_id: str,
        data: TransactionUpdateIn,
        user_id: Optional[str] = None,
    ) -> Transaction:
        # Balance is not re-checked here; only creation enforces it.
        self.get(transaction_id, user_id)
        txn = self.transactions.update(
            transaction_id,
            title=data.title,
            type=data.type,
            value=data.value,
        )
        if txn is None:
            raise TransactionNotFound()
        return txn

    def delete(self, transaction_id: str, user_id: str) -> None:
        self.get(transaction_id, user_id)
        self.transactions.delete_by_id(transaction_id)
        logger.info(f"transaction_deleted: id={transaction_id} user={user_id}")

    def list(self, user_id: str, page: Optional[int] = None) -> TransactionList:
        if page is None:
            transactions = self.transactions.find_all_for_user(user_id)
            total = len(transactions)
        else:
            if page < 1:
                raise ValueError("Page must be 1 or greater")
            transactions, total = self.transactions.find_page_for_user(
                user_id, page, self.page_size
            )
        return TransactionList(
            transactions=transactions,
            total_transactions=total,
            balance=self.balance.compute(user_id),
        )


class ImportService:
    def __init__(
        self,
        transactions: TransactionRepository,
        categories: CategoryRepository,
    ) -> None:
        self.transactions = transactions
        self.category_service = CategoryService(categories)

    @classmethod
    def for_session(cls, session: Session) -> "ImportService":
        return cls(SqlTransactionsRepository(session), SqlCategoriesRepository(session))

    def import_rows(self, rows: Sequence[ImportRow], user_id: str) -> ImportResult:
        # Bulk loads skip the outcome balance check on purpose.
        by_title = self.category_service.resolve_many(row.category for row in rows)
        created = self.transactions.insert_many(
            [
                TransactionFields(
                    title=row.title,
                    type=row.type,
                    value=row.value,
                    user_id=user_id,
                    category_id=by_title[row.category].id,
                )
                for row in rows
            ]
        )
        logger.info(
            f"import_committed: user={user_id} transactions={len(created)} "
            f"categories={len(by_title)}"
        )
        return ImportResult(transactions=created, categories=list(by_title.values()))

    def import_csv(self, content: str, user_id: str) -> ImportResult:
        rows, errors = parse_csv(content)
        if errors:
            raise ImportValidationError(errors)
        return self.import_rows(rows, user_id)
