import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from models import Category, Transaction, TransactionType
from repositories import InMemoryCategoriesRepository, InMemoryTransactionsRepository
from schemas import ImportRow, TransactionIn
from services import (
    ImportService,
    ImportValidationError,
    TransactionService,
)

TEMPLATE_CSV = """title, type, value, category
Loan, income, 1500, Others
Website Hosting, outcome, 50, Others
Ice cream, outcome, 3, Food
"""


def row(title: str, txn_type: TransactionType, value: float, category: str) -> ImportRow:
    return ImportRow(title=title, type=txn_type, value=value, category=category)


def test_import_creates_transactions_and_categories() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        result = ImportService.for_session(session).import_csv(TEMPLATE_CSV, "u1")
        session.commit()

        assert [c.title for c in result.categories] == ["Others", "Food"]
        assert len(result.transactions) == 3

        categories = session.scalars(select(Category)).all()
        assert sorted(c.title for c in categories) == ["Food", "Others"]

        stored = {
            (t.title, t.type, t.value)
            for t in session.scalars(select(Transaction)).all()
        }
        assert stored == {
            ("Loan", TransactionType.income, 1500),
            ("Website Hosting", TransactionType.outcome, 50),
            ("Ice cream", TransactionType.outcome, 3),
        }


def test_import_links_each_row_to_its_category() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        result = ImportService.for_session(session).import_csv(TEMPLATE_CSV, "u1")
        session.commit()

        by_title = {t.title: t for t in result.transactions}
        assert by_title["Loan"].category.title == "Others"
        assert by_title["Ice cream"].category.title == "Food"
        assert all(t.user_id == "u1" for t in result.transactions)


def test_repeated_import_does_not_duplicate_categories() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ImportService.for_session(session)
        service.import_csv(TEMPLATE_CSV, "u1")
        session.commit()
        service.import_csv(TEMPLATE_CSV, "u1")
        session.commit()

        assert len(session.scalars(select(Category)).all()) == 2
        assert len(session.scalars(select(Transaction)).all()) == 6


def test_import_reuses_category_created_by_transaction_service() -> None:
    transactions = InMemoryTransactionsRepository()
    categories = InMemoryCategoriesRepository()
    txn_service = TransactionService(transactions, categories)

    salary = txn_service.create(
        TransactionIn(title="March", type=TransactionType.income, value=10, category="Salary"),
        "u1",
    )

    result = ImportService(transactions, categories).import_rows(
        [
            row("April", TransactionType.income, 10, "Salary"),
            row("Pizza", TransactionType.outcome, 2, "Food"),
        ],
        "u1",
    )

    assert result.transactions[0].category_id == salary.category_id
    assert sorted(c.title for c in categories.list_all()) == ["Food", "Salary"]


def test_import_creates_repeated_new_title_once() -> None:
    categories = InMemoryCategoriesRepository()
    service = ImportService(InMemoryTransactionsRepository(), categories)

    result = service.import_rows(
        [
            row("Taxi", TransactionType.outcome, 12, "Travel"),
            row("Hotel", TransactionType.outcome, 80, "Travel"),
            row("Train", TransactionType.outcome, 30, "Travel"),
        ],
        "u1",
    )

    assert len(categories.list_all()) == 1
    assert len(result.categories) == 1
    assert {t.category_id for t in result.transactions} == {result.categories[0].id}


def test_import_skips_the_balance_check() -> None:
    transactions = InMemoryTransactionsRepository()
    service = ImportService(transactions, InMemoryCategoriesRepository())

    service.import_rows([row("Old debt", TransactionType.outcome, 900, "Debt")], "u1")

    assert transactions.count_for_user("u1") == 1


def test_import_of_no_rows_is_a_no_op() -> None:
    categories = InMemoryCategoriesRepository()
    service = ImportService(InMemoryTransactionsRepository(), categories)

    result = service.import_rows([], "u1")

    assert result.transactions == []
    assert result.categories == []
    assert categories.list_all() == []


def test_invalid_csv_rows_abort_the_whole_import() -> None:
    transactions = InMemoryTransactionsRepository()
    categories = InMemoryCategoriesRepository()
    service = ImportService(transactions, categories)
    content = "title,type,value,category\nLoan,income,100,Others\nBad,transfer,5,Others\n"

    with pytest.raises(ImportValidationError) as excinfo:
        service.import_csv(content, "u1")

    assert excinfo.value.errors == ["Row 2: Unknown type 'transfer'"]
    assert transactions.count_for_user("u1") == 0
    assert categories.list_all() == []


def test_non_finite_csv_value_aborts_import() -> None:
    transactions = InMemoryTransactionsRepository()
    service = ImportService(transactions, InMemoryCategoriesRepository())

    for raw in ["Infinity", "NaN"]:
        with pytest.raises(ImportValidationError):
            service.import_csv(f"title,type,value,category\nX,income,{raw},Misc\n", "u1")

    assert transactions.count_for_user("u1") == 0


def test_import_row_rejects_non_finite_value() -> None:
    with pytest.raises(ValueError):
        row("Overflow", TransactionType.income, float("inf"), "Misc")
