import random

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import TransactionType
from repositories import InMemoryTransactionsRepository, SqlTransactionsRepository
from services import Balance, BalanceCalculator


ROWS = [
    ("Salary", TransactionType.income, 4000),
    ("Rent", TransactionType.outcome, 1200),
    ("Bonus", TransactionType.income, 750.5),
    ("Groceries", TransactionType.outcome, 310.25),
    ("Refund", TransactionType.income, 49.75),
    ("Gym", TransactionType.outcome, 40),
]


def _fields(title, txn_type, value, user_id="u1"):
    return {"title": title, "type": txn_type, "value": value, "user_id": user_id}


def test_balance_sums_income_and_outcome() -> None:
    repo = InMemoryTransactionsRepository()
    repo.insert_many([_fields(*row) for row in ROWS])

    balance = BalanceCalculator(repo).compute("u1")

    assert balance == Balance(income=4800.25, outcome=1550.25, total=3250.0)


def test_balance_is_independent_of_insertion_order() -> None:
    expected = None
    for seed in range(5):
        rows = list(ROWS)
        random.Random(seed).shuffle(rows)
        repo = InMemoryTransactionsRepository()
        repo.insert_many([_fields(*row) for row in rows])

        balance = BalanceCalculator(repo).compute("u1")
        if expected is None:
            expected = balance
        assert balance == expected


def test_balance_is_scoped_to_user() -> None:
    repo = InMemoryTransactionsRepository()
    repo.insert(_fields("Salary", TransactionType.income, 100, user_id="u1"))
    repo.insert(_fields("Salary", TransactionType.income, 900, user_id="u2"))
    repo.insert(_fields("Coffee", TransactionType.outcome, 30, user_id="u2"))

    assert BalanceCalculator(repo).compute("u1").total == 100
    assert BalanceCalculator(repo).compute("u2") == Balance(900, 30, 870)
    assert BalanceCalculator(repo).compute("nobody") == Balance(0, 0, 0)


def test_balance_ignores_unknown_types() -> None:
    repo = InMemoryTransactionsRepository()
    repo.insert(_fields("Salary", TransactionType.income, 100))
    repo.insert(_fields("Transfer", "transfer", 60))

    assert BalanceCalculator(repo).compute("u1") == Balance(100, 0, 100)


def test_balance_over_sql_store() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        repo = SqlTransactionsRepository(session)
        repo.insert_many([_fields(*row) for row in ROWS])
        session.commit()

        balance = BalanceCalculator(repo).compute("u1")
        assert balance.income == 4800.25
        assert balance.outcome == 1550.25
        assert balance.total == 3250.0
