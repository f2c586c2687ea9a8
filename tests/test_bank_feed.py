from datetime import date
from decimal import Decimal

import plaid
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from bank_feed import (
    PlaidItemStore,
    PlaidTransactionSource,
    TransactionSourceError,
    build_plaid_client,
)
from config import Settings
from database import Base
from ledger import dedupe_transactions, parse_txn_date, transaction_from_dict


class FakeResponse:
    def __init__(self, payload: dict) -> None:
        self.payload = payload

    def to_dict(self) -> dict:
        return self.payload


class FakePlaidClient:
    def __init__(self, rows: list[dict], page_size: int = 2) -> None:
        self.rows = rows
        self.page_size = page_size
        self.offsets: list[int] = []

    def transactions_get(self, request):
        offset = request.options.offset
        self.offsets.append(offset)
        return FakeResponse(
            {
                "transactions": self.rows[offset : offset + self.page_size],
                "total_transactions": len(self.rows),
            }
        )

    def item_public_token_exchange(self, request):
        return {"item_id": "item-1", "access_token": f"access-{request.public_token}"}


class FailingPlaidClient:
    def transactions_get(self, request):
        raise plaid.ApiException(status=400, reason="ITEM_LOGIN_REQUIRED")


def _row(txn_id: str, amount, day: str, **extra) -> dict:
    row = {
        "transaction_id": txn_id,
        "account_id": "acc-1",
        "amount": amount,
        "date": day,
        "name": "Coffee Shop",
    }
    row.update(extra)
    return row


def _settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite://",
        "default_overall": Decimal("3000"),
        "default_user_id": 1,
        "log_level": "INFO",
        "plaid_client_id": None,
        "plaid_secret": None,
        "plaid_env": "sandbox",
    }
    values.update(overrides)
    return Settings(**values)


def test_transaction_from_plaid_payload() -> None:
    txn = transaction_from_dict(
        _row(
            "t1",
            12.5,
            "2024-01-05",
            merchant_name="Starbucks",
            category=["Food and Drink", "Coffee Shop"],
            personal_finance_category={
                "primary": "FOOD_AND_DRINK",
                "detailed": "FOOD_AND_DRINK_COFFEE",
                "confidence_level": "VERY_HIGH",
            },
            pending=True,
        )
    )

    assert txn.id == "t1"
    assert txn.amount == Decimal("12.5")
    assert txn.calendar_date == date(2024, 1, 5)
    assert txn.raw_categories == ("Food and Drink", "Coffee Shop")
    assert txn.finance_category.detailed == "FOOD_AND_DRINK_COFFEE"
    assert txn.finance_category.confidence == "VERY_HIGH"
    assert txn.pending is True
    assert txn.is_outflow


def test_transaction_from_sparse_payload() -> None:
    txn = transaction_from_dict({"transaction_id": "t2", "amount": "oops"})
    assert txn.amount == Decimal(0)
    assert txn.date is None
    assert txn.finance_category is None
    assert txn.raw_categories == ()
    assert txn.pending is False


def test_parse_txn_date_variants() -> None:
    assert parse_txn_date(date(2024, 1, 2)) == date(2024, 1, 2)
    assert parse_txn_date(" 2024-01-02T10:00:00Z") == date(2024, 1, 2)
    assert parse_txn_date("01/02/2024") is None
    assert parse_txn_date(42) is None


def test_dedupe_keeps_first_occurrence() -> None:
    rows = [
        transaction_from_dict(_row("a", 1, "2024-01-01")),
        transaction_from_dict(_row("a", 2, "2024-01-01")),
        transaction_from_dict(_row("b", 3, "2024-01-01")),
    ]
    unique = dedupe_transactions(rows)
    assert [(txn.id, txn.amount) for txn in unique] == [
        ("a", Decimal("1")),
        ("b", Decimal("3")),
    ]


def test_item_store_links_and_refreshes_tokens() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        store = PlaidItemStore(session)
        first = store.save(1, "item-1", "access-a", "Chase")
        again = store.save(1, "item-1", "access-b")

        assert again.id == first.id
        assert again.access_token == "access-b"
        assert again.institution_name == "Chase"
        assert [item.item_id for item in store.for_user(1)] == ["item-1"]
        assert store.for_user(2) == []

        with pytest.raises(ValueError, match="another user"):
            store.save(2, "item-1", "access-c")


def test_plaid_source_pages_through_results() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    rows = [
        _row("t1", 10, "2024-01-02"),
        _row("t2", 20, "2024-01-03"),
        _row("t3", -30, "2024-01-04"),
    ]
    client = FakePlaidClient(rows)

    with Session(engine) as session:
        store = PlaidItemStore(session)
        store.save(1, "item-1", "access-a")
        source = PlaidTransactionSource(client, store)
        txns = source.get_transactions(1, date(2024, 1, 1), date(2024, 1, 31))

    assert client.offsets == [0, 2]
    assert [txn.id for txn in txns] == ["t1", "t2", "t3"]
    assert txns[2].is_inflow


def test_plaid_source_errors() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        store = PlaidItemStore(session)
        with pytest.raises(TransactionSourceError, match="No linked bank account"):
            PlaidTransactionSource(FakePlaidClient([]), store).get_transactions(
                1, date(2024, 1, 1), date(2024, 1, 31)
            )

        store.save(1, "item-1", "access-a")
        with pytest.raises(TransactionSourceError, match="not configured"):
            PlaidTransactionSource(None, store).get_transactions(
                1, date(2024, 1, 1), date(2024, 1, 31)
            )
        with pytest.raises(TransactionSourceError, match="fetch failed"):
            PlaidTransactionSource(FailingPlaidClient(), store).get_transactions(
                1, date(2024, 1, 1), date(2024, 1, 31)
            )


def test_exchange_public_token_persists_item() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        store = PlaidItemStore(session)
        source = PlaidTransactionSource(FakePlaidClient([]), store)
        item = source.exchange_public_token(5, "public-sandbox-abc")

        assert item.item_id == "item-1"
        assert item.access_token == "access-public-sandbox-abc"
        assert [i.user_id for i in store.for_user(5)] == [5]


def test_build_plaid_client_requires_credentials() -> None:
    assert build_plaid_client(_settings()) is None
    client = build_plaid_client(
        _settings(plaid_client_id="client", plaid_secret="secret")
    )
    assert client is not None
