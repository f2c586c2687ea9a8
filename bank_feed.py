from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional, Protocol

import plaid
from plaid.api import plaid_api
from plaid.model.item_public_token_exchange_request import (
    ItemPublicTokenExchangeRequest,
)
from plaid.model.transactions_get_request import TransactionsGetRequest
from plaid.model.transactions_get_request_options import (
    TransactionsGetRequestOptions,
)
from sqlalchemy import select
from sqlalchemy.orm import Session

from config import Settings, get_settings
from ledger import Transaction, transaction_from_dict
from models import PlaidItem

logger = logging.getLogger(__name__)

PAGE_SIZE = 500


class TransactionSourceError(RuntimeError):
    pass


class TransactionSource(Protocol):
    def get_transactions(
        self, user_id: int, start: date, end: date
    ) -> list[Transaction]: ...


class PlaidItemStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def for_user(self, user_id: int) -> list[PlaidItem]:
        stmt = (
            select(PlaidItem)
            .where(PlaidItem.user_id == user_id)
            .order_by(PlaidItem.id.asc())
        )
        return list(self.session.scalars(stmt).all())

    def save(
        self,
        user_id: int,
        item_id: str,
        access_token: str,
        institution_name: Optional[str] = None,
    ) -> PlaidItem:
        existing = self.session.scalar(
            select(PlaidItem).where(PlaidItem.item_id == item_id)
        )
        if existing:
            if existing.user_id != user_id:
                raise ValueError("Item is linked to another user")
            existing.access_token = access_token
            if institution_name:
                existing.institution_name = institution_name
            self.session.commit()
            self.session.refresh(existing)
            return existing

        item = PlaidItem(
            user_id=user_id,
            item_id=item_id,
            access_token=access_token,
            institution_name=institution_name,
        )
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        logger.info(f"plaid_item_linked: user_id={user_id} item_id={item_id}")
        return item


def build_plaid_client(settings: Optional[Settings] = None) -> Optional[Any]:
    settings = settings or get_settings()
    if not settings.plaid_configured:
        return None
    hosts = {
        "sandbox": plaid.Environment.Sandbox,
        "production": plaid.Environment.Production,
    }
    host = hosts.get(settings.plaid_env.lower(), plaid.Environment.Sandbox)
    configuration = plaid.Configuration(
        host=host,
        api_key={
            "clientId": settings.plaid_client_id,
            "secret": settings.plaid_secret,
        },
    )
    return plaid_api.PlaidApi(plaid.ApiClient(configuration))


class PlaidTransactionSource:
    def __init__(self, client: Optional[Any], store: PlaidItemStore) -> None:
        self.client = client
        self.store = store

    def _require_client(self) -> Any:
        if self.client is None:
            raise TransactionSourceError("Plaid credentials are not configured")
        return self.client

    def exchange_public_token(self, user_id: int, public_token: str) -> PlaidItem:
        client = self._require_client()
        try:
            response = client.item_public_token_exchange(
                ItemPublicTokenExchangeRequest(public_token=public_token)
            )
        except plaid.ApiException as exc:
            raise TransactionSourceError(
                f"Token exchange failed: {exc.status}"
            ) from exc
        return self.store.save(user_id, response["item_id"], response["access_token"])

    def _fetch_item(
        self, access_token: str, start: date, end: date
    ) -> list[dict[str, Any]]:
        client = self._require_client()
        rows: list[dict[str, Any]] = []
        while True:
            request = TransactionsGetRequest(
                access_token=access_token,
                start_date=start,
                end_date=end,
                options=TransactionsGetRequestOptions(
                    count=PAGE_SIZE,
                    offset=len(rows),
                    include_personal_finance_category=True,
                ),
            )
            try:
                page = client.transactions_get(request).to_dict()
            except plaid.ApiException as exc:
                raise TransactionSourceError(
                    f"Transaction fetch failed: {exc.status}"
                ) from exc
            batch = page.get("transactions") or []
            rows.extend(batch)
            total = int(page.get("total_transactions") or 0)
            if not batch or len(rows) >= total:
                return rows

    def get_transactions(
        self, user_id: int, start: date, end: date
    ) -> list[Transaction]:
        items = self.store.for_user(user_id)
        if not items:
            raise TransactionSourceError("No linked bank account for this user")

        transactions: list[Transaction] = []
        for item in items:
            raw_rows = self._fetch_item(item.access_token, start, end)
            logger.info(
                f"plaid_transactions_fetched: user_id={user_id} item_id={item.item_id}"
                f" count={len(raw_rows)} start={start} end={end}"
            )
            transactions.extend(transaction_from_dict(row) for row in raw_rows)
        return transactions
