"""
Pytest configuration and fixtures.

Every test gets its own SQLite database file (aiosqlite) under tmp_path, so
tests never share ledger state.
"""
from typing import Any, AsyncGenerator

import pytest_asyncio

from cardapi.db import Store
from cardapi.ledger import Ledger
from cardapi.repositories import (
    AuthorisationRepository,
    CardRepository,
    CustomerRepository,
    VendorRepository,
)
from cardapi.schemas import Card, Customer, Vendor


@pytest_asyncio.fixture
async def store(tmp_path) -> AsyncGenerator[Store, Any]:
    """Create a fresh store with the schema in place."""
    store = Store.from_url(f"sqlite+aiosqlite:///{tmp_path / 'cardapi.db'}")
    await store.create_all()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def ledger(store: Store) -> Ledger:
    return Ledger(store)


@pytest_asyncio.fixture
async def customer(store: Store) -> Customer:
    return await CustomerRepository(store).add_or_update(Customer(fullname="Fred Bloggs"))


@pytest_asyncio.fixture
async def vendor(store: Store) -> Vendor:
    return await VendorRepository(store).add_or_update(Vendor(vendor_name="a coffee shop"))


@pytest_asyncio.fixture
async def card(store: Store, customer: Customer) -> Card:
    return await CardRepository(store).add_card(customer.id)


@pytest_asyncio.fixture
async def funded_card(ledger: Ledger, card: Card) -> Card:
    """Card topped up with £10.00."""
    await ledger.top_up(card.id, 1000, "opening balance")
    return await CardRepository(ledger.store).get_card_row(card.id)


async def card_state(store: Store, card_id: int) -> Card:
    return await CardRepository(store).get_card_row(card_id)


async def auth_state(store: Store, authorisation_id: int):
    return await AuthorisationRepository(store).get_authorisation_row(authorisation_id)


async def open_holds(store: Store, card_id: int) -> int:
    """Sum of Capturable over every authorisation on a card."""
    async with store.connect() as conn:
        result = await store.execute(
            conn,
            "SELECT COALESCE(SUM(amount - captured - reversed), 0) FROM authorisations"
            " WHERE card_id = :card_id",
            {"card_id": card_id},
            op="test",
        )
        return result.scalar_one()


async def count_rows(store: Store, table: str) -> int:
    async with store.connect() as conn:
        result = await store.execute(conn, f"SELECT COUNT(*) FROM {table}", op="test")
        return result.scalar_one()
