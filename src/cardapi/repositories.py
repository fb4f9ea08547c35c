import logging
from typing import List, Optional, Type, TypeVar

from sqlalchemy.engine import RowMapping

from cardapi import statements as q
from cardapi.db import Store
from cardapi.errors import NotFoundError
from cardapi.schemas import (
    AuthMovement,
    Authorisation,
    Card,
    Customer,
    Movement,
    Vendor,
)

logger = logging.getLogger("cardapi.repositories")

M = TypeVar("M")


def parent_fields(row: RowMapping, prefix: str) -> dict:
    return {key: value for key, value in row.items() if not key.startswith(prefix)}


def optional_child(row: RowMapping, prefix: str, model: Type[M]) -> Optional[M]:
    """Child entity from an outer-joined row, or None when the join found
    nothing (the child's primary key came back NULL)."""
    if row[f"{prefix}id"] is None:
        return None
    return model(**{
        key[len(prefix):]: value
        for key, value in row.items()
        if key.startswith(prefix)
    })


class Repository:
    def __init__(self, store: Store):
        self.store = store

    async def _fetch_all(self, sql: str, params: dict, op: str) -> List[RowMapping]:
        async with self.store.connect(op) as conn:
            result = await self.store.execute(conn, sql, params, op=op)
            return result.mappings().all()

    async def _fetch_one(self, sql: str, params: dict, op: str) -> Optional[RowMapping]:
        async with self.store.connect(op) as conn:
            result = await self.store.execute(conn, sql, params, op=op)
            return result.mappings().first()


class CustomerRepository(Repository):

    async def get_customer_row(self, customer_id: int, op: str = "GetCustomer") -> Customer:
        row = await self._fetch_one(q.QUERY_GET_CUSTOMER, {"id": customer_id}, op)
        if row is None:
            raise NotFoundError(op, "customer", customer_id)
        return Customer(**row)

    async def get_customer(self, customer_id: int) -> Customer:
        rows = await self._fetch_all(q.QUERY_GET_CUSTOMER_ALL, {"id": customer_id}, "GetCustomer")
        if not rows:
            raise NotFoundError("GetCustomer", "customer", customer_id)
        customer = Customer(**parent_fields(rows[0], "c_"), cards=[])
        for row in rows:
            card = optional_child(row, "c_", Card)
            if card is not None:
                customer.cards.append(card)
        return customer

    async def list_customers(self) -> List[Customer]:
        rows = await self._fetch_all(q.QUERY_GET_CUSTOMERS, {}, "GetCustomers")
        return [Customer(**row) for row in rows]

    async def add_or_update(self, customer: Customer) -> Customer:
        if not customer.id:
            async with self.store.begin("AddCustomer") as conn:
                result = await self.store.execute(
                    conn, q.QUERY_ADD_CUSTOMER, {"fullname": customer.fullname}, op="AddCustomer"
                )
                new_id = result.scalar_one()
            logger.info("[Repository] Customer %s added", new_id)
            return Customer(id=new_id, fullname=customer.fullname)

        async with self.store.begin("UpdateCustomer") as conn:
            result = await self.store.execute(
                conn,
                q.QUERY_UPDATE_CUSTOMER,
                {"id": customer.id, "fullname": customer.fullname},
                op="UpdateCustomer",
            )
            if result.rowcount == 0:
                raise NotFoundError("UpdateCustomer", "customer", customer.id)
        return Customer(id=customer.id, fullname=customer.fullname)


class VendorRepository(Repository):

    async def get_vendor_row(self, vendor_id: int, op: str = "GetVendor") -> Vendor:
        row = await self._fetch_one(q.QUERY_GET_VENDOR, {"id": vendor_id}, op)
        if row is None:
            raise NotFoundError(op, "vendor", vendor_id)
        return Vendor(**row)

    async def get_vendor(self, vendor_id: int) -> Vendor:
        rows = await self._fetch_all(q.QUERY_GET_VENDOR_ALL, {"id": vendor_id}, "GetVendor")
        if not rows:
            raise NotFoundError("GetVendor", "vendor", vendor_id)
        vendor = Vendor(**parent_fields(rows[0], "a_"), authorisations=[])
        for row in rows:
            auth = optional_child(row, "a_", Authorisation)
            if auth is not None:
                vendor.authorisations.append(auth)
        return vendor

    async def list_vendors(self) -> List[Vendor]:
        rows = await self._fetch_all(q.QUERY_GET_VENDORS, {}, "GetVendors")
        return [Vendor(**row) for row in rows]

    async def add_or_update(self, vendor: Vendor) -> Vendor:
        """Insert a new vendor or rename an existing one. The balance is only
        ever moved by the ledger."""
        if not vendor.id:
            async with self.store.begin("AddVendor") as conn:
                result = await self.store.execute(
                    conn, q.QUERY_ADD_VENDOR, {"vendor_name": vendor.vendor_name}, op="AddVendor"
                )
                row = result.mappings().one()
            logger.info("[Repository] Vendor %s added", row["id"])
            return Vendor(id=row["id"], vendor_name=vendor.vendor_name, balance=row["balance"])

        async with self.store.begin("UpdateVendor") as conn:
            result = await self.store.execute(
                conn,
                q.QUERY_UPDATE_VENDOR_NAME,
                {"id": vendor.id, "vendor_name": vendor.vendor_name},
                op="UpdateVendor",
            )
            if result.rowcount == 0:
                raise NotFoundError("UpdateVendor", "vendor", vendor.id)
        return await self.get_vendor_row(vendor.id, "UpdateVendor")


class CardRepository(Repository):

    async def get_card_row(self, card_id: int, op: str = "GetCard") -> Card:
        row = await self._fetch_one(q.QUERY_GET_CARD, {"id": card_id}, op)
        if row is None:
            raise NotFoundError(op, "card", card_id)
        return Card(**row)

    async def get_card(self, card_id: int) -> Card:
        rows = await self._fetch_all(q.QUERY_GET_CARD_ALL, {"id": card_id}, "GetCard")
        if not rows:
            raise NotFoundError("GetCard", "card", card_id)
        card = Card(**parent_fields(rows[0], "m_"), movements=[])
        for row in rows:
            movement = optional_child(row, "m_", Movement)
            if movement is not None:
                card.movements.append(movement)
        return card

    async def add_card(self, customer_id: int) -> Card:
        async with self.store.begin("AddCard") as conn:
            result = await self.store.execute(
                conn,
                q.QUERY_ADD_CARD,
                {"customer_id": customer_id},
                op="AddCard",
                reference=("customer", customer_id),
            )
            row = result.mappings().one()
        logger.info("[Repository] Card %s issued to customer %s", row["id"], customer_id)
        return Card(**row)


class AuthorisationRepository(Repository):

    async def get_authorisation_row(
        self, authorisation_id: int, op: str = "GetAuthorisation"
    ) -> Authorisation:
        row = await self._fetch_one(q.QUERY_GET_AUTHORISATION, {"id": authorisation_id}, op)
        if row is None:
            raise NotFoundError(op, "authorisation", authorisation_id)
        return Authorisation(**row)

    async def get_authorisation(self, authorisation_id: int) -> Authorisation:
        rows = await self._fetch_all(
            q.QUERY_GET_AUTHORISATION_ALL, {"id": authorisation_id}, "GetAuthorisation"
        )
        if not rows:
            raise NotFoundError("GetAuthorisation", "authorisation", authorisation_id)
        auth = Authorisation(**parent_fields(rows[0], "m_"), movements=[])
        for row in rows:
            movement = optional_child(row, "m_", AuthMovement)
            if movement is not None:
                auth.movements.append(movement)
        return auth
