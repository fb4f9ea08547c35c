"""The ledger engine: every operation that moves money between cards,
authorisations and vendors.

Each operation follows the same shape. Preconditions are read outside any
transaction, then one transaction applies guarded UPDATEs (each must hit
exactly one row) followed by the audit inserts. Anything raised inside the
transaction rolls all of it back, so callers never see a partial write.

All amounts are integer pence.
"""
import logging
from typing import Awaitable, TypeVar

from sqlalchemy.ext.asyncio import AsyncConnection

from cardapi import statements as q
from cardapi.db import Store
from cardapi.errors import (
    InsufficientCapturableError,
    InsufficientFundsError,
    InsufficientFundsRaceError,
    InsufficientRefundableError,
    InvalidAmountError,
    NotFoundError,
    expect_one_row,
    format_amount,
)
from cardapi.repositories import (
    AuthorisationRepository,
    CardRepository,
    VendorRepository,
)

logger = logging.getLogger("cardapi.ledger")

T = TypeVar("T")


def check_amount(op: str, amount: int) -> None:
    if amount <= 0:
        raise InvalidAmountError(op, amount)


class Ledger:

    def __init__(self, store: Store):
        self.store = store
        self.cards = CardRepository(store)
        self.vendors = VendorRepository(store)
        self.authorisations = AuthorisationRepository(store)

    async def _require(self, lookup: Awaitable[T], op: str) -> T:
        # an id that does not exist is the caller's mistake here, not a 404
        try:
            return await lookup
        except NotFoundError as exc:
            raise NotFoundError(op, exc.entity, exc.entity_id, status_code=400) from exc

    async def _update_one(
        self, conn: AsyncConnection, sql: str, params: dict, op: str, table: str
    ) -> None:
        result = await self.store.execute(conn, sql, params, op=op)
        expect_one_row(result, op, table, **params)

    async def _insert(self, conn: AsyncConnection, sql: str, params: dict, op: str) -> int:
        result = await self.store.execute(conn, sql, params, op=op)
        return result.scalar_one()

    async def top_up(self, card_id: int, amount: int, description: str) -> int:
        """Add funds to a card. Returns the new movement id."""
        op = "TopUp"
        check_amount(op, amount)
        await self._require(self.cards.get_card_row(card_id, op), op)

        async with self.store.begin(op) as conn:
            await self._update_one(
                conn, q.QUERY_TOP_UP_CARD, {"id": card_id, "amount": amount}, op, "cards"
            )
            movement_id = await self._insert(conn, q.QUERY_ADD_MOVEMENT, {
                "card_id": card_id,
                "amount": amount,
                "description": description,
                "movement_type": q.MOVEMENT_TOP_UP,
            }, op)

        logger.info("[Ledger] TopUp of %s committed for card %s", amount, card_id)
        return movement_id

    async def authorise(
        self, card_id: int, vendor_id: int, amount: int, description: str
    ) -> int:
        """Place a hold on a card's available funds in favour of a vendor.
        Returns the new authorisation id."""
        op = "Authorise"
        check_amount(op, amount)
        await self._require(self.vendors.get_vendor_row(vendor_id, op), op)
        card = await self._require(self.cards.get_card_row(card_id, op), op)

        if card.available < amount:
            logger.info(
                "[Ledger] Authorise declined for card %s: %s exceeds available %s",
                card_id, amount, card.available,
            )
            raise InsufficientFundsError(op, amount, card.available)

        async with self.store.begin(op) as conn:
            result = await self.store.execute(
                conn, q.QUERY_AUTHORISE_CARD, {"id": card_id, "amount": amount}, op=op
            )
            if result.rowcount == 0:
                logger.warning(
                    "[Ledger] Authorise of %s on card %s lost to a concurrent hold",
                    amount, card_id,
                )
                raise InsufficientFundsRaceError(op, amount)
            expect_one_row(result, op, "cards", id=card_id, amount=amount)

            authorisation_id = await self._insert(conn, q.QUERY_ADD_AUTHORISATION, {
                "card_id": card_id,
                "vendor_id": vendor_id,
                "amount": amount,
                "description": description,
            }, op)

        logger.info(
            "[Ledger] Authorisation %s committed: card %s, vendor %s, amount %s",
            authorisation_id, card_id, vendor_id, amount,
        )
        return authorisation_id

    async def capture(self, authorisation_id: int, amount: int) -> int:
        """Capture all or part of an authorised payment. Returns the new
        auth-movement id."""
        op = "Capture"
        check_amount(op, amount)
        auth = await self._require(
            self.authorisations.get_authorisation_row(authorisation_id, op), op
        )

        if amount > auth.capturable:
            logger.info(
                "[Ledger] Capture declined for authorisation %s: %s exceeds capturable %s",
                authorisation_id, amount, auth.capturable,
            )
            raise InsufficientCapturableError(op, amount, auth.capturable)

        async with self.store.begin(op) as conn:
            result = await self.store.execute(
                conn, q.QUERY_CAPTURE_AUTH, {"id": auth.id, "amount": amount}, op=op
            )
            if result.rowcount == 0:
                logger.warning(
                    "[Ledger] Capture of %s on authorisation %s lost to a concurrent update",
                    amount, auth.id,
                )
                raise InsufficientCapturableError(op, amount, None)
            expect_one_row(result, op, "authorisations", id=auth.id, amount=amount)

            # available was already reduced when the hold was placed
            await self._update_one(
                conn, q.QUERY_CAPTURE_CARD, {"id": auth.card_id, "amount": amount}, op, "cards"
            )
            await self._update_one(
                conn,
                q.QUERY_UPDATE_VENDOR_BALANCE,
                {"id": auth.vendor_id, "amount": amount},
                op,
                "vendors",
            )
            await self._insert(conn, q.QUERY_ADD_MOVEMENT, {
                "card_id": auth.card_id,
                "amount": -amount,
                "description": auth.description,
                "movement_type": q.MOVEMENT_PURCHASE,
            }, op)
            auth_movement_id = await self._insert(conn, q.QUERY_ADD_AUTH_MOVEMENT, {
                "authorisation_id": auth.id,
                "amount": amount,
                "description": f"Capture of {format_amount(amount)}",
                "movement_type": q.AUTH_MOVEMENT_CAPTURE,
            }, op)

        logger.info("[Ledger] Capture of %s committed for authorisation %s", amount, auth.id)
        return auth_movement_id

    async def refund(self, authorisation_id: int, amount: int, description: str) -> int:
        """Refund all or part of the captured amount of an authorisation back
        to the card. Returns the new auth-movement id."""
        op = "Refund"
        check_amount(op, amount)
        auth = await self._require(
            self.authorisations.get_authorisation_row(authorisation_id, op), op
        )

        if amount > auth.refundable:
            logger.info(
                "[Ledger] Refund declined for authorisation %s: %s exceeds refundable %s",
                authorisation_id, amount, auth.refundable,
            )
            raise InsufficientRefundableError(op, amount, auth.refundable)

        async with self.store.begin(op) as conn:
            result = await self.store.execute(
                conn, q.QUERY_REFUND_AUTH, {"id": auth.id, "amount": amount}, op=op
            )
            if result.rowcount == 0:
                logger.warning(
                    "[Ledger] Refund of %s on authorisation %s lost to a concurrent update",
                    amount, auth.id,
                )
                raise InsufficientRefundableError(op, amount, None)
            expect_one_row(result, op, "authorisations", id=auth.id, amount=amount)

            await self._update_one(
                conn, q.QUERY_REFUND_CARD, {"id": auth.card_id, "amount": amount}, op, "cards"
            )
            await self._update_one(
                conn,
                q.QUERY_UPDATE_VENDOR_BALANCE,
                {"id": auth.vendor_id, "amount": -amount},
                op,
                "vendors",
            )
            await self._insert(conn, q.QUERY_ADD_MOVEMENT, {
                "card_id": auth.card_id,
                "amount": amount,
                "description": description,
                "movement_type": q.MOVEMENT_REFUND,
            }, op)
            auth_movement_id = await self._insert(conn, q.QUERY_ADD_AUTH_MOVEMENT, {
                "authorisation_id": auth.id,
                "amount": -amount,
                "description": description,
                "movement_type": q.AUTH_MOVEMENT_REFUND,
            }, op)

        logger.info("[Ledger] Refund of %s committed for authorisation %s", amount, auth.id)
        return auth_movement_id

    async def reverse(self, authorisation_id: int, amount: int, description: str) -> int:
        """Release all or part of a hold that has not been captured. Only the
        hold accounting changes, so no card movement is written. Returns the
        new auth-movement id."""
        op = "Reverse"
        check_amount(op, amount)
        auth = await self._require(
            self.authorisations.get_authorisation_row(authorisation_id, op), op
        )

        if amount > auth.capturable:
            logger.info(
                "[Ledger] Reverse declined for authorisation %s: %s exceeds capturable %s",
                authorisation_id, amount, auth.capturable,
            )
            raise InsufficientCapturableError(op, amount, auth.capturable)

        async with self.store.begin(op) as conn:
            result = await self.store.execute(
                conn, q.QUERY_REVERSE_AUTH, {"id": auth.id, "amount": amount}, op=op
            )
            if result.rowcount == 0:
                logger.warning(
                    "[Ledger] Reverse of %s on authorisation %s lost to a concurrent update",
                    amount, auth.id,
                )
                raise InsufficientCapturableError(op, amount, None)
            expect_one_row(result, op, "authorisations", id=auth.id, amount=amount)

            await self._update_one(
                conn, q.QUERY_REVERSE_CARD, {"id": auth.card_id, "amount": amount}, op, "cards"
            )
            auth_movement_id = await self._insert(conn, q.QUERY_ADD_AUTH_MOVEMENT, {
                "authorisation_id": auth.id,
                "amount": -amount,
                "description": description,
                "movement_type": q.AUTH_MOVEMENT_REVERSAL,
            }, op)

        logger.info("[Ledger] Reverse of %s committed for authorisation %s", amount, auth.id)
        return auth_movement_id
