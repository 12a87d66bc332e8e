"""
Promo Code Ledger

Validation, redemption and admin management of promo codes.

Redemption is one conditional UPDATE that only succeeds while
``usage_count < max_usages``; when it touches no row the code is re-read
and the caller gets the precise reason. Two concurrent redemptions of the
last slot therefore cannot both succeed.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering.core.exceptions import (
    ConflictError,
    PromoCodeBelowMinimum,
    PromoCodeExpired,
    PromoCodeLimitReached,
    PromoCodeNotFound,
)
from food_ordering.models import DiscountKind, PromoCode
from food_ordering.schemas import PromoCodeCreate

logger = logging.getLogger(__name__)


def calculate_discount(promo: PromoCode, order_amount: float) -> float:
    """
    Discount a promo code gives on ``order_amount``.

    Percentage codes take ``discount_amount`` percent; fixed codes take the
    flat amount. Never more than the order amount, never negative.
    """
    if promo.discount_kind == DiscountKind.PERCENTAGE:
        discount = order_amount * (promo.discount_amount / 100)
    else:
        discount = promo.discount_amount
    return round(min(max(discount, 0.0), max(order_amount, 0.0)), 2)


class PromoCodeLedger:
    """Reads and atomic updates of promo codes. Never commits."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # ADMIN
    # =========================================================================

    async def list_all(self) -> list[PromoCode]:
        result = await self.session.execute(select(PromoCode).order_by(PromoCode.id))
        return list(result.scalars().all())

    async def get_by_code(self, code: str) -> PromoCode:
        result = await self.session.execute(
            select(PromoCode)
            .where(PromoCode.code == code.strip())
            .execution_options(populate_existing=True)
        )
        promo = result.scalar_one_or_none()
        if promo is None:
            raise PromoCodeNotFound(code)
        return promo

    async def create(self, data: PromoCodeCreate) -> PromoCode:
        code = data.code.strip()
        existing = await self.session.execute(select(PromoCode.id).where(PromoCode.code == code))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(
                "A promo code with this code already exists. Please use a different code."
            )

        promo = PromoCode(
            code=code,
            discount_amount=data.discount_amount,
            discount_kind=data.discount_kind,
            max_usages=data.max_usages,
            usage_count=0,
            expiry_date=data.expiry_date,
            minimum_order_amount=data.minimum_order_amount,
            description=data.description,
        )
        self.session.add(promo)
        try:
            await self.session.flush()
        except IntegrityError:
            # Lost a race with a concurrent create of the same code
            raise ConflictError(
                "A promo code with this code already exists. Please use a different code."
            )
        logger.info(f"Promo code {promo.code} created ({promo.max_usages} uses)")
        return promo

    async def delete(self, promo_id: int) -> None:
        promo = await self.session.get(PromoCode, promo_id)
        if promo is None:
            raise PromoCodeNotFound(str(promo_id))
        await self.session.delete(promo)
        logger.info(f"Promo code {promo.code} deleted")

    # =========================================================================
    # VALIDATION / REDEMPTION
    # =========================================================================

    async def validate(
        self,
        code: str,
        order_amount: Optional[float] = None,
        today: Optional[date] = None,
    ) -> PromoCode:
        """
        Check that ``code`` can be used right now.

        Raises, in this order of precedence:
            PromoCodeNotFound, PromoCodeLimitReached, PromoCodeExpired,
            PromoCodeBelowMinimum (only when ``order_amount`` is given)
        """
        today = today or date.today()
        promo = await self.get_by_code(code)

        if promo.usage_count >= promo.max_usages:
            raise PromoCodeLimitReached(promo.code)
        if promo.expiry_date < today:
            raise PromoCodeExpired(promo.code)
        if order_amount is not None and order_amount < promo.minimum_order_amount:
            raise PromoCodeBelowMinimum(promo.code, promo.minimum_order_amount)

        return promo

    async def redeem(
        self,
        code: str,
        order_amount: Optional[float] = None,
        today: Optional[date] = None,
    ) -> PromoCode:
        """
        Validate and consume one use of ``code``.

        Returns:
            The promo code as stored after the increment
        """
        today = today or date.today()
        promo = await self.validate(code, order_amount, today)

        result = await self.session.execute(
            update(PromoCode)
            .where(
                PromoCode.id == promo.id,
                PromoCode.usage_count < PromoCode.max_usages,
                PromoCode.expiry_date >= today,
            )
            .values(
                usage_count=PromoCode.usage_count + 1,
                version=PromoCode.version + 1,
            )
            .execution_options(synchronize_session=False)
        )

        current = await self.session.get(PromoCode, promo.id, populate_existing=True)
        if result.rowcount == 0:
            if current is None:
                raise PromoCodeNotFound(code)
            if current.usage_count >= current.max_usages:
                raise PromoCodeLimitReached(current.code)
            if current.expiry_date < today:
                raise PromoCodeExpired(current.code)
            raise ConflictError(f"Promo code '{code}' could not be redeemed. Please try again.")

        logger.info(
            f"Promo code {current.code} redeemed "
            f"({current.usage_count}/{current.max_usages})"
        )
        return current
