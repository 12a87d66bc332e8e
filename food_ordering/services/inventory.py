"""
Inventory Ledger

Owns product stock. Reservations are a single conditional UPDATE
(``stock = stock - q WHERE stock >= q``) so two sessions can never both
take the last units, whatever the isolation level. Stock is never
read, changed in Python and written back.

The ledger never commits: it runs inside the caller's transaction so a
failed order unwinds every reservation it made.
"""

import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering.core.exceptions import InsufficientStock, InvalidQuantity, ProductNotFound
from food_ordering.models import Order, Product

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Atomic reserve/release of product stock."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_product(self, product_id: int) -> Product:
        product = await self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    async def _current(self, product_id: int) -> Product:
        product = await self.session.get(Product, product_id, populate_existing=True)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    async def reserve(self, product_id: int, quantity: int) -> int:
        """
        Take ``quantity`` units of a product.

        Returns:
            Stock remaining after the reservation

        Raises:
            InvalidQuantity: quantity is not positive
            ProductNotFound: unknown product
            InsufficientStock: fewer than ``quantity`` units left (nothing changed)
        """
        if quantity <= 0:
            raise InvalidQuantity(f"Quantity to reserve must be positive, got {quantity}.")

        result = await self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        product = await self._current(product_id)

        if result.rowcount == 0:
            logger.info(
                f"Reservation refused for product #{product_id}: "
                f"requested {quantity}, available {product.stock}"
            )
            raise InsufficientStock(product.name, product.stock, quantity)

        logger.debug(f"Reserved {quantity} x product #{product_id}, {product.stock} left")
        return product.stock

    async def release(self, product_id: int, quantity: int) -> int:
        """Return ``quantity`` units to stock. Returns the new stock."""
        if quantity <= 0:
            raise InvalidQuantity(f"Quantity to release must be positive, got {quantity}.")

        result = await self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ProductNotFound(product_id)

        product = await self._current(product_id)
        logger.debug(f"Released {quantity} x product #{product_id}, {product.stock} now")
        return product.stock

    async def release_order(self, order: Order) -> None:
        """Give back every line of an order. ``order.items`` must be loaded."""
        for item in order.items:
            await self.release(item.product_id, item.quantity)
        logger.info(f"Stock released for order #{order.id} ({len(order.items)} line(s))")
