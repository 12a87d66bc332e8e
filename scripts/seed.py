"""
Seed Script

Creates the tables and loads a small menu, a few users and a promo code so
the API and the race simulation have something to work with.
Run from project root: python scripts/seed.py [--stock 20] [--reset]
"""

import argparse
import asyncio
import os
import sys
from datetime import date, timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from food_ordering.database import Base, async_session_maker, engine, init_db
from food_ordering.models import DiscountKind, Product, PromoCode, User, UserRole

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

USERS = [
    {"email": "admin@kasikitchen.co.za", "first_name": "Kitchen", "last_name": "Admin",
     "role": UserRole.ADMIN},
    {"email": "thandi@example.com", "first_name": "Thandi", "last_name": "Mokoena",
     "phone_number": "+27820000001", "address": "12 Vilakazi St, Soweto"},
    {"email": "sipho@example.com", "first_name": "Sipho", "last_name": "Dlamini",
     "phone_number": "+27820000002", "address": "4 Main Rd, Randburg"},
]

MENU = [
    {"name": "Kota", "description": "Quarter loaf with chips, polony and atchar", "price": 45.0},
    {"name": "Slap Chips", "description": "Large soft chips with vinegar", "price": 25.0},
    {"name": "Boerewors Roll", "description": "Grilled wors on a fresh roll", "price": 38.5},
    {"name": "Vetkoek & Mince", "description": "Two vetkoek with savoury mince", "price": 42.0},
]


async def seed(stock: int, reset: bool) -> None:
    print("=" * 60)
    print("🌱 SEEDING DATABASE")
    print("=" * 60)

    if reset:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        print("🗑️  Dropped existing tables")
    await init_db()

    async with async_session_maker() as session:
        for data in USERS:
            exists = await session.scalar(select(User.id).where(User.email == data["email"]))
            if exists is None:
                session.add(User(**data))
                print(f"👤 User: {data['first_name']} {data['last_name']}")

        for data in MENU:
            product = await session.scalar(select(Product).where(Product.name == data["name"]))
            if product is None:
                session.add(Product(stock=stock, **data))
            else:
                product.stock = stock
            print(f"🍔 Product: {data['name']} (stock {stock})")

        promo = await session.scalar(select(PromoCode).where(PromoCode.code == "WELCOME10"))
        if promo is None:
            session.add(PromoCode(
                code="WELCOME10",
                discount_amount=10.0,
                discount_kind=DiscountKind.PERCENTAGE,
                max_usages=100,
                expiry_date=date.today() + timedelta(days=30),
                description="10% off your first order",
            ))
            print("🏷️  Promo: WELCOME10")

        await session.commit()

        users = (await session.scalars(select(User).order_by(User.id))).all()
        products = (await session.scalars(select(Product).order_by(Product.id))).all()

    await engine.dispose()

    print("\n" + "=" * 60)
    for user in users:
        print(f"   user #{user.id:<3} {user.role.value:<8} {user.email}")
    for product in products:
        print(f"   product #{product.id:<3} R{product.price:>6.2f}  stock {product.stock:<4} {product.name}")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the ordering database")
    parser.add_argument("--stock", type=int, default=20, help="Stock level for every product")
    parser.add_argument("--reset", action="store_true", help="Drop all tables first")
    args = parser.parse_args()

    asyncio.run(seed(stock=args.stock, reset=args.reset))
