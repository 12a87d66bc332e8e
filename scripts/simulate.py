"""
Order Race Simulation

Fires many concurrent orders at one product with little stock and checks
that the API never sells more units than it had.
Run from project root after `python scripts/seed.py --stock 5`:

    python scripts/simulate.py --orders 50 --product 1 --stock 5
"""

import argparse
import asyncio
import random
import sys
import time
from collections import Counter
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
CUSTOMER_IDS = [2, 3]
ADMIN_HEADERS = {"X-User-Id": "1", "X-User-Role": "admin"}

NOTES = [None, "No onions", "Extra atchar", "Well done chips", None]


def generate_cart(user_id: int, product_id: int) -> dict[str, Any]:
    """A collection order for one unit of the contested product."""
    return {
        "user_id": user_id,
        "delivery_method": "collection",
        "payment_method": random.choice(["cash", "card"]),
        "items": [{
            "product_id": product_id,
            "quantity": 1,
            "customization_notes": random.choice(NOTES),
        }],
    }


async def send_order(client: httpx.AsyncClient, order_num: int, product_id: int) -> dict[str, Any]:
    user_id = random.choice(CUSTOMER_IDS)
    headers = {"X-User-Id": str(user_id), "X-User-Role": "customer"}
    start = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json=generate_cart(user_id, product_id),
            headers=headers,
            timeout=30.0,
        )
        elapsed = round(time.time() - start, 3)
        body = response.json()

        if response.status_code == 201:
            print(f"✅ Order #{order_num}: created order {body['id']} ({elapsed}s)")
            return {
                "order_num": order_num,
                "success": True,
                "status": response.status_code,
                "time": elapsed,
                "total": body.get("total_amount", 0),
            }

        print(f"❌ Order #{order_num}: {response.status_code} {body.get('error', '')}")
        return {
            "order_num": order_num,
            "success": False,
            "status": response.status_code,
            "time": elapsed,
            "error": body.get("message", response.text[:100]),
        }

    except Exception as e:
        print(f"💥 Order #{order_num}: {e}")
        return {
            "order_num": order_num,
            "success": False,
            "status": None,
            "time": round(time.time() - start, 3),
            "error": str(e),
        }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    num_orders: int = TOTAL_ORDERS,
    product_id: int = 1,
    stock: int = 5,
) -> dict[str, Any]:
    """
    Run the race simulation.

    Args:
        num_orders: Number of concurrent orders to fire
        product_id: Product every order competes for
        stock: Units the product had before the run
    """
    print("=" * 70)
    print("🔥 ORDER RACE SIMULATION")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🍔 Product: #{product_id} with {stock} in stock")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        before = await client.get(f"{API_BASE_URL}/api/orders/count", headers=ADMIN_HEADERS)
        orders_before = before.json()["count"] if before.status_code == 200 else None

        print("\n🚀 Firing orders...\n")
        start_time = time.time()
        results = await asyncio.gather(
            *(send_order(client, i + 1, product_id) for i in range(num_orders))
        )
        total_time = round(time.time() - start_time, 2)

        after = await client.get(f"{API_BASE_URL}/api/orders/count", headers=ADMIN_HEADERS)
        orders_after = after.json()["count"] if after.status_code == 200 else None

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    by_status = Counter(r["status"] for r in failed)

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
    print(f"❌ Rejected Orders: {len(failed)}/{num_orders}")
    for status, count in sorted(by_status.items(), key=lambda kv: str(kv[0])):
        print(f"   {status}: {count}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        total_revenue = sum(r.get("total", 0) for r in successful)

        print("\n📈 Performance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")
        print(f"   💰 Total Revenue: R{total_revenue:.2f}")

    if failed:
        print("\n⚠️  Rejection Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']} [{f['status']}]: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print("🔍 VERIFICATION")
    print("=" * 70)

    oversold = len(successful) > stock
    print(f"{'❌' if oversold else '✅'} Units sold: {len(successful)} of {stock} available")

    if orders_before is not None and orders_after is not None:
        recorded = orders_after - orders_before
        mismatch = recorded != len(successful)
        print(f"{'❌' if mismatch else '✅'} Orders recorded: {recorded} (expected {len(successful)})")
    else:
        mismatch = False
        print("⚠️  Could not read the order count")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "consistent": not (oversold or mismatch),
        "results": results,
    }


async def check_health() -> bool:
    """Make sure the API is up before firing orders."""
    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"❌ API unreachable: {e}")
            return False

    data = response.json()
    print(f"🩺 Health: {data.get('status')} (database: {data.get('database')}, redis: {data.get('redis')})")
    return response.status_code == 200 and data.get("database") == "healthy"


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concurrent order race simulation")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--product", type=int, default=1, help="Product id to order")
    parser.add_argument("--stock", type=int, default=5, help="Stock the product was seeded with")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url.rstrip("/")

    if not asyncio.run(check_health()):
        print("\n❌ Pre-flight check failed. Start the API and seed the database first.")
        sys.exit(1)

    summary = asyncio.run(
        run_simulation(num_orders=args.orders, product_id=args.product, stock=args.stock)
    )
    sys.exit(0 if summary["consistent"] else 1)
