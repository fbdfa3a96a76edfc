"""
Sample Warehouse Data Generator

Writes dimension CSVs (customers, products, locations) and a staged sales
extract. The sales extract deliberately contains rows the warehouse must
handle: unknown customers/products, zero quantities, negative prices and
rows with missing key fields.

Usage:
    python scripts/generate_staging.py --sales 50000 --days 90
"""

import argparse
from datetime import date, timedelta
from pathlib import Path

import numpy as np
import polars as pl
from faker import Faker

fake = Faker()
Faker.seed(42)
rng = np.random.default_rng(42)

OUTPUT_DIR = Path(__file__).parent.parent / "data" / "generated"

SEGMENTS = ["Consumer", "Corporate", "Home Office", "Small Business"]
CHANNELS = ["organic", "paid_search", "social", "referral", "email"]
CATEGORIES = {
    "Electronics": ["Phones", "Laptops", "Accessories"],
    "Furniture": ["Chairs", "Tables", "Storage"],
    "Office Supplies": ["Paper", "Binders", "Art"],
}
PAYMENTS = ["credit_card", "debit_card", "paypal", "bank_transfer"]
SHIPPING = ["standard", "express", "same_day", "pickup"]


# ==========================================
# DIMENSIONS
# ==========================================
def generate_customers(n: int) -> pl.DataFrame:
    print(f"📊 Generating {n:,} customers...")

    df = pl.DataFrame({
        "customer_id": [f"C{i:06d}" for i in range(1, n + 1)],
        "name": [fake.name() for _ in range(n)],
        "email": [fake.email() for _ in range(n)],
        "phone": [fake.numerify("###-###-####") for _ in range(n)],
        "segment": rng.choice(SEGMENTS, n, p=[0.5, 0.25, 0.15, 0.10]),
        "acquisition_channel": rng.choice(CHANNELS, n),
        "address_line1": [fake.street_address() for _ in range(n)],
        "city": [fake.city() for _ in range(n)],
        "state": [fake.state_abbr() for _ in range(n)],
        "country": ["US"] * n,
        "postal_code": [fake.postcode() for _ in range(n)],
    })

    df.write_csv(OUTPUT_DIR / "customers.csv")
    print(f"   ✅ customers.csv: {n:,} rows")
    return df


def generate_products(n: int) -> pl.DataFrame:
    print(f"📊 Generating {n:,} products...")

    categories = rng.choice(list(CATEGORIES), n)
    unit_price = np.round(rng.uniform(5, 1500, n), 2)
    unit_cost = np.round(unit_price * rng.uniform(0.4, 0.8, n), 2)
    # A few discontinued products
    discontinued = rng.random(n) < 0.03
    today = date.today()

    df = pl.DataFrame({
        "product_id": [f"P{i:05d}" for i in range(1, n + 1)],
        "sku": [f"SKU-{i:08d}" for i in range(1, n + 1)],
        "name": [f"{fake.word().title()} {fake.word().title()}" for _ in range(n)],
        "category": categories,
        "subcategory": [str(rng.choice(CATEGORIES[c])) for c in categories],
        "brand": [fake.company() for _ in range(n)],
        "unit_cost": unit_cost,
        "unit_price": unit_price,
        "discontinue_date": [
            (today - timedelta(days=int(rng.integers(1, 60)))).isoformat() if d else None
            for d in discontinued
        ],
    })

    df.write_csv(OUTPUT_DIR / "products.csv")
    print(f"   ✅ products.csv: {n:,} rows")
    return df


def generate_locations(n: int) -> pl.DataFrame:
    print(f"📊 Generating {n:,} locations...")

    df = pl.DataFrame({
        "location_id": [f"L{i:03d}" for i in range(1, n + 1)],
        "location_name": [f"{fake.city()} Store" for _ in range(n)],
        "location_type": rng.choice(["store", "warehouse", "online"], n, p=[0.6, 0.2, 0.2]),
        "city": [fake.city() for _ in range(n)],
        "state": [fake.state_abbr() for _ in range(n)],
        "country": ["US"] * n,
        "region": rng.choice(["East", "West", "Central", "South"], n),
    })

    df.write_csv(OUTPUT_DIR / "locations.csv")
    print(f"   ✅ locations.csv: {n:,} rows")
    return df


# ==========================================
# STAGED SALES - VECTORIZED
# ==========================================
def generate_sales(
    n: int,
    customer_ids: list,
    product_ids: list,
    location_ids: list,
    days: int,
    dirty_ratio: float = 0.02,
) -> pl.DataFrame:
    print(f"📊 Generating {n:,} staged sales (vectorized)...")

    start = date.today() - timedelta(days=days)
    order_dates = [start + timedelta(days=int(d)) for d in rng.integers(0, days, n)]

    quantity = rng.integers(1, 6, n)
    unit_price = np.round(rng.uniform(5, 800, n), 2)
    discount = np.round(unit_price * quantity * rng.choice([0, 0, 0, 0.05, 0.1], n), 2)
    tax = np.round((unit_price * quantity - discount) * 0.08, 2)
    total = np.round(unit_price * quantity - discount + tax, 2)

    customers = rng.choice(customer_ids, n).astype(object)
    products = rng.choice(product_ids, n).astype(object)

    # Rows the warehouse has to skip or reject
    dirty = rng.random(n) < dirty_ratio
    kind = rng.integers(0, 4, n)
    customers[dirty & (kind == 0)] = "C999999"
    products[dirty & (kind == 1)] = "P99999"
    quantity[dirty & (kind == 2)] = 0
    unit_price[dirty & (kind == 3)] = -unit_price[dirty & (kind == 3)]

    # Orders hold one to three lines
    order_numbers = [f"ORD-{i // 2:09d}" for i in range(n)]

    df = pl.DataFrame({
        "transaction_id": [f"T{i:010d}" for i in range(n)],
        "order_date": order_dates,
        "customer_id": customers.tolist(),
        "product_id": products.tolist(),
        "location_id": rng.choice(location_ids, n),
        "quantity": quantity,
        "unit_price": unit_price,
        "discount_amount": discount,
        "tax_amount": tax,
        "total_amount": total,
        "order_number": order_numbers,
        "payment_method": rng.choice(PAYMENTS, n),
        "shipping_method": rng.choice(SHIPPING, n),
    })

    # A handful of rows with no customer at all
    missing = pl.Series(rng.random(n) < dirty_ratio / 4)
    df = df.with_columns(
        pl.when(missing).then(None).otherwise(pl.col("customer_id")).alias("customer_id")
    )

    df.write_csv(OUTPUT_DIR / "sales.csv")
    print(f"   ✅ sales.csv: {n:,} rows ({int(dirty.sum()):,} dirty)")
    return df


# ==========================================
# MAIN
# ==========================================
def main():
    parser = argparse.ArgumentParser(description="Generate sample warehouse data")
    parser.add_argument("--customers", type=int, default=2000)
    parser.add_argument("--products", type=int, default=500)
    parser.add_argument("--locations", type=int, default=25)
    parser.add_argument("--sales", type=int, default=50000)
    parser.add_argument("--days", type=int, default=90, help="Order dates span the last N days")
    args = parser.parse_args()

    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

    print("=" * 60)
    print("🏬 Sample Warehouse Data Generator")
    print("=" * 60 + "\n")

    customers_df = generate_customers(args.customers)
    products_df = generate_products(args.products)
    locations_df = generate_locations(args.locations)

    generate_sales(
        args.sales,
        customers_df["customer_id"].to_list(),
        products_df["product_id"].to_list(),
        locations_df["location_id"].to_list(),
        args.days,
    )

    print("\n" + "=" * 60)
    print("✅ Dataset Generation Complete!")
    print("=" * 60)
    print(f"\n📁 Output: {OUTPUT_DIR}\n")


if __name__ == "__main__":
    main()
