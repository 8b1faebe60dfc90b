"""
Seed regions, tables, categories and products for a demo or a fresh install.

Seeding is idempotent: regions, categories and products are matched by name,
and a region only gains the tables it is missing. Existing prices and stock
are left alone.

Usage:
    python -m scripts.seed_demo [--data-file path/to/seed.json] [--database-url URL]

Data file layout:
    {
      "regions": {"Salon": 8, "Terrace": 4},
      "products": {"Drinks": [{"name": "Tea", "price": 15, "stock": 200, "critical": 20}]}
    }

Environment:
    APP_DATABASE_URL: Database connection (default: sqlite:///masa.db)
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict

from sqlalchemy import func, select
from sqlalchemy.orm import Session

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEMO_DATA: Dict[str, Any] = {
    "regions": {"Salon": 8, "Terrace": 4, "Garden": 6},
    "products": {
        "Hot drinks": [
            {"name": "Tea", "price": 15, "stock": 200, "critical": 20},
            {"name": "Turkish coffee", "price": 45, "stock": 80, "critical": 10, "favorite": True},
        ],
        "Cold drinks": [
            {"name": "Cola", "price": 40, "stock": 48, "critical": 12},
            {"name": "Ayran", "price": 25, "stock": 30, "critical": 6},
        ],
        "Mains": [
            {"name": "Adana kebab", "price": 220},
            {"name": "Lentil soup", "price": 90, "favorite": True},
        ],
    },
}


def load_seed_json(data_file: str) -> Dict[str, Any]:
    """Load seed data from a JSON file."""
    if not os.path.exists(data_file):
        raise FileNotFoundError(f"Seed file not found: {data_file}")

    with open(data_file, 'r', encoding='utf-8') as f:
        data = json.load(f)

    logger.info(f"Loaded seed data from {data_file}")
    return data


def seed_demo(session: Session, data: Dict[str, Any]) -> Dict[str, int]:
    """
    Seed *data* into the database idempotently and commit.

    Returns:
        Counters: regions_created, tables_created, categories_created, products_created
    """
    from masapos.db.models import Category, Product, Region, Table
    from masapos.utils.money import to_cents

    stats = {
        'regions_created': 0,
        'tables_created': 0,
        'categories_created': 0,
        'products_created': 0,
    }

    for region_name, table_count in data.get("regions", {}).items():
        region = session.execute(select(Region).where(Region.name == region_name)).scalar_one_or_none()
        if region is None:
            region = Region(name=region_name)
            session.add(region)
            session.flush()
            stats['regions_created'] += 1

        highest = session.execute(
            select(func.max(Table.table_id)).where(Table.region_id == region.id)
        ).scalar() or 0
        for ordinal in range(highest + 1, int(table_count) + 1):
            session.add(Table(region_id=region.id, table_id=ordinal))
            stats['tables_created'] += 1

    for category_name, products in data.get("products", {}).items():
        category = session.execute(select(Category).where(Category.name == category_name)).scalar_one_or_none()
        if category is None:
            category = Category(name=category_name)
            session.add(category)
            session.flush()
            stats['categories_created'] += 1

        for entry in products:
            exists = session.execute(select(Product.id).where(Product.name == entry["name"])).first()
            if exists:
                continue
            tracked = "stock" in entry
            session.add(Product(
                name=entry["name"],
                price_cents=to_cents(entry["price"]),
                category_id=category.id,
                is_favorite=bool(entry.get("favorite", False)),
                stock=int(entry.get("stock", 0)),
                critical=int(entry.get("critical", 0)),
                in_stock_list=tracked,
            ))
            stats['products_created'] += 1

    session.commit()
    logger.info(
        f"Seeded {stats['regions_created']} regions, {stats['tables_created']} tables, "
        f"{stats['categories_created']} categories, {stats['products_created']} products"
    )
    return stats


def main(argv=None):
    """Command-line interface for demo seeding."""
    parser = argparse.ArgumentParser(
        description="Seed regions, tables and products into the database idempotently"
    )
    parser.add_argument(
        '--data-file',
        help='Path to a seed JSON file (default: built-in demo data)',
        default=None
    )
    parser.add_argument(
        '--database-url',
        help='Database URL (default: env var APP_DATABASE_URL or sqlite:///masa.db)',
        default=None
    )

    args = parser.parse_args(argv)

    try:
        data = load_seed_json(args.data_file) if args.data_file else DEMO_DATA
    except Exception as e:
        logger.error(f"Failed to load seed data: {e}")
        return 1

    db_url = args.database_url or os.getenv('APP_DATABASE_URL', 'sqlite:///masa.db')
    logger.info(f"Using database: {db_url}")

    from masapos.storage import SQLAlchemyStorage
    storage = SQLAlchemyStorage(db_url)
    session = storage._get_session()

    try:
        stats = seed_demo(session, data)

        print("\n" + "=" * 60)
        print("SEED RESULTS")
        print("=" * 60)
        print(f"Regions Created:     {stats['regions_created']}")
        print(f"Tables Created:      {stats['tables_created']}")
        print(f"Categories Created:  {stats['categories_created']}")
        print(f"Products Created:    {stats['products_created']}")
        print("=" * 60 + "\n")

        return 0

    except Exception as e:
        logger.error(f"Seeding failed: {e}", exc_info=True)
        session.rollback()
        return 1
    finally:
        session.close()
        storage.close()


if __name__ == '__main__':
    sys.exit(main())
