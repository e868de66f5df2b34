"""Seed default categories, so imported rows can resolve category names."""

import argparse
import asyncio
from typing import List

from sqlalchemy import select

from app.core.database import AsyncSessionLocal, init_db
from app.domain.categories.models import Category

DEFAULT_CATEGORIES: List[dict] = [
    {"name": "Salário", "type": "receita", "color": "#4CAF50"},
    {"name": "Freelance", "type": "receita", "color": "#8BC34A"},
    {"name": "Investimentos", "type": "receita", "color": "#009688"},
    {"name": "Alimentação", "type": "despesa", "color": "#FF9800"},
    {"name": "Moradia", "type": "despesa", "color": "#F44336"},
    {"name": "Transporte", "type": "despesa", "color": "#3F51B5"},
    {"name": "Saúde", "type": "despesa", "color": "#E91E63"},
    {"name": "Lazer", "type": "despesa", "color": "#9C27B0"},
    {"name": "Contas", "type": "despesa", "color": "#03A9F4"},
    {"name": "Outros", "type": "despesa", "color": "#9E9E9E"},
]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed default categories for a user")
    parser.add_argument("--user-id", type=int, required=True, help="Target user id")
    return parser.parse_args()


async def seed_categories(user_id: int) -> int:
    """Insert the categories the user does not have yet; returns how many were added."""
    await init_db()
    async with AsyncSessionLocal() as session:
        existing = await session.execute(select(Category.name, Category.type).where(Category.user_id == user_id))
        existing_keys = {(row[0], row[1]) for row in existing.all()}

        added = 0
        for category in DEFAULT_CATEGORIES:
            if (category["name"], category["type"]) in existing_keys:
                continue
            session.add(Category(user_id=user_id, **category))
            added += 1

        await session.commit()
        return added


if __name__ == "__main__":
    args = parse_args()
    count = asyncio.run(seed_categories(args.user_id))
    print(f"Seeded {count} categories for user {args.user_id}")
