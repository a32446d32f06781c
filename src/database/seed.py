"""
Catalog seeding

Inserts bot templates from config/bot_templates.py that are not present yet.
Existing rows are left untouched: templates are immutable once deployed.
"""

from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.bot_templates import BOT_TEMPLATES
from src.core.enums import RiskLevel
from src.database.models import BotTemplate


async def seed_bot_templates(
    session: AsyncSession,
    templates: Optional[Iterable[dict]] = None,
) -> int:
    """
    Insert missing bot templates

    Args:
        session: Database session
        templates: Catalog entries (defaults to BOT_TEMPLATES)

    Returns:
        Number of templates created
    """
    templates = list(templates if templates is not None else BOT_TEMPLATES)

    result = await session.execute(select(BotTemplate.name))
    existing = set(result.scalars().all())

    created = 0
    for entry in templates:
        if entry["name"] in existing:
            continue
        session.add(
            BotTemplate(
                name=entry["name"],
                strategy=entry["strategy"],
                description=entry.get("description", ""),
                risk_level=RiskLevel(entry["risk_level"]).value,
                min_profit_pct=entry["min_profit_pct"],
                max_profit_pct=entry["max_profit_pct"],
                min_investment=entry["min_investment"],
                max_investment=entry["max_investment"],
                enabled=entry.get("enabled", True),
            )
        )
        created += 1

    if created:
        await session.commit()
        logger.info(f"Seeded {created} bot templates")

    return created
