# coding: utf-8
"""
Bot template catalog

Seeded into the bot_templates table at startup (see src/database/seed.py).
Templates are immutable once deployed: change the catalog and redeploy rather
than editing rows.

Profit range is the bound of the per-tick percentage change of an instance's
value, not a monthly figure.
"""

from decimal import Decimal

from src.core.enums import RiskLevel


BOT_TEMPLATES = [
    {
        "name": "DCA Master",
        "strategy": "dca",
        "description": "Dollar-cost averaging strategy that buys small amounts at regular intervals to reduce the impact of volatility.",
        "risk_level": RiskLevel.LOW,
        "min_profit_pct": Decimal("-0.5"),
        "max_profit_pct": Decimal("1.0"),
        "min_investment": Decimal("50"),
        "max_investment": Decimal("50000"),
    },
    {
        "name": "Trend Rider",
        "strategy": "trend_following",
        "description": "Follows market trends and makes trades based on momentum indicators for medium-term gains.",
        "risk_level": RiskLevel.MEDIUM,
        "min_profit_pct": Decimal("-0.8"),
        "max_profit_pct": Decimal("1.5"),
        "min_investment": Decimal("100"),
        "max_investment": Decimal("50000"),
    },
    {
        "name": "Flash Trader",
        "strategy": "high_frequency",
        "description": "High-frequency trading bot that capitalizes on small price movements with rapid trades.",
        "risk_level": RiskLevel.HIGH,
        "min_profit_pct": Decimal("-1.0"),
        "max_profit_pct": Decimal("2.0"),
        "min_investment": Decimal("100"),
        "max_investment": Decimal("100000"),
    },
    {
        "name": "Arbitrage Hunter",
        "strategy": "arbitrage",
        "description": "Exploits price differences between exchanges to generate consistent profits with minimal risk.",
        "risk_level": RiskLevel.VERY_LOW,
        "min_profit_pct": Decimal("-0.2"),
        "max_profit_pct": Decimal("0.6"),
        "min_investment": Decimal("250"),
        "max_investment": Decimal("100000"),
    },
    {
        "name": "Grid Maestro",
        "strategy": "grid",
        "description": "Places a grid of buy and sell orders to profit from price oscillations in sideways markets.",
        "risk_level": RiskLevel.MEDIUM,
        "min_profit_pct": Decimal("-0.6"),
        "max_profit_pct": Decimal("1.2"),
        "min_investment": Decimal("100"),
        "max_investment": Decimal("50000"),
    },
    {
        "name": "HODL Enhancer",
        "strategy": "rebalancing",
        "description": "Long-term strategy that holds core positions while enhancing returns through strategic rebalancing.",
        "risk_level": RiskLevel.LOW,
        "min_profit_pct": Decimal("-0.4"),
        "max_profit_pct": Decimal("0.9"),
        "min_investment": Decimal("50"),
        "max_investment": Decimal("50000"),
    },
    {
        "name": "Volatility Harvester",
        "strategy": "volatility",
        "description": "Thrives during market turbulence by capitalizing on extreme price movements in either direction.",
        "risk_level": RiskLevel.VERY_HIGH,
        "min_profit_pct": Decimal("-2.5"),
        "max_profit_pct": Decimal("4.0"),
        "min_investment": Decimal("500"),
        "max_investment": Decimal("100000"),
    },
    {
        "name": "AI Predictor",
        "strategy": "ml_prediction",
        "description": "Uses machine learning algorithms to predict market movements based on historical data patterns.",
        "risk_level": RiskLevel.HIGH,
        "min_profit_pct": Decimal("-1.2"),
        "max_profit_pct": Decimal("2.5"),
        "min_investment": Decimal("200"),
        "max_investment": Decimal("100000"),
    },
]
