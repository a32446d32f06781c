# coding: utf-8
"""
Supported tokens and networks

Static lookup table used to validate deposit address requests. Address
format is chosen by network family.
"""

from typing import Dict, List, Optional


# =======================
# NETWORKS
# =======================

NETWORKS: Dict[str, dict] = {
    "eth": {"name": "Ethereum", "native_currency": "ETH", "family": "evm"},
    "bsc": {"name": "BNB Smart Chain", "native_currency": "BNB", "family": "evm"},
    "polygon": {"name": "Polygon", "native_currency": "MATIC", "family": "evm"},
    "avalanche": {"name": "Avalanche", "native_currency": "AVAX", "family": "evm"},
    "arbitrum": {"name": "Arbitrum", "native_currency": "ETH", "family": "evm"},
    "optimism": {"name": "Optimism", "native_currency": "ETH", "family": "evm"},
    "fantom": {"name": "Fantom", "native_currency": "FTM", "family": "evm"},
    "base": {"name": "Base", "native_currency": "ETH", "family": "evm"},
    "solana": {"name": "Solana", "native_currency": "SOL", "family": "solana"},
    "tron": {"name": "TRON", "native_currency": "TRX", "family": "tron"},
    "bitcoin": {"name": "Bitcoin", "native_currency": "BTC", "family": "bitcoin"},
    "ton": {"name": "TON", "native_currency": "TON", "family": "other"},
}


# =======================
# TOKENS
# =======================

# symbol -> networks the token can be deposited on
TOKENS: Dict[str, dict] = {
    "USDT": {
        "name": "Tether USD",
        "decimals": 6,
        "networks": ["eth", "bsc", "tron", "polygon", "solana", "arbitrum", "avalanche", "optimism", "fantom", "base", "ton"],
    },
    "USDC": {
        "name": "USD Coin",
        "decimals": 6,
        "networks": ["eth", "bsc", "polygon", "solana", "arbitrum", "avalanche", "optimism", "base"],
    },
    "DAI": {
        "name": "Dai",
        "decimals": 18,
        "networks": ["eth", "bsc", "polygon", "arbitrum", "optimism"],
    },
    "BTC": {"name": "Bitcoin", "decimals": 8, "networks": ["bitcoin", "eth", "bsc"]},
    "ETH": {"name": "Ethereum", "decimals": 18, "networks": ["eth", "bsc", "arbitrum", "optimism", "base"]},
    "BNB": {"name": "Binance Coin", "decimals": 18, "networks": ["bsc", "eth"]},
    "SOL": {"name": "Solana", "decimals": 9, "networks": ["solana", "eth", "bsc"]},
    "MATIC": {"name": "Polygon", "decimals": 18, "networks": ["polygon", "eth"]},
    "TRX": {"name": "TRON", "decimals": 6, "networks": ["tron"]},
    "TON": {"name": "Toncoin", "decimals": 9, "networks": ["ton"]},
}


def get_network(network_id: str) -> Optional[dict]:
    """Get network metadata by id"""
    return NETWORKS.get(network_id)


def get_supported_networks(currency: str) -> List[str]:
    """Network ids a currency can be deposited on (empty for unknown currency)"""
    token = TOKENS.get(currency.upper())
    return list(token["networks"]) if token else []


def is_supported(currency: str, network_id: str) -> bool:
    """Check that the currency exists on the network"""
    return network_id in get_supported_networks(currency)


def get_network_family(network_id: str) -> str:
    """Address family for a network ('other' when unknown)"""
    network = get_network(network_id)
    return network["family"] if network else "other"
