"""Market data clients for DeFi Llama, CoinGecko, Fear & Greed and Etherscan.

Free public APIs, no keys required (Etherscan accepts an optional key).
Every ``get_*`` function goes through the shared TTL cache and falls back to
the last good payload when the upstream errors.
"""

import asyncio
import logging

import httpx

from config import settings
from services.cache import CacheTTL, TTLCache, fetch_with_fallback

logger = logging.getLogger(__name__)

DEFILLAMA_API = "https://api.llama.fi"
COINGECKO_API = "https://api.coingecko.com/api/v3"
FEAR_GREED_API = "https://api.alternative.me/fng/"
ETHERSCAN_API = "https://api.etherscan.io/api"

TOP_CHAINS = 75
TOP_DEXES = 20

# Major L1s, L2s, DeFi blue chips and established tokens most people recognize
TRUSTED_TOKEN_IDS = frozenset({
    # L1s
    "bitcoin", "ethereum", "solana", "cardano", "avalanche-2", "polkadot",
    "near", "cosmos", "algorand", "tron", "toncoin", "sui", "aptos", "sei-network",
    # L2s & scaling
    "matic-network", "arbitrum", "optimism", "starknet", "immutable-x",
    # DeFi
    "uniswap", "aave", "chainlink", "maker", "lido-dao", "the-graph",
    "compound-governance-token", "curve-dao-token", "convex-finance",
    "pancakeswap-token", "sushiswap", "balancer", "yearn-finance",
    "synthetix-network-token", "1inch", "dydx", "gmx", "joe", "raydium",
    "jupiter-exchange-solana",
    # Majors
    "binancecoin", "ripple", "dogecoin", "shiba-inu", "litecoin",
    "bitcoin-cash", "stellar", "monero", "ethereum-classic", "filecoin",
    "internet-computer", "hedera-hashgraph", "vechain", "quant-network",
    "fantom", "theta-token", "render-token", "injective-protocol", "celestia",
    # Stablecoins
    "tether", "usd-coin", "dai", "frax", "true-usd",
    # Gaming / metaverse
    "the-sandbox", "decentraland", "axie-infinity", "gala", "enjincoin",
    "illuvium", "stepn", "magic",
    # AI / compute
    "fetch-ai", "ocean-protocol", "singularitynet", "akash-network",
    "bittensor", "worldcoin-wld",
    # Infrastructure
    "arweave", "helium", "iotex", "livepeer", "mask-network",
    # Memes
    "pepe", "floki", "bonk", "dogwifcoin",
})

NEUTRAL_FEAR_GREED = {
    "value": "50",
    "value_classification": "Neutral",
    "yesterday": "50",
    "lastWeek": "50",
    "lastMonth": "50",
}


async def _get_json(url: str, params: dict | None = None) -> dict | list:
    async with httpx.AsyncClient(timeout=settings.upstream_timeout_seconds) as client:
        resp = await client.get(url, params=params, headers={"Accept": "application/json"})
        resp.raise_for_status()
        return resp.json()


# ---------------------------------------------------------------------------
# DeFi Llama
# ---------------------------------------------------------------------------

async def fetch_total_tvl() -> dict:
    chains = await _get_json(f"{DEFILLAMA_API}/v2/chains")
    if not isinstance(chains, list):
        raise ValueError("Unexpected DeFi Llama chains payload")
    return {"totalTvl": sum(chain.get("tvl") or 0 for chain in chains)}


async def fetch_chains() -> list[dict]:
    chains = await _get_json(f"{DEFILLAMA_API}/v2/chains")
    if not isinstance(chains, list):
        raise ValueError("Unexpected DeFi Llama chains payload")

    ranked = sorted(
        (c for c in chains if (c.get("tvl") or 0) > 0),
        key=lambda c: c["tvl"],
        reverse=True,
    )
    return [
        {
            "id": c.get("gecko_id") or c["name"].lower(),
            "name": c["name"],
            "tvl": c["tvl"],
            "symbol": c.get("tokenSymbol") or "",
            "chainId": c.get("chainId"),
        }
        for c in ranked[:TOP_CHAINS]
    ]


async def fetch_dex_volume() -> dict:
    data = await _get_json(f"{DEFILLAMA_API}/overview/dexs")

    protocols = [p for p in data.get("protocols") or [] if (p.get("total24h") or 0) > 0]
    protocols.sort(key=lambda p: p["total24h"], reverse=True)

    dexes = [
        {
            "name": p["name"],
            "displayName": p.get("displayName") or p["name"],
            "logo": p.get("logo") or "",
            "total24h": p.get("total24h") or 0,
            "total7d": p.get("total7d") or 0,
            "total30d": p.get("total30d") or 0,
            "change_1d": p.get("change_1d") or 0,
            "change_7d": p.get("change_7d") or 0,
            "change_1m": p.get("change_1m") or 0,
            "totalAllTime": p.get("totalAllTime") or 0,
            "chains": p.get("chains") or [],
            "protocolType": p.get("protocolType") or "dex",
        }
        for p in protocols[:TOP_DEXES]
    ]

    return {
        "dexes": dexes,
        "totalVolume24h": sum(d["total24h"] for d in dexes),
        "totalVolume7d": data.get("total7d") or 0,
        "totalVolume30d": data.get("total30d") or 0,
        "change24h": data.get("change_1d") or 0,
    }


# ---------------------------------------------------------------------------
# CoinGecko + Fear & Greed + gas
# ---------------------------------------------------------------------------

def _parse_fear_greed(payload: dict) -> dict:
    """Today's index plus yesterday, last week and last month readings."""
    days = payload.get("data") or []
    if not days:
        return dict(NEUTRAL_FEAR_GREED)

    today = days[0]["value"]

    def _day(n: int) -> str:
        return days[n]["value"] if len(days) > n else today

    return {
        "value": today,
        "value_classification": days[0].get("value_classification", "Neutral"),
        "yesterday": _day(1),
        "lastWeek": _day(7),
        "lastMonth": _day(30),
    }


def _parse_gas(payload: dict) -> dict:
    result = payload.get("result")
    if not isinstance(result, dict):
        return {"low": 0, "average": 0, "fast": 0}

    def _gwei(field: str) -> int:
        try:
            return int(float(result.get(field) or 0))
        except (TypeError, ValueError):
            return 0

    return {
        "low": _gwei("SafeGasPrice"),
        "average": _gwei("ProposeGasPrice"),
        "fast": _gwei("FastGasPrice"),
    }


async def _optional(source: str, coro, default):
    """Await an auxiliary fetch, returning ``default`` if it fails."""
    try:
        return await coro
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("%s fetch failed, using defaults: %s", source, e)
        return default


async def fetch_global() -> dict:
    gas_params = {"module": "gastracker", "action": "gasoracle"}
    if settings.etherscan_api_key:
        gas_params["apikey"] = settings.etherscan_api_key

    global_data, fear_greed, gas = await asyncio.gather(
        _get_json(f"{COINGECKO_API}/global"),
        _optional("Fear & Greed", _get_json(FEAR_GREED_API, params={"limit": 31}), {}),
        _optional("Etherscan gas", _get_json(ETHERSCAN_API, params=gas_params), {}),
    )

    return {
        "global": global_data.get("data"),
        "fearGreed": _parse_fear_greed(fear_greed),
        "gas": _parse_gas(gas),
    }


async def fetch_prices() -> list[dict]:
    coins = await _get_json(
        f"{COINGECKO_API}/coins/markets",
        params={
            "vs_currency": "usd",
            "order": "market_cap_desc",
            "per_page": 100,
            "page": 1,
            "sparkline": "true",
            "price_change_percentage": "1h,24h,7d,14d,30d",
        },
    )
    if not isinstance(coins, list):
        raise ValueError("Unexpected CoinGecko markets payload")
    return [coin for coin in coins if coin.get("id") in TRUSTED_TOKEN_IDS]


# ---------------------------------------------------------------------------
# Cached accessors used by routes
# ---------------------------------------------------------------------------

async def get_total_tvl(cache: TTLCache) -> dict:
    return await fetch_with_fallback(cache, "crypto:tvl", fetch_total_tvl, CacheTTL.LONG, source="TVL")


async def get_chains(cache: TTLCache) -> list[dict]:
    return await fetch_with_fallback(cache, "crypto:chains", fetch_chains, CacheTTL.LONG, source="chain")


async def get_dex_volume(cache: TTLCache) -> dict:
    return await fetch_with_fallback(
        cache, "crypto:dexVolume", fetch_dex_volume, CacheTTL.LONG, source="DEX volume"
    )


async def get_global(cache: TTLCache) -> dict:
    return await fetch_with_fallback(cache, "crypto:global", fetch_global, CacheTTL.MEDIUM, source="global")


async def get_prices(cache: TTLCache) -> list[dict]:
    return await fetch_with_fallback(cache, "crypto:prices", fetch_prices, CacheTTL.MEDIUM, source="price")
