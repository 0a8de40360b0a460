"""Crypto market data routes — cached proxies over public APIs.

Each route serves fresh cache, else fetches, else serves the last good
payload. Only a failed fetch with nothing ever cached returns a 500.
Every route counts against the caller's per-client rate limit.
"""

from fastapi import APIRouter, Depends, Request, Response

from errors import RateLimitedError
from services import crypto_data
from services.admin_auth import client_id_from_headers
from services.cache import TTLCache


def get_cache(request: Request) -> TTLCache:
    return request.app.state.cache


def enforce_rate_limit(request: Request, response: Response) -> None:
    result = request.app.state.rate_limiter.hit(client_id_from_headers(request.headers))
    if not result.allowed:
        raise RateLimitedError(result.headers())
    response.headers.update(result.headers())


router = APIRouter(prefix="/api/crypto", tags=["crypto"], dependencies=[Depends(enforce_rate_limit)])


@router.get("/tvl")
async def total_tvl(cache: TTLCache = Depends(get_cache)) -> dict:
    """Total value locked across all chains."""
    return await crypto_data.get_total_tvl(cache)


@router.get("/chains")
async def chains(cache: TTLCache = Depends(get_cache)) -> list[dict]:
    """Top chains ranked by TVL."""
    return await crypto_data.get_chains(cache)


@router.get("/dex-volume")
async def dex_volume(cache: TTLCache = Depends(get_cache)) -> dict:
    return await crypto_data.get_dex_volume(cache)


@router.get("/global")
async def global_metrics(cache: TTLCache = Depends(get_cache)) -> dict:
    """Global market cap, Fear & Greed index and gas prices."""
    return await crypto_data.get_global(cache)


@router.get("/prices")
async def prices(cache: TTLCache = Depends(get_cache)) -> list[dict]:
    return await crypto_data.get_prices(cache)
