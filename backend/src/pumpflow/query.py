"""
Token filtering for the HTTP query interface.
"""

from typing import Any, Dict, List

from .models import TokenQuery, TokenRecord
from .token_store import StoreSnapshot


def filter_tokens(snapshot: StoreSnapshot, query: TokenQuery, now: int) -> List[TokenRecord]:
    """
    Apply the market cap and age filters to a snapshot.

    Order is preserved (newest first) and the result is capped at query.limit.
    """
    matched = []
    for token in snapshot.tokens:
        if len(matched) >= query.limit:
            break
        if token.marketCap < query.min_market_cap:
            continue
        if token.age_ms(now) < query.min_age:
            continue
        matched.append(token)
    return matched


def build_tokens_response(snapshot: StoreSnapshot, query: TokenQuery, now: int) -> Dict[str, Any]:
    """Response body for GET /api/tokens."""
    tokens = filter_tokens(snapshot, query, now)
    return {
        "success": True,
        "count": len(tokens),
        "totalStored": snapshot.total_count,
        "lastUpdate": snapshot.last_update,
        "tokens": [token.model_dump() for token in tokens],
    }
