"""
Pydantic models for PumpPortal new-token messages and internal data structures.
"""

import math
import re
from enum import Enum
from typing import Optional, Any, Dict, Mapping, Sequence, Tuple, Union
from datetime import datetime
from pydantic import BaseModel, Field, field_validator


Number = Union[int, float]

# Fields that identify a new-token event; all three must be present.
REQUIRED_EVENT_FIELDS: Tuple[str, ...] = ("mint", "name", "symbol")

# Ordered candidate upstream keys per optional field, first truthy value wins.
STRING_FIELD_SOURCES: Dict[str, Tuple[Sequence[str], str]] = {
    "uri": (("uri",), ""),
    "description": (("description",), ""),
    "image": (("image",), ""),
    "creator": (("creator", "traderPublicKey"), "unknown"),
    "twitter": (("twitter",), ""),
    "telegram": (("telegram",), ""),
    "website": (("website",), ""),
}

NUMERIC_FIELD_SOURCES: Dict[str, Tuple[Sequence[str], Number]] = {
    "marketCap": (("marketCap",), 0),
    "initialBuy": (("initialBuy",), 0),
}


class TokenRecord(BaseModel):
    """A normalized new-token notification as stored and served."""
    mint: str = Field(..., description="Token mint address")
    name: str = Field(..., description="Token display name")
    symbol: str = Field(..., description="Token ticker symbol")
    uri: str = Field(default="", description="Metadata URI")
    description: str = Field(default="", description="Token description")
    image: str = Field(default="", description="Image URL")
    marketCap: Number = Field(default=0, description="Market cap reported by the feed")
    creator: str = Field(default="unknown", description="Creator wallet address")
    createdAt: int = Field(..., description="Ingestion timestamp in milliseconds")
    twitter: str = Field(default="", description="Twitter link")
    telegram: str = Field(default="", description="Telegram link")
    website: str = Field(default="", description="Website link")
    initialBuy: Number = Field(default=0, description="Initial buy amount")

    @property
    def created_at_datetime(self) -> datetime:
        """Convert createdAt to datetime object."""
        return datetime.fromtimestamp(self.createdAt / 1000.0)

    def age_ms(self, now_ms: int) -> int:
        """Milliseconds elapsed since ingestion, relative to now_ms."""
        return now_ms - self.createdAt


def _is_present(value: Any) -> bool:
    # Mirrors JSON truthiness: null, "", 0 and false are treated as absent
    if value is None or value is False:
        return False
    if isinstance(value, (str, int, float)) and not value:
        return False
    return True


def _first_present(msg: Mapping[str, Any], candidates: Sequence[str]) -> Any:
    for key in candidates:
        value = msg.get(key)
        if _is_present(value):
            return value
    return None


def _as_number(value: Any, default: Number) -> Number:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return default
    else:
        return default
    # NaN and infinities cannot be served as JSON
    return number if math.isfinite(number) else default


class NewTokenMessage(BaseModel):
    """WebSocket message received from the PumpPortal data feed."""
    msg: Dict[str, Any] = Field(..., description="Raw message data from PumpPortal")

    def is_new_token_event(self) -> bool:
        """True if the message carries mint, name and symbol."""
        return all(_is_present(self.msg.get(field)) for field in REQUIRED_EVENT_FIELDS)

    def to_record(self, created_at: int) -> TokenRecord:
        """
        Convert the raw message to a TokenRecord.

        Args:
            created_at: Ingestion timestamp in milliseconds, assigned by the caller

        Raises:
            ValueError: If the message is not a new-token event
        """
        if not self.is_new_token_event():
            raise ValueError("Message is missing one of mint, name or symbol")

        fields: Dict[str, Any] = {
            field: str(self.msg[field]) for field in REQUIRED_EVENT_FIELDS
        }

        for field, (candidates, default) in STRING_FIELD_SOURCES.items():
            value = _first_present(self.msg, candidates)
            fields[field] = default if value is None else str(value)

        for field, (candidates, default) in NUMERIC_FIELD_SOURCES.items():
            value = _first_present(self.msg, candidates)
            fields[field] = default if value is None else _as_number(value, default)

        return TokenRecord(createdAt=created_at, **fields)


class ConnectionState(str, Enum):
    """Lifecycle states of the upstream feed connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    RECONNECT_WAIT = "reconnect_wait"
    STOPPED = "stopped"


class ConnectionStatus(BaseModel):
    """WebSocket connection status information."""
    state: ConnectionState = Field(..., description="Current connection state")
    connected: bool = Field(..., description="Whether the feed is open and subscribed")
    last_connected: Optional[datetime] = Field(None, description="Last successful connection time")
    reconnect_attempts: int = Field(default=0, description="Number of reconnection attempts")
    error_message: Optional[str] = Field(None, description="Last error message if any")


_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_int_param(raw: Optional[str], default: int) -> int:
    """Parse a query parameter like parseInt(raw) || default."""
    if raw is None:
        return default
    match = _LEADING_INT.match(str(raw))
    if not match:
        return default
    value = int(match.group(1))
    return value or default


class TokenQuery(BaseModel):
    """Filter parameters accepted by the token query interface."""
    limit: int = Field(default=50, description="Maximum number of tokens returned")
    min_market_cap: int = Field(default=0, description="Inclusive lower bound on marketCap")
    min_age: int = Field(default=0, description="Inclusive lower bound on age in milliseconds")

    @field_validator('limit')
    @classmethod
    def clamp_limit(cls, v):
        """Negative limits return nothing rather than slicing from the end."""
        return max(v, 0)

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "TokenQuery":
        """Build a query from raw request parameters."""
        return cls(
            limit=parse_int_param(params.get("limit"), 50),
            min_market_cap=parse_int_param(params.get("minMarketCap"), 0),
            min_age=parse_int_param(params.get("minAge"), 0),
        )
