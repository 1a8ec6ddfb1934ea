"""
Paradex Data Schemas

This module defines Pydantic models for every payload exchanged with Paradex,
both over REST and over the WebSocket feed.

Key Principle:
    Paradex encodes most decimal quantities as JSON strings ("50000.5").
    Market data (prices, sizes, fees, margins) is parsed to float, with the
    empty string mapped to NaN (or to None for nullable fields). Order
    quantities that feed into signatures stay Decimal so no precision is lost
    before quantization.

Models:
    - System: SystemConfig, SystemState, SystemTime, JWTToken
    - Markets: MarketSummaryStatic, MarketSummary, BBO, Trade, OrderBook,
      OrderBookResponse, Kline, FundingData
    - Orders: OrderRequest -> Order, ModifyOrderRequest -> ModifyOrder, OrderUpdate
    - Account: AccountInformation, Balance, Position, Fill, FundingPayment, BalanceEvent
    - Envelopes: ResultsContainer, CursorResult, RestErrorBody

Serialization:
    Outgoing orders are dumped with
    ``order.model_dump(mode="json", by_alias=True, exclude_none=True)``
    which renames ``order_type`` to ``type``, renders Decimals as strings,
    omits unset optional fields and renders the signature as ``'["r","s"]'``.
"""

import math
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator


T = TypeVar("T")


# ============================================
# String Decimal Helpers
# ============================================

def str_to_float(value: Any) -> Any:
    """
    Parse a string encoded decimal.

    Examples:
        >>> str_to_float("50000.5")
        50000.5
        >>> str_to_float("")
        nan
    """
    if isinstance(value, str):
        if value == "":
            return math.nan
        return float(value)
    return value


def str_to_optional_float(value: Any) -> Any:
    """Parse a nullable string encoded decimal ("" and null both map to None)"""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return float(value)
    return value


def empty_to_none(value: Any) -> Any:
    """Map "" to None for nullable Decimal fields"""
    if value == "":
        return None
    return value


def format_signature(signature: Tuple[int, int]) -> str:
    """
    Render an (r, s) signature the way Paradex expects it in payloads and headers.

    Example:
        >>> format_signature((12, 34))
        '["12","34"]'
    """
    r, s = signature
    return f'["{r}","{s}"]'


class ParadexModel(BaseModel):
    """Base model: accepts both field names and aliases, ignores unknown keys"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ============================================
# Enums
# ============================================

class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def felt(self) -> int:
        """Signing representation: BUY=1, SELL=2"""
        return 1 if self is Side.BUY else 2


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_MARKET = "STOP_MARKET"
    STOP_LIMIT = "STOP_LIMIT"
    TAKE_PROFIT_LIMIT = "TAKE_PROFIT_LIMIT"
    TAKE_PROFIT_MARKET = "TAKE_PROFIT_MARKET"
    STOP_LOSS_MARKET = "STOP_LOSS_MARKET"
    STOP_LOSS_LIMIT = "STOP_LOSS_LIMIT"


class OrderInstruction(str, Enum):
    GTC = "GTC"
    IOC = "IOC"
    POST_ONLY = "POST_ONLY"
    RPI = "RPI"


class OrderStatus(str, Enum):
    NEW = "NEW"
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    UNTRIGGERED = "UNTRIGGERED"


class OrderFlag(str, Enum):
    REDUCE_ONLY = "REDUCE_ONLY"
    STOP_CONDITION_BELOW_TRIGGER = "STOP_CONDITION_BELOW_TRIGGER"
    STOP_CONDITION_ABOVE_TRIGGER = "STOP_CONDITION_ABOVE_TRIGGER"
    INTERACTIVE = "INTERACTIVE"
    TARGET_STRATEGY_VWAP = "TARGET_STRATEGY_VWAP"


class STPType(str, Enum):
    EXPIRE_MAKER = "EXPIRE_MAKER"
    EXPIRE_TAKER = "EXPIRE_TAKER"
    EXPIRE_BOTH = "EXPIRE_BOTH"


class TradeType(str, Enum):
    FILL = "FILL"
    LIQUIDATION = "LIQUIDATION"
    RPI = "RPI"
    TRANSFER = "TRANSFER"
    SETTLE_MARKET = "SETTLE_MARKET"
    BLOCK_TRADE = "BLOCK_TRADE"


class OrderBookUpdateType(str, Enum):
    SNAPSHOT = "s"
    DELTA = "d"


class FillLiquidity(str, Enum):
    TAKER = "TAKER"
    MAKER = "MAKER"


class FillType(str, Enum):
    FILL = "FILL"
    LIQUIDATION = "LIQUIDATION"


class AccountStatus(str, Enum):
    ACTIVE = "ACTIVE"
    LIQUIDATION = "LIQUIDATION"


class PositionSide(str, Enum):
    SHORT = "SHORT"
    LONG = "LONG"


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class SystemStatus(str, Enum):
    OK = "ok"
    MAINTENANCE = "maintenance"
    CANCEL_ONLY = "cancel_only"


class OptionType(str, Enum):
    CALL = "CALL"
    PUT = "PUT"


class KlineResolution(int, Enum):
    """Candle width in minutes"""
    MIN_1 = 1
    MIN_3 = 3
    MIN_5 = 5
    MIN_15 = 15
    MIN_30 = 30
    HOUR_1 = 60


class KlinePriceKind(str, Enum):
    LAST = "last"
    MARK = "mark"
    UNDERLYING = "underlying"


# ============================================
# Envelopes
# ============================================

class ResultsContainer(ParadexModel, Generic[T]):
    results: T


class CursorResult(ParadexModel, Generic[T]):
    """One page of a cursor paginated endpoint (/v1/fills, /v1/funding/payments)"""
    next: Optional[str] = None
    prev: Optional[str] = None
    results: List[T]


class RestErrorBody(ParadexModel):
    """Body of a non-2xx response, e.g. {"message": "rate limit exceeded"}"""
    error: Optional[str] = None
    message: str


# ============================================
# System Schemas
# ============================================

class BridgedToken(ParadexModel):
    decimals: int
    l1_bridge_address: str
    l1_token_address: str
    l2_bridge_address: str
    l2_token_address: str
    name: str
    symbol: str


class SystemConfig(ParadexModel):
    """
    Exchange deployment parameters from GET /v1/system/config.

    The client needs three of these to sign on behalf of an account:
    starknet_chain_id (short string encoded to the chain id felt),
    paraclear_account_proxy_hash and paraclear_account_hash (account
    address derivation).
    """

    block_explorer_url: str
    bridged_tokens: List[BridgedToken] = Field(default_factory=list)
    environment: str
    l1_chain_id: str
    l1_core_contract_address: str
    l1_operator_address: str
    liquidation_fee: float
    oracle_address: str
    paraclear_account_hash: str
    paraclear_account_proxy_hash: str
    paraclear_address: str
    paraclear_decimals: int
    partial_liquidation_buffer: float
    partial_liquidation_share_increment: float
    starknet_chain_id: str
    starknet_fullnode_rpc_url: str
    starknet_gateway_url: str
    universal_deployer_address: str

    @field_validator(
        "liquidation_fee", "partial_liquidation_buffer", "partial_liquidation_share_increment",
        mode="before"
    )
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)


class SystemState(ParadexModel):
    status: SystemStatus


class SystemTime(ParadexModel):
    """Server time in milliseconds (sent as a string)"""
    server_time: int


class JWTToken(ParadexModel):
    jwt_token: str


# ============================================
# Market Data Schemas
# ============================================

class Delta1CrossMarginParams(ParadexModel):
    imf_base: float
    imf_factor: float
    imf_shift: float
    mmf_factor: float

    @field_validator("imf_base", "imf_factor", "imf_shift", "mmf_factor", mode="before")
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)


class MarketSummaryStatic(ParadexModel):
    """Static market definition from GET /v1/markets"""

    asset_kind: str
    base_currency: str
    clamp_rate: float
    delta1_cross_margin_params: Optional[Delta1CrossMarginParams] = None
    expiry_at: int
    funding_period_hours: int
    interest_rate: float
    iv_bands_width: Optional[float] = None
    market_kind: str
    max_funding_rate: float
    max_funding_rate_change: float
    max_open_orders: int
    max_order_size: float
    max_tob_spread: float
    min_notional: float
    option_type: Optional[OptionType] = None
    oracle_ewma_factor: float
    order_size_increment: float
    position_limit: float
    price_bands_width: float
    price_feed_id: str
    price_tick_size: float
    quote_currency: str
    settlement_currency: str
    strike_price: Optional[float] = None
    symbol: str
    tags: List[str] = Field(default_factory=list)

    @field_validator(
        "clamp_rate", "interest_rate", "max_funding_rate", "max_funding_rate_change",
        "max_order_size", "max_tob_spread", "min_notional", "oracle_ewma_factor",
        "order_size_increment", "position_limit", "price_bands_width", "price_tick_size",
        mode="before"
    )
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)

    @field_validator("iv_bands_width", "strike_price", mode="before")
    @classmethod
    def parse_optional_decimal_strings(cls, v):
        return str_to_optional_float(v)


class MarketSummary(ParadexModel):
    """
    Live market statistics (GET /v1/markets/summary and the markets_summary channel).

    Option-only fields (bid_iv, ask_iv, last_iv, delta) and volume_24 are
    None when absent or empty.
    """

    symbol: str
    mark_price: float
    last_traded_price: float
    bid: float
    ask: float
    volume_24: Optional[float] = None
    total_volume: float
    created_at: int
    underlying_price: float
    open_interest: float
    funding_rate: float
    price_change_rate_24h: float
    bid_iv: Optional[float] = None
    ask_iv: Optional[float] = None
    last_iv: Optional[float] = None
    delta: Optional[float] = None

    @field_validator(
        "mark_price", "last_traded_price", "bid", "ask", "total_volume", "underlying_price",
        "open_interest", "funding_rate", "price_change_rate_24h",
        mode="before"
    )
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)

    @field_validator("volume_24", "bid_iv", "ask_iv", "last_iv", "delta", mode="before")
    @classmethod
    def parse_optional_decimal_strings(cls, v):
        return str_to_optional_float(v)


class BBO(ParadexModel):
    """Best bid and offer"""

    bid: float
    bid_size: float
    ask: float
    ask_size: float
    market: str
    last_updated_at: int

    @field_validator("bid", "bid_size", "ask", "ask_size", mode="before")
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)


class Trade(ParadexModel):
    created_at: int
    id: str
    market: str
    price: float
    side: Side
    size: float
    trade_type: TradeType

    @field_validator("price", "size", mode="before")
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)


class Level(ParadexModel):
    side: Side
    price: float
    size: float

    @field_validator("price", "size", mode="before")
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)


class OrderBook(ParadexModel):
    """
    Order book update from the order_book channels.

    update_type is SNAPSHOT for a full book and DELTA for incremental
    changes; levels are grouped into inserts, updates and deletes.
    """

    seq_no: int
    market: str
    last_updated_at: int
    update_type: OrderBookUpdateType
    deletes: List[Level] = Field(default_factory=list)
    inserts: List[Level] = Field(default_factory=list)
    updates: List[Level] = Field(default_factory=list)


class OrderBookResponse(ParadexModel):
    """REST order book snapshot; levels are [price, size] string pairs"""

    asks: List[Tuple[str, str]]
    bids: List[Tuple[str, str]]
    last_updated_at: int
    market: str
    seq_no: int


class OrderBookParams(ParadexModel):
    """Query parameters for GET /v1/orderbook/{market}"""

    depth: Optional[int] = None
    price_tick: Optional[str] = None

    def to_params(self) -> Dict[str, str]:
        params = {}
        if self.depth is not None:
            params["depth"] = str(self.depth)
        if self.price_tick is not None:
            params["price_tick"] = self.price_tick
        return params


class KlineParams(ParadexModel):
    """
    Query parameters for GET /v1/markets/klines.

    Attributes:
        start_at: Start time in milliseconds since epoch
        end_at: End time in milliseconds since epoch
        symbol: Market symbol (e.g. "BTC-USD-PERP")
        resolution: Candle width
        price_kind: Price series (last, mark, underlying); server default when None
    """

    start_at: int
    end_at: int
    symbol: str
    resolution: KlineResolution
    price_kind: Optional[KlinePriceKind] = None

    def to_params(self) -> Dict[str, str]:
        params = {
            "start_at": str(self.start_at),
            "end_at": str(self.end_at),
            "symbol": self.symbol,
            "resolution": str(self.resolution.value),
        }
        if self.price_kind is not None:
            params["price_kind"] = self.price_kind.value
        return params


class Kline(ParadexModel):
    """Candle, sent on the wire as [timestamp_ms, open, high, low, close, volume]"""

    timestamp_ms: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @model_validator(mode="before")
    @classmethod
    def from_tuple(cls, data):
        if isinstance(data, (list, tuple)):
            keys = ["timestamp_ms", "open", "high", "low", "close", "volume"]
            if len(data) != len(keys):
                raise ValueError(f"Kline expects {len(keys)} elements, got {len(data)}")
            return dict(zip(keys, data))
        return data


class FundingData(ParadexModel):
    market: str
    funding_index: float
    funding_premium: float
    funding_rate: float
    created_at: int

    @field_validator("funding_index", "funding_premium", "funding_rate", mode="before")
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)


# ============================================
# Order Schemas
# ============================================

class OrderRequest(ParadexModel):
    """
    Unsigned order as built by the caller.

    Example:
        >>> OrderRequest(
        ...     instruction=OrderInstruction.GTC,
        ...     market="BTC-USD-PERP",
        ...     price=Decimal("100000"),
        ...     side=Side.BUY,
        ...     size=Decimal("0.001"),
        ...     order_type=OrderType.LIMIT,
        ... )
    """

    instruction: OrderInstruction
    market: str
    price: Optional[Decimal] = None
    side: Side
    size: Decimal
    order_type: OrderType = Field(alias="type")
    client_id: Optional[str] = None
    flags: List[OrderFlag] = Field(default_factory=list)
    recv_window: Optional[int] = None
    stp: Optional[STPType] = None
    trigger_price: Optional[Decimal] = None

    def into_order(self, signature: Tuple[int, int], signature_timestamp: int) -> "Order":
        """Attach a signature and its millisecond timestamp"""
        return Order(
            **self.model_dump(),
            signature=signature,
            signature_timestamp=signature_timestamp,
        )


class Order(OrderRequest):
    """Signed order body for POST /v1/orders"""

    signature: Tuple[int, int]
    signature_timestamp: int

    @field_serializer("signature")
    def serialize_signature(self, signature: Tuple[int, int]) -> str:
        return format_signature(signature)


class ModifyOrderRequest(ParadexModel):
    """Unsigned modification of an open order (id is the exchange order id)"""

    id: str
    market: str
    price: Optional[Decimal] = None
    side: Side
    size: Decimal
    order_type: OrderType = Field(alias="type")

    def into_modify_order(self, signature: Tuple[int, int], signature_timestamp: int) -> "ModifyOrder":
        return ModifyOrder(
            **self.model_dump(),
            signature=signature,
            signature_timestamp=signature_timestamp,
        )


class ModifyOrder(ModifyOrderRequest):
    """Signed body for PUT /v1/orders/{id}"""

    signature: Tuple[int, int]
    signature_timestamp: int

    @field_serializer("signature")
    def serialize_signature(self, signature: Tuple[int, int]) -> str:
        return format_signature(signature)


class OrderUpdate(ParadexModel):
    """Order state as returned by the order endpoints and the orders channel"""

    account: str
    cancel_reason: str = ""
    client_id: str = ""
    created_at: int
    id: str
    instruction: OrderInstruction
    last_updated_at: int
    market: str
    price: Optional[Decimal] = None
    remaining_size: Decimal
    side: Side
    size: Decimal
    status: OrderStatus
    timestamp: int
    order_type: OrderType = Field(alias="type")
    seq_no: int
    avg_fill_price: float
    received_at: int
    published_at: int
    flags: List[OrderFlag] = Field(default_factory=list)
    trigger_price: Optional[Decimal] = None

    @field_validator("price", "trigger_price", mode="before")
    @classmethod
    def parse_optional_decimals(cls, v):
        return empty_to_none(v)

    @field_validator("avg_fill_price", mode="before")
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)


class OrderUpdates(ParadexModel):
    results: List[OrderUpdate]


# ============================================
# Account Schemas
# ============================================

class Fill(ParadexModel):
    client_id: str = ""
    created_at: int
    fee: float
    fee_currency: str
    id: str
    liquidity: FillLiquidity
    market: str
    order_id: str
    price: float
    side: Side
    size: float
    remaining_size: float
    fill_type: FillType
    realized_pnl: float

    @field_validator("fee", "price", "size", "remaining_size", "realized_pnl", mode="before")
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)


class FundingPayment(ParadexModel):
    id: str
    market: str
    payment: float
    index: float
    fill_id: str
    created_at: int

    @field_validator("payment", "index", mode="before")
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)


class AccountInformation(ParadexModel):
    account: str
    account_value: float
    free_collateral: float
    initial_margin_requirement: float
    maintenance_margin_requirement: float
    margin_cushion: float
    seq_no: int
    settlement_asset: str
    status: AccountStatus
    total_collateral: float
    updated_at: int

    @field_validator(
        "account_value", "free_collateral", "initial_margin_requirement",
        "maintenance_margin_requirement", "margin_cushion", "total_collateral",
        mode="before"
    )
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)


class BalanceEvent(ParadexModel):
    fill_id: str
    market: str
    status: str
    settlement_asset_balance_before: float
    settlement_asset_balance_after: float
    settlement_asset_price: float
    funding_index: float
    realized_pnl: float
    fees: float
    realized_funding: float
    created_at: int

    @field_validator(
        "settlement_asset_balance_before", "settlement_asset_balance_after",
        "settlement_asset_price", "funding_index", "realized_pnl", "fees", "realized_funding",
        mode="before"
    )
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)


class Balance(ParadexModel):
    token: str
    size: float
    last_updated_at: int

    @field_validator("size", mode="before")
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)


class Balances(ParadexModel):
    results: List[Balance]


class Position(ParadexModel):
    average_entry_price: float
    average_entry_price_usd: float
    cached_funding_index: float
    cost: float
    cost_usd: float
    id: str
    last_fill_id: str
    last_updated_at: int
    leverage: str
    liquidation_price: float
    market: str
    seq_no: int
    side: PositionSide
    size: float
    status: PositionStatus
    unrealized_funding_pnl: float
    unrealized_pnl: float

    @field_validator(
        "average_entry_price", "average_entry_price_usd", "cached_funding_index", "cost",
        "cost_usd", "liquidation_price", "size", "unrealized_funding_pnl", "unrealized_pnl",
        mode="before"
    )
    @classmethod
    def parse_decimal_strings(cls, v):
        return str_to_float(v)


class Positions(ParadexModel):
    results: List[Position]
