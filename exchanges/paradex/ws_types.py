"""
Paradex WebSocket Channel and Message Types

Channels describe a subscription topic and know their wire name and how to
decode a notification payload. Messages are what subscriber callbacks receive:
either a control event (Connected, Disconnected, Unsubscribed, ErrorMessage)
or a decoded payload wrapped in a channel specific message (BboMessage, ...).

Wire names:
    markets_summary
    bbo.<market>
    trades.<market>
    order_book.<market>.snapshot@15@<refresh_rate>[@<price_tick>]
    order_book.<market>.deltas
    funding_data.<market|ALL>
    orders.<market|ALL>
    fills.<market|ALL>
    funding_payments.<market|ALL>
    positions
    account
    balance_events

Two channels are equal when they produce the same wire name, so e.g.
OrderBookChannel("BTC-USD-PERP") and
OrderBookChannel("BTC-USD-PERP", feed="snapshot") share one subscription.

JSON-RPC frames:
    request:      {"jsonrpc": "2.0", "id": 3, "method": "subscribe", "params": {"channel": "bbo.BTC-USD-PERP"}}
    response:     {"jsonrpc": "2.0", "id": 3, "result": {"channel": "bbo.BTC-USD-PERP"}}
    notification: {"jsonrpc": "2.0", "method": "subscription", "params": {"channel": "...", "data": {...}}}
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from core.errors import JsonParseError, ParadexError
from core.schemas import (
    BBO,
    AccountInformation,
    BalanceEvent,
    Fill,
    FundingData,
    FundingPayment,
    MarketSummary,
    OrderBook,
    OrderUpdate,
    Position,
    Trade,
)


ALL_MARKETS = "ALL"


# ============================================
# Identifier
# ============================================

@dataclass(frozen=True)
class Identifier:
    """Opaque handle returned by WebsocketManager.subscribe()"""
    value: int


# ============================================
# Messages
# ============================================

class Message:
    """Base class of every event delivered to a subscription callback"""


@dataclass(frozen=True)
class Connected(Message):
    """The server confirmed the subscription"""


@dataclass(frozen=True)
class Disconnected(Message):
    """The socket dropped; the subscription will be restored on reconnect"""


@dataclass(frozen=True)
class Unsubscribed(Message):
    """This callback was removed; no further events follow"""


@dataclass(frozen=True)
class ErrorMessage(Message):
    """A notification on this channel could not be decoded"""
    error: ParadexError


@dataclass(frozen=True)
class DataMessage(Message):
    """Base class of decoded payload messages"""
    data: Any


@dataclass(frozen=True)
class MarketSummaryMessage(DataMessage):
    data: MarketSummary


@dataclass(frozen=True)
class BboMessage(DataMessage):
    data: BBO


@dataclass(frozen=True)
class TradesMessage(DataMessage):
    data: Trade


@dataclass(frozen=True)
class OrderBookMessage(DataMessage):
    data: OrderBook


@dataclass(frozen=True)
class OrderBookDeltasMessage(DataMessage):
    data: OrderBook


@dataclass(frozen=True)
class FundingDataMessage(DataMessage):
    data: FundingData


@dataclass(frozen=True)
class OrdersMessage(DataMessage):
    data: OrderUpdate


@dataclass(frozen=True)
class FillsMessage(DataMessage):
    data: Fill


@dataclass(frozen=True)
class PositionMessage(DataMessage):
    data: Position


@dataclass(frozen=True)
class AccountMessage(DataMessage):
    data: AccountInformation


@dataclass(frozen=True)
class BalanceEventMessage(DataMessage):
    data: BalanceEvent


@dataclass(frozen=True)
class FundingPaymentsMessage(DataMessage):
    data: FundingPayment


CONTROL_MESSAGES = (Connected, Disconnected, Unsubscribed, ErrorMessage)


# ============================================
# Channels
# ============================================

class Channel(ABC):
    """
    Subscription topic.

    Subclasses set ``payload_model`` (pydantic model of the notification data)
    and ``message_type`` (DataMessage subclass wrapping it) and implement
    channel_name().
    """

    payload_model: ClassVar[Type[BaseModel]]
    message_type: ClassVar[Type[DataMessage]]

    @abstractmethod
    def channel_name(self) -> str:
        """Wire name used in subscribe requests and notifications"""

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Channel):
            return NotImplemented
        return self.channel_name() == other.channel_name()

    def __hash__(self) -> int:
        return hash(self.channel_name())

    def to_message(self, params: Dict[str, Any]) -> Message:
        """
        Decode the params object of a notification on this channel.

        Returns:
            The channel's DataMessage, or ErrorMessage(JsonParseError) when the
            data attribute is missing or does not match the payload model
        """
        if "data" not in params:
            return ErrorMessage(JsonParseError(f"Notification missing data attribute {params!r}"))
        try:
            payload = self.payload_model.model_validate(params["data"])
        except ValidationError as e:
            return ErrorMessage(JsonParseError(str(e)))
        return self.message_type(payload)


def _market_or_all(market_symbol: Optional[str]) -> str:
    return market_symbol if market_symbol is not None else ALL_MARKETS


# Public channels

@dataclass(frozen=True, eq=False)
class MarketSummaryChannel(Channel):
    payload_model: ClassVar[Type[BaseModel]] = MarketSummary
    message_type: ClassVar[Type[DataMessage]] = MarketSummaryMessage

    def channel_name(self) -> str:
        return "markets_summary"


@dataclass(frozen=True, eq=False)
class BboChannel(Channel):
    market_symbol: str
    payload_model: ClassVar[Type[BaseModel]] = BBO
    message_type: ClassVar[Type[DataMessage]] = BboMessage

    def channel_name(self) -> str:
        return f"bbo.{self.market_symbol}"


@dataclass(frozen=True, eq=False)
class TradesChannel(Channel):
    market_symbol: str
    payload_model: ClassVar[Type[BaseModel]] = Trade
    message_type: ClassVar[Type[DataMessage]] = TradesMessage

    def channel_name(self) -> str:
        return f"trades.{self.market_symbol}"


@dataclass(frozen=True, eq=False)
class OrderBookChannel(Channel):
    """
    Order book snapshots.

    Attributes:
        market_symbol: Market (e.g. "BTC-USD-PERP")
        refresh_rate: Server push interval (e.g. "50ms", "100ms")
        price_tick: Optional price aggregation tick
        feed: Feed name, "snapshot" when None
    """

    market_symbol: str
    refresh_rate: str = "50ms"
    price_tick: Optional[str] = None
    feed: Optional[str] = None
    payload_model: ClassVar[Type[BaseModel]] = OrderBook
    message_type: ClassVar[Type[DataMessage]] = OrderBookMessage

    def channel_name(self) -> str:
        feed = self.feed if self.feed is not None else "snapshot"
        tick = f"@{self.price_tick}" if self.price_tick is not None else ""
        return f"order_book.{self.market_symbol}.{feed}@15@{self.refresh_rate}{tick}"


@dataclass(frozen=True, eq=False)
class OrderBookDeltasChannel(Channel):
    market_symbol: str
    payload_model: ClassVar[Type[BaseModel]] = OrderBook
    message_type: ClassVar[Type[DataMessage]] = OrderBookDeltasMessage

    def channel_name(self) -> str:
        return f"order_book.{self.market_symbol}.deltas"


@dataclass(frozen=True, eq=False)
class FundingDataChannel(Channel):
    market_symbol: Optional[str] = None
    payload_model: ClassVar[Type[BaseModel]] = FundingData
    message_type: ClassVar[Type[DataMessage]] = FundingDataMessage

    def channel_name(self) -> str:
        return f"funding_data.{_market_or_all(self.market_symbol)}"


# Private channels

@dataclass(frozen=True, eq=False)
class OrdersChannel(Channel):
    market_symbol: Optional[str] = None
    payload_model: ClassVar[Type[BaseModel]] = OrderUpdate
    message_type: ClassVar[Type[DataMessage]] = OrdersMessage

    def channel_name(self) -> str:
        return f"orders.{_market_or_all(self.market_symbol)}"


@dataclass(frozen=True, eq=False)
class FillsChannel(Channel):
    market_symbol: Optional[str] = None
    payload_model: ClassVar[Type[BaseModel]] = Fill
    message_type: ClassVar[Type[DataMessage]] = FillsMessage

    def channel_name(self) -> str:
        return f"fills.{_market_or_all(self.market_symbol)}"


@dataclass(frozen=True, eq=False)
class PositionChannel(Channel):
    payload_model: ClassVar[Type[BaseModel]] = Position
    message_type: ClassVar[Type[DataMessage]] = PositionMessage

    def channel_name(self) -> str:
        return "positions"


@dataclass(frozen=True, eq=False)
class AccountChannel(Channel):
    payload_model: ClassVar[Type[BaseModel]] = AccountInformation
    message_type: ClassVar[Type[DataMessage]] = AccountMessage

    def channel_name(self) -> str:
        return "account"


@dataclass(frozen=True, eq=False)
class BalanceEventsChannel(Channel):
    payload_model: ClassVar[Type[BaseModel]] = BalanceEvent
    message_type: ClassVar[Type[DataMessage]] = BalanceEventMessage

    def channel_name(self) -> str:
        return "balance_events"


@dataclass(frozen=True, eq=False)
class FundingPaymentsChannel(Channel):
    market_symbol: Optional[str] = None
    payload_model: ClassVar[Type[BaseModel]] = FundingPayment
    message_type: ClassVar[Type[DataMessage]] = FundingPaymentsMessage

    def channel_name(self) -> str:
        return f"funding_payments.{_market_or_all(self.market_symbol)}"


AnyChannel = Union[
    MarketSummaryChannel,
    BboChannel,
    TradesChannel,
    OrderBookChannel,
    OrderBookDeltasChannel,
    FundingDataChannel,
    OrdersChannel,
    FillsChannel,
    PositionChannel,
    AccountChannel,
    BalanceEventsChannel,
    FundingPaymentsChannel,
]


# ============================================
# JSON-RPC Frames
# ============================================

def jsonrpc_request(method: str, request_id: int, params: Dict[str, Any]) -> str:
    """Serialize a JSON-RPC 2.0 request frame"""
    return json.dumps({
        "jsonrpc": "2.0",
        "id": request_id,
        "method": method,
        "params": params,
    })


def channel_request(method: str, channel_name: str, identifier: Identifier) -> str:
    """subscribe / unsubscribe request for a wire channel"""
    return jsonrpc_request(method, identifier.value, {"channel": channel_name})


def auth_request(bearer: str) -> str:
    """auth request sent right after connecting a private session"""
    return jsonrpc_request("auth", 0, {"bearer": bearer})
