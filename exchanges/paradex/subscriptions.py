"""
Typed Subscriptions

Descriptors that pair a channel with its payload type, so callbacks receive
the decoded model directly instead of matching on message classes.

A typed callback receives one of:
    Connected(), Disconnected(), Unsubscribed(), ErrorMessage(error)
    Data(payload)   payload is the descriptor's model (BBO, OrderBook, Fill, ...)

Usage:
    def on_bbo(event):
        if isinstance(event, Data):
            print(event.payload.bid, event.payload.ask)

    await manager.subscribe_typed(BboSubscription("BTC-USD-PERP"), on_bbo)
    await manager.subscribe_typed(FillsSubscription.all(), on_fill)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Optional, Type, Union

from exchanges.paradex.ws_types import (
    CONTROL_MESSAGES,
    AccountChannel,
    AccountMessage,
    BalanceEventMessage,
    BalanceEventsChannel,
    BboChannel,
    BboMessage,
    Channel,
    Connected,
    DataMessage,
    Disconnected,
    ErrorMessage,
    FillsChannel,
    FillsMessage,
    FundingDataChannel,
    FundingDataMessage,
    FundingPaymentsChannel,
    FundingPaymentsMessage,
    MarketSummaryChannel,
    MarketSummaryMessage,
    Message,
    OrderBookChannel,
    OrderBookDeltasChannel,
    OrderBookDeltasMessage,
    OrderBookMessage,
    OrdersChannel,
    OrdersMessage,
    PositionChannel,
    PositionMessage,
    TradesChannel,
    TradesMessage,
    Unsubscribed,
)


@dataclass(frozen=True)
class Data:
    """Decoded payload delivered to a typed callback"""
    payload: Any


ChannelEvent = Union[Connected, Disconnected, Unsubscribed, ErrorMessage, Data]


class SubscriptionSpec(ABC):
    """
    Typed subscription descriptor.

    Subclasses set ``message_type`` to the DataMessage class carrying their
    payload and build their channel in to_channel().
    """

    message_type: ClassVar[Type[DataMessage]]

    @abstractmethod
    def to_channel(self) -> Channel:
        """Channel to subscribe to"""

    @classmethod
    def extract(cls, message: Message) -> Optional[Any]:
        """Payload of ``message`` if it belongs to this descriptor, else None"""
        if isinstance(message, cls.message_type):
            return message.data
        return None


def typed_callback(spec: SubscriptionSpec, callback: Callable[[ChannelEvent], None]) -> Callable[[Message], None]:
    """
    Adapt a typed callback to the raw Message callback interface.

    Control messages are always forwarded; data messages are forwarded as
    Data(payload) when they match the descriptor and dropped otherwise.
    """
    def handle(message: Message) -> None:
        if isinstance(message, CONTROL_MESSAGES):
            callback(message)
            return
        payload = spec.extract(message)
        if payload is not None:
            callback(Data(payload))

    return handle


# ============================================
# Public Channels
# ============================================

@dataclass(frozen=True)
class MarketSummarySubscription(SubscriptionSpec):
    message_type: ClassVar[Type[DataMessage]] = MarketSummaryMessage

    def to_channel(self) -> Channel:
        return MarketSummaryChannel()


@dataclass(frozen=True)
class BboSubscription(SubscriptionSpec):
    market_symbol: str
    message_type: ClassVar[Type[DataMessage]] = BboMessage

    def to_channel(self) -> Channel:
        return BboChannel(self.market_symbol)


@dataclass(frozen=True)
class TradesSubscription(SubscriptionSpec):
    market_symbol: str
    message_type: ClassVar[Type[DataMessage]] = TradesMessage

    def to_channel(self) -> Channel:
        return TradesChannel(self.market_symbol)


@dataclass(frozen=True)
class OrderBookSubscription(SubscriptionSpec):
    """Order book snapshots, 50ms refresh and no price aggregation by default"""

    market_symbol: str
    refresh_rate: str = "50ms"
    price_tick: Optional[str] = None
    feed: Optional[str] = None
    message_type: ClassVar[Type[DataMessage]] = OrderBookMessage

    def to_channel(self) -> Channel:
        return OrderBookChannel(
            self.market_symbol,
            refresh_rate=self.refresh_rate,
            price_tick=self.price_tick,
            feed=self.feed,
        )


@dataclass(frozen=True)
class OrderBookDeltasSubscription(SubscriptionSpec):
    market_symbol: str
    message_type: ClassVar[Type[DataMessage]] = OrderBookDeltasMessage

    def to_channel(self) -> Channel:
        return OrderBookDeltasChannel(self.market_symbol)


class _MarketOrAll:
    """Constructors shared by channels that accept a market or ALL"""

    @classmethod
    def all(cls):
        return cls(None)

    @classmethod
    def market(cls, symbol: str):
        return cls(symbol)


@dataclass(frozen=True)
class FundingDataSubscription(_MarketOrAll, SubscriptionSpec):
    market_symbol: Optional[str] = None
    message_type: ClassVar[Type[DataMessage]] = FundingDataMessage

    def to_channel(self) -> Channel:
        return FundingDataChannel(self.market_symbol)


# ============================================
# Private Channels
# ============================================

@dataclass(frozen=True)
class OrdersSubscription(_MarketOrAll, SubscriptionSpec):
    market_symbol: Optional[str] = None
    message_type: ClassVar[Type[DataMessage]] = OrdersMessage

    def to_channel(self) -> Channel:
        return OrdersChannel(self.market_symbol)


@dataclass(frozen=True)
class FillsSubscription(_MarketOrAll, SubscriptionSpec):
    market_symbol: Optional[str] = None
    message_type: ClassVar[Type[DataMessage]] = FillsMessage

    def to_channel(self) -> Channel:
        return FillsChannel(self.market_symbol)


@dataclass(frozen=True)
class FundingPaymentsSubscription(_MarketOrAll, SubscriptionSpec):
    market_symbol: Optional[str] = None
    message_type: ClassVar[Type[DataMessage]] = FundingPaymentsMessage

    def to_channel(self) -> Channel:
        return FundingPaymentsChannel(self.market_symbol)


@dataclass(frozen=True)
class PositionSubscription(SubscriptionSpec):
    message_type: ClassVar[Type[DataMessage]] = PositionMessage

    def to_channel(self) -> Channel:
        return PositionChannel()


@dataclass(frozen=True)
class AccountSubscription(SubscriptionSpec):
    message_type: ClassVar[Type[DataMessage]] = AccountMessage

    def to_channel(self) -> Channel:
        return AccountChannel()


@dataclass(frozen=True)
class BalanceEventsSubscription(SubscriptionSpec):
    message_type: ClassVar[Type[DataMessage]] = BalanceEventMessage

    def to_channel(self) -> Channel:
        return BalanceEventsChannel()
