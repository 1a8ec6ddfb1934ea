"""
Paradex REST API Client

This module provides an async HTTP client for the Paradex REST API.
It handles:
- Public market data endpoints
- JWT authentication for private endpoints (signed POST /v1/auth)
- Order signing for order creation and modification
- Cursor pagination for fills and funding payments
- Mapping of HTTP failures onto the client's exception hierarchy

API Documentation:
    https://docs.paradex.trade/api-reference

Requests are not retried; every failure is raised to the caller.

Usage:
    async with ParadexAPIClient(Environment.TESTNET, private_key="0x...") as client:
        markets = await client.markets()
        update = await client.create_order(order_request)
"""

import asyncio
import json
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

import aiohttp
from pydantic import TypeAdapter, ValidationError

from core.config import settings
from core.errors import (
    DeserializationError,
    HTTPStatusError,
    MissingPrivateKeyError,
    ParadexAPIError,
    RestEmptyResponseError,
    RestError,
)
from core.logging import get_logger, log_api_request, log_api_response
from core.schemas import (
    BBO,
    AccountInformation,
    Balance,
    Balances,
    CursorResult,
    Fill,
    FundingPayment,
    JWTToken,
    Kline,
    KlineParams,
    MarketSummary,
    MarketSummaryStatic,
    ModifyOrderRequest,
    OrderBookParams,
    OrderBookResponse,
    OrderRequest,
    OrderUpdate,
    OrderUpdates,
    Position,
    Positions,
    RestErrorBody,
    ResultsContainer,
    SystemConfig,
    SystemState,
    SystemTime,
)
from core.utils.time import current_utc_timestamp, datetime_to_timestamp
from exchanges.paradex.signing import (
    MessageSigner,
    account_address,
    encode_short_string,
    parse_felt,
    parse_private_key,
    public_key_from_private,
)
from exchanges.paradex.urls import Environment


PAGE_SIZE = 5000


class ParadexAPIClient:
    """
    Async HTTP client for the Paradex REST API

    Without a private key only the public endpoints are usable. With one,
    initialize() derives the account address and chain id from the system
    config and private endpoints authenticate with a cached JWT.

    Attributes:
        base_url: REST base URL of the selected environment
        session: aiohttp ClientSession for HTTP requests
        signer: MessageSigner used for auth and order signatures
        logger: Logger instance for debugging

    Example:
        >>> async with ParadexAPIClient(Environment.TESTNET) as client:
        ...     bbo = await client.bbo("BTC-USD-PERP")
        ...     print(bbo.bid, bbo.ask)
    """

    def __init__(
        self,
        url: Union[Environment, str, None] = None,
        private_key: Optional[str] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        signer: Optional[MessageSigner] = None
    ):
        """
        Initialize the Paradex API client.

        Args:
            url: Environment or REST base URL (defaults to the configured environment)
            private_key: Hex encoded STARK private key (defaults to PARADEX_PRIVATE_KEY)
            session: Existing aiohttp session; one is created and owned otherwise
            signer: MessageSigner to use (a new one per client by default)
        """
        if url is None:
            url = settings.environment_url
        self.base_url = url.rest if isinstance(url, Environment) else url.rstrip("/")

        self.logger = get_logger(__name__)
        self.session = session
        self._owns_session = session is None
        self.signer = signer or MessageSigner()
        self.jwt_refresh_interval = settings.jwt_refresh_interval

        if private_key is None:
            private_key = settings.paradex_private_key
        self._private_key: Optional[int] = parse_private_key(private_key) if private_key else None
        self._public_key: Optional[int] = None
        self._account: Optional[int] = None
        self._chain_id: Optional[int] = None

        self._jwt_lock = asyncio.Lock()
        self._jwt_token = ""
        self._jwt_timestamp = 0

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def initialize(self) -> None:
        """
        Create the HTTP session and, for private clients, resolve the account.

        Raises:
            ParadexError: If the system config cannot be fetched or parsed
        """
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=settings.request_timeout)
            )
            self._owns_session = True
            self.logger.debug("ParadexAPIClient session created")

        if self._private_key is None:
            return

        config = await self.system_config()
        self._public_key = public_key_from_private(self._private_key)
        self._account = account_address(
            self._public_key,
            parse_felt(config.paraclear_account_proxy_hash),
            parse_felt(config.paraclear_account_hash),
        )
        self._chain_id = encode_short_string(config.starknet_chain_id)
        self.logger.info(f"Paradex account {hex(self._account)} on {config.starknet_chain_id}")

    async def close(self) -> None:
        if self.session and self._owns_session:
            await self.session.close()
            self.logger.debug("ParadexAPIClient session closed")
        self.session = None

    # ============================================
    # Account Properties
    # ============================================

    @property
    def is_private(self) -> bool:
        return self._private_key is not None

    @property
    def account_address(self) -> Optional[int]:
        """Account contract address, known after initialize()"""
        return self._account

    @property
    def public_key(self) -> Optional[int]:
        return self._public_key

    def _require_private(self) -> Tuple[int, int, int]:
        """(chain_id, private_key, account) or MissingPrivateKeyError"""
        if self._private_key is None:
            raise MissingPrivateKeyError()
        if self._account is None or self._chain_id is None:
            raise RuntimeError("Private client not initialized. Use 'async with' statement.")
        return self._chain_id, self._private_key, self._account

    # ============================================
    # HTTP Request Handler
    # ============================================

    async def _request(
        self,
        method: str,
        path: str,
        response_type: Any = None,
        *,
        params: Optional[Dict[str, str]] = None,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Any:
        """
        Send one request and decode the response.

        Args:
            method: HTTP method
            path: Path below the base URL (e.g. "/v1/markets")
            response_type: Type the JSON body is validated into; raw JSON when None
            params: Query string parameters
            body: JSON body (sent only when not None)
            headers: Extra headers

        Returns:
            Validated response

        Raises:
            RestError: Transport failure
            RestEmptyResponseError: 2xx response without a body
            DeserializationError: Body is not valid JSON or does not match response_type
            ParadexAPIError: Non-2xx response with an error body
            HTTPStatusError: Non-2xx response without a body
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        url = f"{self.base_url}{path}"
        # Build request
        request_headers = {"Accept": "application/json"}
        if headers:
            request_headers.update(headers)

        # Make request with timing
        log_api_request(method, path, params)
        started = time.monotonic()
        try:
            async with self.session.request(
                method,
                url,
                params=params,
                json=body,
                headers=request_headers
            ) as resp:
                status = resp.status
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"{method} {path} failed: {e!r}")
            raise RestError(f"{method} {path} failed: {e!r}") from e
        log_api_response(method, path, status, time.monotonic() - started)

        # Status and body decide between a value and one of the REST errors
        return self._decode_response(status, text, response_type)

    @staticmethod
    def _decode_response(status: int, text: str, response_type: Any) -> Any:
        if 200 <= status < 300:
            if not text:
                raise RestEmptyResponseError()
            try:
                data = json.loads(text)
            except ValueError as e:
                raise DeserializationError(f"Text: {text} Error: {e}") from e
            if response_type is None:
                return data
            try:
                return TypeAdapter(response_type).validate_python(data)
            except ValidationError as e:
                raise DeserializationError(f"Text: {text} Error: {e}") from e

        if not text:
            raise HTTPStatusError(status)
        try:
            error = RestErrorBody.model_validate_json(text)
        except ValidationError as e:
            raise DeserializationError(f"Text: {text} Error: {e}") from e
        raise ParadexAPIError(status, error.error, error.message)

    async def _request_auth(self, method: str, path: str, response_type: Any = None, **kwargs) -> Any:
        """Same as _request with the Bearer token attached"""
        token = await self.jwt()
        headers = {"Authorization": f"Bearer {token}"}
        return await self._request(method, path, response_type, headers=headers, **kwargs)

    # ============================================
    # JWT Management
    # ============================================

    def _jwt_expired(self) -> bool:
        return current_utc_timestamp() - self._jwt_timestamp > self.jwt_refresh_interval

    async def jwt(self) -> str:
        """
        Current bearer token, refreshed when older than jwt_refresh_interval.

        Raises:
            MissingPrivateKeyError: If the client has no private key
        """
        if self._jwt_expired():
            await self.refresh_jwt()
        return self._jwt_token

    async def refresh_jwt(self, force: bool = False) -> None:
        """
        Sign the auth headers and exchange them for a new JWT.

        Concurrent callers wait on the lock; the expiry is checked again once
        it is held so only one refresh goes out.

        Args:
            force: Refresh even if the cached token is still fresh
        """
        async with self._jwt_lock:
            # Another caller may have refreshed while we waited on the lock
            if not (force or self._jwt_expired()):
                return
            chain_id, private_key, account = self._require_private()
            # Sign PARADEX-* headers, then trade them for a token
            timestamp, headers = self.signer.auth_headers(chain_id, private_key, account)
            token = await self._request("POST", "/v1/auth", JWTToken, body="", headers=headers)
            self._jwt_token = token.jwt_token
            # Age is measured from the signed timestamp, not the response time
            self._jwt_timestamp = timestamp
            self.logger.debug("JWT refreshed")

    # ============================================
    # Public Endpoints
    # ============================================

    async def system_config(self) -> SystemConfig:
        return await self._request("GET", "/v1/system/config", SystemConfig)

    async def system_state(self) -> SystemState:
        return await self._request("GET", "/v1/system/state", SystemState)

    async def system_time(self) -> SystemTime:
        return await self._request("GET", "/v1/system/time", SystemTime)

    async def markets(self) -> List[MarketSummaryStatic]:
        """Static definitions of every listed market"""
        container = await self._request("GET", "/v1/markets", ResultsContainer[List[MarketSummaryStatic]])
        return container.results

    async def markets_summary(self, market: str) -> List[MarketSummary]:
        """
        Live market summaries.

        Args:
            market: Market symbol, or "ALL" for every market
        """
        container = await self._request(
            "GET",
            "/v1/markets/summary",
            ResultsContainer[List[MarketSummary]],
            params={"market": market}
        )
        return container.results

    async def bbo(self, market: str) -> BBO:
        return await self._request("GET", f"/v1/bbo/{market}", BBO)

    async def orderbook(self, market: str, params: Optional[OrderBookParams] = None) -> OrderBookResponse:
        query = params.to_params() if params is not None else None
        return await self._request("GET", f"/v1/orderbook/{market}", OrderBookResponse, params=query)

    async def klines(self, params: KlineParams) -> List[Kline]:
        """OHLCV candles for one market over [start_at, end_at]"""
        container = await self._request(
            "GET",
            "/v1/markets/klines",
            ResultsContainer[List[Kline]],
            params=params.to_params()
        )
        return container.results

    # ============================================
    # Orders
    # ============================================

    async def create_order(self, request: OrderRequest) -> OrderUpdate:
        """
        Sign and submit a new order.

        Raises:
            MissingPrivateKeyError: If the client has no private key
            TypeConversionError: If price or size cannot be quantized
        """
        chain_id, private_key, account = self._require_private()
        timestamp_ms = current_utc_timestamp(milliseconds=True)
        signature = self.signer.sign_order(request, private_key, timestamp_ms, chain_id, account)
        order = request.into_order(signature, timestamp_ms)
        body = order.model_dump(mode="json", by_alias=True, exclude_none=True)
        self.logger.info(
            f"Creating {request.order_type.value} {request.side.value} order "
            f"{request.size} {request.market} @ {request.price}"
        )
        return await self._request_auth("POST", "/v1/orders", OrderUpdate, body=body)

    async def modify_order(self, request: ModifyOrderRequest) -> OrderUpdate:
        """Sign and submit a modification of an open order"""
        chain_id, private_key, account = self._require_private()
        timestamp_ms = current_utc_timestamp(milliseconds=True)
        signature = self.signer.sign_modify_order(request, private_key, timestamp_ms, chain_id, account)
        modify = request.into_modify_order(signature, timestamp_ms)
        body = modify.model_dump(mode="json", by_alias=True, exclude_none=True)
        return await self._request_auth("PUT", f"/v1/orders/{request.id}", OrderUpdate, body=body)

    async def cancel_order(self, order_id: str) -> None:
        """Cancel by exchange order id; an empty success response is success"""
        self._require_private()
        try:
            await self._request_auth("DELETE", f"/v1/orders/{order_id}")
        except RestEmptyResponseError:
            pass

    async def cancel_order_by_client_id(self, client_order_id: str) -> None:
        self._require_private()
        try:
            await self._request_auth("DELETE", f"/v1/orders/by_client_id/{client_order_id}")
        except RestEmptyResponseError:
            pass

    async def cancel_all_orders(self) -> List[str]:
        self._require_private()
        return await self._request_auth("DELETE", "/v1/orders", List[str])

    async def cancel_all_orders_for_market(self, market: str) -> List[str]:
        self._require_private()
        return await self._request_auth("DELETE", "/v1/orders/", List[str], params={"market": market})

    async def open_orders(self) -> List[OrderUpdate]:
        self._require_private()
        updates = await self._request_auth("GET", "/v1/orders", OrderUpdates)
        return updates.results

    # ============================================
    # Account
    # ============================================

    async def account_information(self) -> AccountInformation:
        self._require_private()
        return await self._request_auth("GET", "/v1/account", AccountInformation)

    async def balance(self) -> List[Balance]:
        self._require_private()
        balances = await self._request_auth("GET", "/v1/balance", Balances)
        return balances.results

    async def positions(self) -> List[Position]:
        self._require_private()
        positions = await self._request_auth("GET", "/v1/positions", Positions)
        return positions.results

    async def fills(
        self,
        market: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[Fill]:
        """
        Every fill in the window, following the cursor until it runs out.

        Args:
            market: Restrict to one market
            start: Inclusive lower bound
            end: Inclusive upper bound
        """
        return await self._paginate("/v1/fills", Fill, market, start, end)

    async def funding_payments(
        self,
        market: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[FundingPayment]:
        return await self._paginate("/v1/funding/payments", FundingPayment, market, start, end)

    async def _paginate(
        self,
        path: str,
        item_type: Any,
        market: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime]
    ) -> List[Any]:
        self._require_private()

        params = {"page_size": str(PAGE_SIZE)}
        if market is not None:
            params["market"] = market
        if start is not None:
            params["start_at"] = str(datetime_to_timestamp(start, milliseconds=True))
        if end is not None:
            params["end_at"] = str(datetime_to_timestamp(end, milliseconds=True))

        results: List[Any] = []
        while True:
            page = await self._request_auth("GET", path, CursorResult[item_type], params=params)
            results.extend(page.results)
            if page.next is None:
                break
            params = {**params, "cursor": page.next}

        self.logger.debug(f"Fetched {len(results)} records from {path}")
        return results
