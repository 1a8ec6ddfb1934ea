"""
Paradex Message Signing

Paradex authenticates logins and order actions with STARK curve signatures
over a typed-data digest. The digest follows the StarkNet typed-data layout
but with a domain separator whose fields are ordered (name, chainId, version),
which standard typed-data helpers do not produce. This module therefore
assembles every hash by hand from the starknet-py primitives:

    domain_hash  = H(type_hash("StarkNetDomain(...)"), "Paradex", chain_id, 1)
    struct_hash  = H(type_hash(<schema>), field_1, ..., field_n)
    message_hash = H("StarkNet Message", domain_hash, account_address, struct_hash)

where H is the Pedersen hash chain (compute_hash_on_elements) and quoted
strings are Cairo short strings.

Usage:
    signer = MessageSigner()
    timestamp, headers = signer.auth_headers(chain_id, private_key, account)
    r, s = signer.sign_order(order_request, private_key, timestamp_ms, chain_id, account)
"""

from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Dict, Optional, Sequence, Tuple

from starknet_py.cairo.felt import encode_shortstring
from starknet_py.constants import FIELD_PRIME
from starknet_py.hash.address import compute_address
from starknet_py.hash.selector import get_selector_from_name
from starknet_py.hash.utils import (
    compute_hash_on_elements,
    message_signature,
    private_to_stark_key,
    verify_message_signature,
)

from core.config import settings
from core.errors import StarknetError, TypeConversionError
from core.logging import get_logger
from core.schemas import ModifyOrderRequest, OrderRequest, format_signature
from core.utils.time import current_utc_timestamp


logger = get_logger(__name__)


# ============================================
# Constants
# ============================================

DOMAIN_NAME = "Paradex"
DOMAIN_VERSION = 1

AUTH_EXPIRATION_SECONDS = 60 * 60

QUANTIZE_FACTOR = Decimal(10) ** 8
I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1

DOMAIN_TYPE = "StarkNetDomain(name:felt,chainId:felt,version:felt)"
REQUEST_TYPE = "Request(method:felt,path:felt,body:felt,timestamp:felt,expiration:felt)"
ORDER_TYPE = "Order(timestamp:felt,market:felt,side:felt,orderType:felt,size:felt,price:felt)"
MODIFY_ORDER_TYPE = (
    "ModifyOrder(timestamp:felt,market:felt,side:felt,orderType:felt,size:felt,price:felt,id:felt)"
)


# ============================================
# Felt Helpers
# ============================================

def type_hash(schema: str) -> int:
    """starknet_keccak of a struct type string"""
    return get_selector_from_name(schema)


def to_felt(value: int) -> int:
    """Reduce an integer into the field (negative values wrap around P)"""
    return value % FIELD_PRIME


def encode_short_string(text: str) -> int:
    """
    Encode an ASCII string of at most 31 characters as a felt.

    Raises:
        StarknetError: If the text is not ASCII or too long

    Example:
        >>> encode_short_string("POST")
        1347375956
    """
    try:
        return encode_shortstring(text)
    except ValueError as e:
        raise StarknetError(f"Cannot encode short string {text!r}: {e}") from e


def parse_felt(text: str) -> int:
    """
    Parse a felt from a 0x-prefixed hex string or a decimal string.

    Raises:
        StarknetError: If the text is not a number or is outside the field
    """
    try:
        value = int(text, 16) if text.lower().startswith("0x") else int(text, 10)
    except (ValueError, AttributeError) as e:
        raise StarknetError(f"Invalid felt {text!r}") from e
    if not 0 <= value < FIELD_PRIME:
        raise StarknetError(f"Felt {text!r} is outside the field")
    return value


def parse_private_key(text: str) -> int:
    """
    Parse a hex encoded STARK private key, with or without the 0x prefix.

    Raises:
        StarknetError: If the text is not hex or the key is outside the field

    Examples:
        >>> parse_private_key("0x12345678") == parse_private_key("12345678") == 0x12345678
        True
    """
    key = text.strip()
    # Keys are always hex; "12345678" must not be read as decimal
    if key.lower().startswith("0x"):
        key = key[2:]
    try:
        value = int(key, 16)
    except ValueError as e:
        raise StarknetError("Private key must be a hex string") from e
    if not 0 < value < FIELD_PRIME:
        raise StarknetError("Private key is outside the field")
    return value


def quantize(value: Optional[Decimal]) -> int:
    """
    Scale a decimal quantity by 10^8 and truncate toward zero.

    A missing value (market order without price) quantizes to 0.

    Raises:
        TypeConversionError: If the scaled value does not fit in a signed 64-bit integer

    Examples:
        >>> quantize(Decimal("0.001"))
        100000
        >>> quantize(Decimal("-1.234567891"))
        -123456789
    """
    if value is None:
        return 0
    try:
        scaled = int(Decimal(value) * QUANTIZE_FACTOR)
    except (InvalidOperation, ValueError, OverflowError) as e:
        raise TypeConversionError(f"Could not quantize {value!r}") from e
    if not I64_MIN <= scaled <= I64_MAX:
        raise TypeConversionError(f"Quantized value of {value} does not fit in i64")
    return scaled


def felt_from_order_id(order_id: str) -> int:
    """
    Encode an order id for the ModifyOrder struct.

    Ids made only of ASCII digits are read as decimal numbers, anything
    else is encoded as a short string.
    """
    if all(c in "0123456789" for c in order_id):
        return parse_felt(order_id)
    return encode_short_string(order_id)


# ============================================
# Keys, Signatures and Accounts
# ============================================

def public_key_from_private(private_key: int) -> int:
    """Derive the STARK public key (x coordinate) from a private key"""
    try:
        return private_to_stark_key(private_key)
    except Exception as e:
        raise StarknetError(f"Invalid private key: {e}") from e


def sign_hash(msg_hash: int, private_key: int) -> Tuple[int, int]:
    """
    Sign a message hash with an RFC 6979 deterministic nonce.

    Returns:
        (r, s) pair
    """
    try:
        r, s = message_signature(msg_hash, private_key, seed=None)
    except Exception as e:
        raise StarknetError(f"Signing failed: {e}") from e
    return r, s


def verify_signature(msg_hash: int, signature: Sequence[int], public_key: int) -> bool:
    """Check an (r, s) signature against a public key"""
    return verify_message_signature(msg_hash, list(signature), public_key)


def account_address(public_key: int, proxy_hash: int, account_hash: int) -> int:
    """
    Compute the Paradex account contract address for a public key.

    The account is a proxy contract deployed with the public key as salt and
    constructor calldata [account_hash, selector("initialize"), 2, public_key, 0].

    Args:
        public_key: STARK public key
        proxy_hash: paraclear_account_proxy_hash from the system config
        account_hash: paraclear_account_hash from the system config

    Returns:
        Account contract address felt
    """
    calldata = [
        account_hash,
        get_selector_from_name("initialize"),
        2,
        public_key,
        0,
    ]
    return compute_address(
        class_hash=proxy_hash,
        constructor_calldata=calldata,
        salt=public_key,
        deployer_address=0,
    )


# ============================================
# Message Signer
# ============================================

class MessageSigner:
    """
    Builds Paradex typed-data digests and signs them.

    Each signer owns a bounded LRU cache of domain hashes keyed by chain id.
    The cache is exposed through ``domain_hash.cache_info()`` and
    ``domain_hash.cache_clear()``.

    Example:
        >>> signer = MessageSigner(cache_size=10)
        >>> chain_id = encode_short_string("PRIVATE_SN_PARACLEAR_MAINNET")
        >>> hex(signer.domain_hash(chain_id))
        '0x6f74f207280b65cf663fb8d7763fac1e7398cd6d7da5d7681dc300ee4278a0a'
        >>> signer.domain_hash.cache_info().currsize
        1
    """

    _STARKNET_MESSAGE_PREFIX = encode_short_string("StarkNet Message")
    _DOMAIN_TYPE_HASH = type_hash(DOMAIN_TYPE)
    _REQUEST_TYPE_HASH = type_hash(REQUEST_TYPE)
    _ORDER_TYPE_HASH = type_hash(ORDER_TYPE)
    _MODIFY_ORDER_TYPE_HASH = type_hash(MODIFY_ORDER_TYPE)

    def __init__(self, cache_size: Optional[int] = None):
        if cache_size is None:
            cache_size = settings.domain_hash_cache_size
        self.domain_hash = lru_cache(maxsize=cache_size)(self._compute_domain_hash)

    def _compute_domain_hash(self, chain_id: int) -> int:
        return compute_hash_on_elements([
            self._DOMAIN_TYPE_HASH,
            encode_short_string(DOMAIN_NAME),
            chain_id,
            DOMAIN_VERSION,
        ])

    def message_hash(self, chain_id: int, address: int, struct_hash: int) -> int:
        """Fold prefix, domain, account and struct hash into the final digest"""
        return compute_hash_on_elements([
            self._STARKNET_MESSAGE_PREFIX,
            self.domain_hash(chain_id),
            address,
            struct_hash,
        ])

    # ============================================
    # Authentication
    # ============================================

    def auth_message_hash(self, chain_id: int, timestamp: int, expiration: int, address: int) -> int:
        """
        Digest signed for POST /v1/auth.

        Args:
            chain_id: Short string encoded starknet_chain_id
            timestamp: UNIX seconds
            expiration: UNIX seconds, normally timestamp + 3600
            address: Account address
        """
        request_hash = compute_hash_on_elements([
            self._REQUEST_TYPE_HASH,
            encode_short_string("POST"),
            encode_short_string("/v1/auth"),
            encode_short_string(""),
            timestamp,
            expiration,
        ])
        return self.message_hash(chain_id, address, request_hash)

    def auth_headers(
        self,
        chain_id: int,
        private_key: int,
        account: int,
        timestamp: Optional[int] = None
    ) -> Tuple[int, Dict[str, str]]:
        """
        Build the signed headers for POST /v1/auth.

        Args:
            chain_id: Short string encoded starknet_chain_id
            private_key: STARK private key
            account: Account address
            timestamp: UNIX seconds (defaults to now)

        Returns:
            (timestamp, headers) where headers holds PARADEX-STARKNET-ACCOUNT,
            PARADEX-STARKNET-SIGNATURE, PARADEX-TIMESTAMP and
            PARADEX-SIGNATURE-EXPIRATION
        """
        if timestamp is None:
            timestamp = current_utc_timestamp()
        expiration = timestamp + AUTH_EXPIRATION_SECONDS

        msg_hash = self.auth_message_hash(chain_id, timestamp, expiration, account)
        signature = sign_hash(msg_hash, private_key)

        headers = {
            "PARADEX-STARKNET-ACCOUNT": hex(account),
            "PARADEX-STARKNET-SIGNATURE": format_signature(signature),
            "PARADEX-TIMESTAMP": str(timestamp),
            "PARADEX-SIGNATURE-EXPIRATION": str(expiration),
        }
        logger.debug(f"Auth headers built for account {hex(account)} (expires {expiration})")
        return timestamp, headers

    # ============================================
    # Orders
    # ============================================

    def order_hash(self, request: OrderRequest, timestamp_ms: int) -> int:
        """Struct hash of a new order"""
        return compute_hash_on_elements([
            self._ORDER_TYPE_HASH,
            timestamp_ms,
            encode_short_string(request.market),
            request.side.felt,
            encode_short_string(request.order_type.value),
            to_felt(quantize(request.size)),
            to_felt(quantize(request.price)),
        ])

    def modify_order_hash(self, request: ModifyOrderRequest, timestamp_ms: int) -> int:
        """Struct hash of an order modification"""
        return compute_hash_on_elements([
            self._MODIFY_ORDER_TYPE_HASH,
            timestamp_ms,
            encode_short_string(request.market),
            request.side.felt,
            encode_short_string(request.order_type.value),
            to_felt(quantize(request.size)),
            to_felt(quantize(request.price)),
            felt_from_order_id(request.id),
        ])

    def sign_order(
        self,
        request: OrderRequest,
        private_key: int,
        timestamp_ms: int,
        chain_id: int,
        address: int
    ) -> Tuple[int, int]:
        """
        Sign a new order.

        Args:
            request: Unsigned order
            private_key: STARK private key
            timestamp_ms: Signature timestamp in milliseconds
            chain_id: Short string encoded starknet_chain_id
            address: Account address

        Returns:
            (r, s) signature

        Raises:
            TypeConversionError: If price or size overflows after quantization
            StarknetError: If the market symbol cannot be short string encoded
        """
        struct_hash = self.order_hash(request, timestamp_ms)
        return sign_hash(self.message_hash(chain_id, address, struct_hash), private_key)

    def sign_modify_order(
        self,
        request: ModifyOrderRequest,
        private_key: int,
        timestamp_ms: int,
        chain_id: int,
        address: int
    ) -> Tuple[int, int]:
        """Sign an order modification; same contract as sign_order"""
        struct_hash = self.modify_order_hash(request, timestamp_ms)
        return sign_hash(self.message_hash(chain_id, address, struct_hash), private_key)
