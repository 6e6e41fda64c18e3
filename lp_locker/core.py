"""
Core data structures: block context, signed call requests and emitted records.
"""
import time
import threading
import msgpack
from dataclasses import dataclass, asdict, field
from typing import Callable, Optional
from .crypto import (
    generate_hash,
    public_key_to_address,
    sign,
    verify_signature,
)

EARN_REWARD = "EARN_REWARD"
LOCK_LP_TOKENS = "LOCK_LP_TOKENS"
DEPOSIT_REWARDS = "DEPOSIT_REWARDS"
UPDATE_RATES = "UPDATE_RATES"
UPDATE_ROUTER_CONFIG = "UPDATE_ROUTER_CONFIG"
UPDATE_RATE_LIMITS = "UPDATE_RATE_LIMITS"
UPDATE_SLIPPAGE_CONFIG = "UPDATE_SLIPPAGE_CONFIG"
UPDATE_VAULT = "UPDATE_VAULT"
TRANSFER_AUTHORITY = "TRANSFER_AUTHORITY"
UPGRADE_LOGIC = "UPGRADE_LOGIC"

# method -> (required data fields, fields that must be non-negative ints)
CALL_SCHEMAS = {
    EARN_REWARD: (('utility_amount', 'native_amount'), ('utility_amount', 'native_amount')),
    LOCK_LP_TOKENS: (('lp_amount',), ('lp_amount',)),
    DEPOSIT_REWARDS: (('amount',), ('amount',)),
    UPDATE_RATES: (('ratio', 'divisor'), ('ratio', 'divisor')),
    UPDATE_ROUTER_CONFIG: (('router', 'liquidity_token'), ()),
    UPDATE_RATE_LIMITS: (('enabled', 'min_seconds_between_tx', 'max_tx_per_block'),
                         ('min_seconds_between_tx', 'max_tx_per_block')),
    UPDATE_SLIPPAGE_CONFIG: (('max_slippage_bps', 'default_slippage_bps'),
                             ('max_slippage_bps', 'default_slippage_bps')),
    UPDATE_VAULT: (('vault',), ()),
    TRANSFER_AUTHORITY: (('new_authority',), ()),
    UPGRADE_LOGIC: (('version',), ()),
}


@dataclass(frozen=True)
class BlockContext:
    """The block an operation executes in."""
    number: int
    timestamp: int

    @classmethod
    def current(cls, number: int) -> 'BlockContext':
        return cls(number=number, timestamp=int(time.time()))


@dataclass(frozen=True)
class CallContext:
    """Who is calling, with how much native coin attached, in which block."""
    sender: bytes
    block: BlockContext
    value: int = 0


def _canonical(obj):
    """Signing form: ints as decimal strings (msgpack ints stop at 64 bits)."""
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, int):
        return str(obj)
    if isinstance(obj, dict):
        return {k: _canonical(v) for k, v in sorted(obj.items())}
    if isinstance(obj, (list, tuple)):
        return [_canonical(v) for v in obj]
    return obj


class Call:
    """A signed request to invoke one locker method."""

    def __init__(self,
                 sender_public_key: str,
                 method: str,
                 data: dict,
                 value: int = 0,
                 signature: Optional[bytes] = None,
                 timestamp: Optional[float] = None,
                 chain_id: Optional[int] = 1):
        self.sender_public_key = sender_public_key
        self.method = method
        self.data = data
        self.value = value
        self.timestamp = timestamp or time.time()
        self.signature = signature
        self.chain_id = chain_id

    @classmethod
    def from_dict(cls, data: dict) -> 'Call':
        return cls(
            sender_public_key=data["sender_public_key"],
            method=data["method"],
            data=data["data"],
            value=int(data.get("value", 0)),
            signature=bytes.fromhex(data["signature"]) if data.get("signature") else None,
            timestamp=data.get("timestamp"),
            chain_id=data.get("chain_id"),
        )

    def to_dict(self, include_signature=True) -> dict:
        data = {
            "sender_public_key": self.sender_public_key,
            "method": self.method,
            "data": self.data,
            "value": self.value,
            "timestamp": self.timestamp,
            "chain_id": self.chain_id,
        }
        if include_signature and self.signature:
            data["signature"] = self.signature.hex()
        return data

    def get_signing_data(self) -> bytes:
        """Canonical byte representation for signing."""
        return msgpack.packb(_canonical(self.to_dict(include_signature=False)), use_bin_type=True)

    def sign(self, private_key):
        self.signature = sign(private_key, self.get_signing_data())

    def verify_signature(self) -> bool:
        if not self.signature:
            return False
        return verify_signature(self.sender_public_key, self.signature, self.get_signing_data())

    @property
    def sender(self) -> bytes:
        return public_key_to_address(self.sender_public_key)

    @property
    def id(self) -> bytes:
        return generate_hash(self.get_signing_data())

    def validate_basic(self) -> tuple[bool, str]:
        """
        Shape checks that need no ledger state.
        Returns (is_valid, error_message)
        """
        if not self.verify_signature():
            return False, "Invalid signature"

        if self.timestamp > time.time() + 300:
            return False, "Timestamp too far in future"

        if not isinstance(self.value, int) or isinstance(self.value, bool) or self.value < 0:
            return False, "Value must be a non-negative integer"

        schema = CALL_SCHEMAS.get(self.method)
        if schema is None:
            return False, f"Unknown method: {self.method}"

        required, integers = schema
        missing = [name for name in required if name not in self.data]
        if missing:
            return False, f"{self.method} requires {', '.join(repr(m) for m in missing)}"

        for name in integers:
            amount = self.data[name]
            if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
                return False, f"{name} must be a non-negative integer"

        slippage = self.data.get('slippage_bps')
        if self.method == EARN_REWARD and slippage is not None:
            if not isinstance(slippage, int) or slippage < 0:
                return False, "slippage_bps must be a non-negative integer"

        return True, ""


def _record_dict(record) -> dict:
    return {k: (v.hex() if isinstance(v, bytes) else v) for k, v in asdict(record).items()}


@dataclass(frozen=True)
class RewardEarnedRecord:
    user: bytes
    liquidity_amount: int
    reward_amount: int
    native_amount: int
    utility_amount: int
    timestamp: int

    def to_dict(self) -> dict:
        return _record_dict(self)


@dataclass(frozen=True)
class LpLockedRecord:
    user: bytes
    lp_amount: int
    reward_amount: int
    timestamp: int

    def to_dict(self) -> dict:
        return _record_dict(self)


@dataclass(frozen=True)
class DepositRecord:
    depositor: bytes
    amount: int
    total_deposited: int
    timestamp: int

    def to_dict(self) -> dict:
        return _record_dict(self)


@dataclass(frozen=True)
class ConfigUpdatedRecord:
    caller: bytes
    action: str
    timestamp: int
    changes: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return _record_dict(self)


class EventLog:
    """Append-only log of records emitted by committed operations."""

    def __init__(self):
        self._records = []
        self._listeners: list[Callable] = []
        self.lock = threading.Lock()

    def emit(self, record):
        with self.lock:
            self._records.append(record)
            listeners = list(self._listeners)
        for listener in listeners:
            listener(record)

    def subscribe(self, listener: Callable):
        with self.lock:
            self._listeners.append(listener)

    @property
    def records(self) -> tuple:
        with self.lock:
            return tuple(self._records)

    def of_type(self, record_type) -> list:
        return [r for r in self.records if isinstance(r, record_type)]

    def __len__(self) -> int:
        return len(self._records)
