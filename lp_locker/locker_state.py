"""
Locker configuration record: protocol parameters plus running totals.

Stored as a single msgpack document. Amounts are kept as decimal strings
because reward amounts routinely exceed the 64-bit msgpack integer range.
"""
from typing import Optional

from lp_locker.crypto import ZERO_ADDRESS

LOCKER_CONFIG_KEY = b"LOCKER_CONFIG"

SCHEMA_VERSION = 1

BPS_DENOMINATOR = 10_000

ADDRESS_FIELDS = (
    'authority',
    'utility_token',
    'reward_token',
    'router',
    'liquidity_token',
    'vault',
)

AMOUNT_FIELDS = (
    'lp_divisor',
    'lp_to_reward_ratio',
    'min_native_amount',
    'min_utility_amount',
    'total_locked_liquidity',
    'total_reward_issued',
    'total_reward_deposited',
)


class LockerConfig:
    """
    The locker's singleton config record.

    Mutated only through the authority-gated setters and the two
    settlement paths (reward issue and vault deposit).
    """

    def __init__(self, data: dict):
        for name in ADDRESS_FIELDS:
            setattr(self, name, bytes(data[name]))

        for name in AMOUNT_FIELDS:
            setattr(self, name, int(data.get(name, 0)))

        self.max_slippage_bps = int(data['max_slippage_bps'])
        self.default_slippage_bps = int(data['default_slippage_bps'])
        self.rate_limit_enabled = bool(data['rate_limit_enabled'])
        self.min_seconds_between_tx = int(data['min_seconds_between_tx'])
        self.max_tx_per_block = int(data['max_tx_per_block'])
        self.schema_version = int(data.get('schema_version', SCHEMA_VERSION))
        self._validate()

    def to_dict(self) -> dict:
        """Convert to dict for storage."""
        data = {name: getattr(self, name) for name in ADDRESS_FIELDS}
        data.update({name: str(getattr(self, name)) for name in AMOUNT_FIELDS})
        data.update({
            'max_slippage_bps': self.max_slippage_bps,
            'default_slippage_bps': self.default_slippage_bps,
            'rate_limit_enabled': self.rate_limit_enabled,
            'min_seconds_between_tx': self.min_seconds_between_tx,
            'max_tx_per_block': self.max_tx_per_block,
            'schema_version': self.schema_version,
        })
        return data

    def snapshot(self) -> dict:
        """Read-interface view: addresses as hex, amounts as ints."""
        data = self.to_dict()
        for name in ADDRESS_FIELDS:
            data[name] = data[name].hex()
        for name in AMOUNT_FIELDS:
            data[name] = getattr(self, name)
        return data

    @property
    def available_rewards(self) -> int:
        """Deposited rewards not yet issued."""
        return self.total_reward_deposited - self.total_reward_issued

    def pool_info(self) -> tuple[int, int, int, int]:
        return (
            self.total_locked_liquidity,
            self.total_reward_issued,
            self.total_reward_deposited,
            self.available_rewards,
        )

    def __repr__(self) -> str:
        return (
            f"LockerConfig("
            f"authority={self.authority.hex()}, "
            f"ratio={self.lp_to_reward_ratio}, "
            f"divisor={self.lp_divisor}, "
            f"locked={self.total_locked_liquidity}, "
            f"issued={self.total_reward_issued}, "
            f"deposited={self.total_reward_deposited})"
        )

    def _validate(self):
        """Reject records that could never have been committed."""
        for name in AMOUNT_FIELDS:
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")

        if self.total_reward_issued > self.total_reward_deposited:
            raise ValueError("Issued rewards exceed deposited rewards")

        if self.authority == ZERO_ADDRESS:
            raise ValueError("Authority cannot be the zero address")


def get_locker_config(state) -> Optional[LockerConfig]:
    """Load the config record, None before initialization."""
    data = state.get_doc(LOCKER_CONFIG_KEY)
    if data is None:
        return None
    return LockerConfig(data)


def set_locker_config(state, config: LockerConfig):
    state.set_doc(LOCKER_CONFIG_KEY, config.to_dict())
