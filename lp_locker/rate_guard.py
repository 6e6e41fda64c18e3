"""
Per-address anti-abuse guard: a cooldown between an address's operations
and a cap on how many of them may land in one block.
"""
import logging
from typing import Optional

from lp_locker.errors import RateLimitError
from lp_locker.locker_state import LockerConfig

logger = logging.getLogger(__name__)

RATE_GUARD_PREFIX = b"RATE_GUARD:"


class RateGuardEntry:
    """Last activity of one address."""

    def __init__(self, data: dict = None):
        if data is None:
            data = {
                'last_timestamp': 0,
                'last_block': 0,
                'block_tx_count': 0,
            }
        self.last_timestamp = int(data['last_timestamp'])
        self.last_block = int(data['last_block'])
        self.block_tx_count = int(data['block_tx_count'])

    def to_dict(self) -> dict:
        return {
            'last_timestamp': self.last_timestamp,
            'last_block': self.last_block,
            'block_tx_count': self.block_tx_count,
        }

    def __repr__(self) -> str:
        return (
            f"RateGuardEntry(last_timestamp={self.last_timestamp}, "
            f"last_block={self.last_block}, count={self.block_tx_count})"
        )


def get_rate_guard_entry(state, address: bytes) -> Optional[RateGuardEntry]:
    data = state.get_doc(RATE_GUARD_PREFIX + address)
    if data is None:
        return None
    return RateGuardEntry(data)


def set_rate_guard_entry(state, address: bytes, entry: RateGuardEntry):
    state.set_doc(RATE_GUARD_PREFIX + address, entry.to_dict())


class RateGuard:
    """Enforces the rate-limit parameters of the current config."""

    def __init__(self, config: LockerConfig):
        self.enabled = config.rate_limit_enabled
        self.min_seconds_between_tx = config.min_seconds_between_tx
        self.max_tx_per_block = config.max_tx_per_block

    def check_and_record(self, state, address: bytes, now: int, block_number: int) -> None:
        """
        Raise RateLimitError if address may not act now, otherwise record
        the attempt. The record only persists if the enclosing operation
        commits.
        """
        if not self.enabled:
            return

        entry = get_rate_guard_entry(state, address)
        same_block = False

        if entry is not None:
            elapsed = now - entry.last_timestamp
            if elapsed < self.min_seconds_between_tx:
                raise RateLimitError(
                    f"Too frequent transactions: {elapsed}s since last, "
                    f"minimum {self.min_seconds_between_tx}s"
                )

            same_block = entry.last_block == block_number
        else:
            entry = RateGuardEntry()

        # A new block starts from zero, so a cap of 0 blocks every attempt
        count = entry.block_tx_count if same_block else 0
        if count >= self.max_tx_per_block:
            raise RateLimitError(
                f"Rate limit per block exceeded: "
                f"{count}/{self.max_tx_per_block} in block {block_number}"
            )

        entry.last_timestamp = now
        if same_block:
            entry.block_tx_count += 1
        else:
            entry.last_block = block_number
            entry.block_tx_count = 1

        set_rate_guard_entry(state, address, entry)
        logger.debug(f"Rate guard {address.hex()[:8]}: {entry}")
