"""
RateGuard on its own: cooldown, per-block cap and counter reset.
"""
import pytest

from conftest import AUTHORITY, USER, default_params
from lp_locker.errors import RateLimitError
from lp_locker.locker_state import LockerConfig
from lp_locker.rate_guard import RateGuard, get_rate_guard_entry
from lp_locker.state import StateStore


def guard(**overrides) -> RateGuard:
    data = default_params(**overrides)
    data['authority'] = AUTHORITY
    return RateGuard(LockerConfig(data))


@pytest.fixture
def state(temp_db):
    store = StateStore(temp_db)
    with store.transaction() as view:
        yield view


def test_first_attempt_creates_entry(state):
    guard().check_and_record(state, USER, now=100, block_number=5)
    entry = get_rate_guard_entry(state, USER)
    assert (entry.last_timestamp, entry.last_block, entry.block_tx_count) == (100, 5, 1)


def test_cooldown(state):
    g = guard(min_seconds_between_tx=60)
    g.check_and_record(state, USER, now=100, block_number=1)

    with pytest.raises(RateLimitError, match="Too frequent transactions"):
        g.check_and_record(state, USER, now=159, block_number=2)

    g.check_and_record(state, USER, now=160, block_number=2)


def test_block_cap_and_reset(state):
    g = guard(min_seconds_between_tx=0, max_tx_per_block=2)
    g.check_and_record(state, USER, now=100, block_number=1)
    g.check_and_record(state, USER, now=100, block_number=1)
    assert get_rate_guard_entry(state, USER).block_tx_count == 2

    with pytest.raises(RateLimitError, match="Rate limit per block exceeded"):
        g.check_and_record(state, USER, now=100, block_number=1)

    g.check_and_record(state, USER, now=101, block_number=2)
    entry = get_rate_guard_entry(state, USER)
    assert entry.last_block == 2
    assert entry.block_tx_count == 1


def test_disabled(state):
    g = guard(rate_limit_enabled=False)
    for _ in range(3):
        g.check_and_record(state, USER, now=100, block_number=1)
    assert get_rate_guard_entry(state, USER) is None


def test_zero_cap_blocks_first_attempt(state):
    g = guard(min_seconds_between_tx=0, max_tx_per_block=0)
    with pytest.raises(RateLimitError, match="Rate limit per block exceeded: 0/0"):
        g.check_and_record(state, USER, now=100, block_number=1)
    assert get_rate_guard_entry(state, USER) is None


def test_zero_cap_blocks_new_block(state):
    guard(min_seconds_between_tx=0).check_and_record(state, USER, now=100, block_number=1)
    with pytest.raises(RateLimitError, match="Rate limit per block exceeded"):
        guard(min_seconds_between_tx=0, max_tx_per_block=0).check_and_record(
            state, USER, now=200, block_number=2)
