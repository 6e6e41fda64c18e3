"""
Reward pipeline: validation order, accounting, slippage floor, rate limits
and all-or-nothing rollback of earn_reward.
"""
import pytest

from conftest import AUTHORITY, OTHER, TOKEN_UNIT, USER, LockerEnv, make_address
from lp_locker.core import RewardEarnedRecord
from lp_locker.errors import (
    AmountMismatch,
    AmountTooLow,
    ExternalCallError,
    InsufficientVaultError,
    NotInitialized,
    RateLimitError,
    SlippageExceeded,
    SlippageParameterTooHigh,
)
from lp_locker.locker import LOCKER_ADDRESS

UTILITY = 10 * TOKEN_UNIT
NATIVE = TOKEN_UNIT
# utility * native // divisor with divisor = TOKEN_UNIT
EXPECTED_LIQUIDITY = 10 * TOKEN_UNIT
# 200 bps default slippage
FLOOR = EXPECTED_LIQUIDITY * 9800 // 10000


@pytest.fixture
def funded(env):
    """Vault holds 1000 reward tokens, USER holds one deposit worth of inputs."""
    env.deposit(1000 * TOKEN_UNIT)
    env.prepare_user(USER, UTILITY, NATIVE)
    env.router.set_add_liquidity_result(UTILITY, NATIVE, EXPECTED_LIQUIDITY)
    return env


def earn(env, user=USER, block=None, utility=UTILITY, native=NATIVE, value=None, slippage=None):
    return env.locker.earn_reward(
        user,
        block or env.block(),
        utility_amount=utility,
        native_amount=native,
        value=native if value is None else value,
        slippage_bps=slippage,
    )


class TestSuccessfulEarn:
    def test_totals_and_balances(self, funded):
        """Totals rise by the liquidity and its reward; the vault pays the reward."""
        vault_before = funded.balance(funded.reward, LOCKER_ADDRESS)

        record = earn(funded)

        reward = EXPECTED_LIQUIDITY * 10
        assert record.liquidity_amount == EXPECTED_LIQUIDITY
        assert record.reward_amount == reward

        locked, issued, deposited, available = funded.locker.get_pool_info()
        assert locked == EXPECTED_LIQUIDITY
        assert issued == reward
        assert deposited == 1000 * TOKEN_UNIT
        assert available == deposited - reward

        assert funded.balance(funded.reward, LOCKER_ADDRESS) == vault_before - reward
        assert funded.balance(funded.reward, USER) == reward

    def test_inputs_move_and_lp_stays_locked(self, funded):
        earn(funded)

        assert funded.balance(funded.utility, USER) == 0
        assert funded.balance(funded.native, USER) == 0
        assert funded.balance(funded.native, funded.router.address) == NATIVE
        assert funded.balance(funded.lp, LOCKER_ADDRESS) == EXPECTED_LIQUIDITY

    def test_record_emitted(self, funded):
        earn(funded, block=funded.block(number=7, timestamp=5_000))

        records = funded.locker.events.of_type(RewardEarnedRecord)
        assert len(records) == 1
        record = records[0]
        assert record.user == USER
        assert record.native_amount == NATIVE
        assert record.utility_amount == UTILITY
        assert record.timestamp == 5_000
        assert record.to_dict()['user'] == USER.hex()

    def test_router_call_bounds(self, funded):
        """Router gets slippage-adjusted minimums, the payment and a 300s deadline."""
        earn(funded, block=funded.block(timestamp=2_000))

        call = funded.router.calls[0]
        assert call['amount_token_desired'] == UTILITY
        assert call['amount_token_min'] == UTILITY * 9800 // 10000
        assert call['amount_native_min'] == NATIVE * 9800 // 10000
        assert call['value'] == NATIVE
        assert call['recipient'] == LOCKER_ADDRESS
        assert call['deadline'] == 2_300

    def test_explicit_slippage(self, funded):
        earn(funded, slippage=0)
        call = funded.router.calls[0]
        assert call['amount_token_min'] == UTILITY
        assert call['amount_native_min'] == NATIVE

    def test_issued_never_exceeds_deposited(self, funded):
        funded.locker.update_rate_limits(AUTHORITY, False, 0, 0)
        for i in range(3):
            funded.prepare_user(USER, UTILITY, NATIVE)
            earn(funded, block=funded.block(number=i + 2))
            _, issued, deposited, _ = funded.locker.get_pool_info()
            assert issued <= deposited

    def test_ratio_update_changes_reward(self, funded):
        funded.locker.update_rates(AUTHORITY, 3, TOKEN_UNIT)
        record = earn(funded)
        assert record.reward_amount == EXPECTED_LIQUIDITY * 3


class TestInputValidation:
    def test_utility_one_below_minimum_fails(self, funded):
        with pytest.raises(AmountTooLow, match="Utility amount too low"):
            earn(funded, utility=TOKEN_UNIT - 1)

    def test_utility_exactly_at_minimum_succeeds(self, funded):
        expected = TOKEN_UNIT * NATIVE // TOKEN_UNIT
        funded.router.set_add_liquidity_result(TOKEN_UNIT, NATIVE, expected)
        record = earn(funded, utility=TOKEN_UNIT)
        assert record.liquidity_amount == expected

    def test_native_below_minimum_fails(self, funded):
        with pytest.raises(AmountTooLow, match="Native amount too low"):
            earn(funded, native=TOKEN_UNIT // 100 - 1)

    def test_native_checked_before_utility(self, funded):
        with pytest.raises(AmountTooLow, match="Native amount too low"):
            earn(funded, utility=0, native=0)

    @pytest.mark.parametrize("delta", [1, -1, NATIVE])
    def test_payment_mismatch_fails(self, funded, delta):
        root = funded.store.state_root()
        with pytest.raises(AmountMismatch, match="Native amount mismatch"):
            earn(funded, value=NATIVE + delta)
        assert funded.store.state_root() == root

    def test_slippage_above_maximum_fails(self, funded):
        with pytest.raises(SlippageParameterTooHigh, match="Slippage too high"):
            earn(funded, slippage=1001)

    def test_slippage_at_maximum_accepted(self, funded):
        earn(funded, slippage=1000)

    def test_slippage_checked_before_rate_guard(self, funded):
        earn(funded)
        funded.prepare_user(USER, UTILITY, NATIVE)
        with pytest.raises(SlippageParameterTooHigh):
            earn(funded, block=funded.block(number=2, timestamp=1_001), slippage=5000)

    def test_uninitialized_locker(self, temp_db):
        fresh = LockerEnv(temp_db)
        with pytest.raises(NotInitialized):
            earn(fresh)


class TestSlippageFloor:
    def test_output_at_floor_succeeds(self, funded):
        funded.router.set_add_liquidity_result(UTILITY, NATIVE, FLOOR)
        record = earn(funded)
        assert record.liquidity_amount == FLOOR
        assert record.reward_amount == FLOOR * 10

    def test_output_one_below_floor_fails(self, funded):
        funded.router.set_add_liquidity_result(UTILITY, NATIVE, FLOOR - 1)
        root = funded.store.state_root()

        with pytest.raises(SlippageExceeded, match="Slippage exceeded"):
            earn(funded)

        assert funded.store.state_root() == root
        assert funded.locker.get_pool_info()[0] == 0

    def test_zero_liquidity_is_external_failure(self, funded):
        funded.router.set_add_liquidity_result(UTILITY, NATIVE, 0)
        with pytest.raises(ExternalCallError):
            earn(funded)

    def test_zero_liquidity_rejected_with_zero_floor(self, funded):
        # Divisor large enough that the expected liquidity, and so the floor, is 0
        funded.locker.update_rates(AUTHORITY, 10, 100 * UTILITY * NATIVE)
        funded.router.set_add_liquidity_result(UTILITY, NATIVE, 0)
        root = funded.store.state_root()

        with pytest.raises(ExternalCallError, match="no liquidity minted"):
            earn(funded)

        assert funded.store.state_root() == root
        assert funded.balance(funded.utility, USER) == UTILITY


class TestRateGuard:
    def test_replay_within_cooldown_fails_without_state_change(self, funded):
        earn(funded)
        funded.prepare_user(USER, UTILITY, NATIVE)
        root = funded.store.state_root()

        with pytest.raises(RateLimitError, match="Too frequent transactions"):
            earn(funded, block=funded.block(number=2, timestamp=1_030))

        assert funded.store.state_root() == root

    def test_after_cooldown_succeeds(self, funded):
        earn(funded)
        funded.prepare_user(USER, UTILITY, NATIVE)
        earn(funded, block=funded.block(number=2, timestamp=1_060))

        entry = funded.locker.get_rate_guard_entry(USER)
        assert entry.last_timestamp == 1_060
        assert entry.last_block == 2
        assert entry.block_tx_count == 1

    def test_per_block_cap(self, funded):
        funded.locker.update_rate_limits(AUTHORITY, True, 0, 1)
        earn(funded)
        funded.prepare_user(USER, UTILITY, NATIVE)

        with pytest.raises(RateLimitError, match="Rate limit per block exceeded"):
            earn(funded, block=funded.block(number=1, timestamp=1_000))

    def test_other_address_unaffected(self, funded):
        earn(funded)
        funded.prepare_user(OTHER, UTILITY, NATIVE)
        earn(funded, user=OTHER, block=funded.block(number=1, timestamp=1_000))

    def test_failed_attempt_not_recorded(self, funded):
        funded.router.fail_with(RuntimeError("pool paused"))
        with pytest.raises(ExternalCallError):
            earn(funded)
        assert funded.locker.get_rate_guard_entry(USER) is None

    def test_disabled_guard_records_nothing(self, funded):
        funded.locker.update_rate_limits(AUTHORITY, False, 60, 1)
        earn(funded)
        assert funded.locker.get_rate_guard_entry(USER) is None


class TestExternalCall:
    def test_router_failure_rolls_back_everything(self, funded):
        funded.router.fail_with(RuntimeError("Router: EXPIRED"))
        root = funded.store.state_root()

        with pytest.raises(ExternalCallError, match="AMM call failed: Router: EXPIRED"):
            earn(funded)

        assert funded.store.state_root() == root
        assert funded.balance(funded.utility, USER) == UTILITY
        assert funded.balance(funded.native, USER) == NATIVE
        assert funded.locker.events.of_type(RewardEarnedRecord) == []

    def test_unregistered_router(self, funded):
        funded.locker.routers.clear()
        with pytest.raises(ExternalCallError):
            earn(funded)


class TestVaultSolvency:
    def test_unfunded_vault_rejected(self, env):
        env.prepare_user(USER, UTILITY, NATIVE)
        env.router.set_add_liquidity_result(UTILITY, NATIVE, EXPECTED_LIQUIDITY)

        with pytest.raises(InsufficientVaultError):
            earn(env)
        # Rejected before the router was reached
        assert env.router.calls == []

    def test_tokens_sent_outside_deposit_are_not_spendable(self, env):
        env.mint(env.reward, LOCKER_ADDRESS, 1000 * TOKEN_UNIT)
        env.prepare_user(USER, UTILITY, NATIVE)
        env.router.set_add_liquidity_result(UTILITY, NATIVE, EXPECTED_LIQUIDITY)

        with pytest.raises(InsufficientVaultError, match="Insufficient deposited rewards"):
            earn(env)

    def test_vault_too_small_for_actual_output(self, env):
        env.deposit(FLOOR * 10)
        env.prepare_user(USER, UTILITY, NATIVE)
        env.router.set_add_liquidity_result(UTILITY, NATIVE, EXPECTED_LIQUIDITY)

        with pytest.raises(InsufficientVaultError):
            earn(env)
        assert env.locker.get_pool_info() == (0, 0, FLOOR * 10, FLOOR * 10)


class TestExternalVault:
    VAULT = make_address("vault")

    @pytest.fixture
    def external(self, env):
        env.locker.update_vault(AUTHORITY, self.VAULT)
        env.deposit(1000 * TOKEN_UNIT)
        env.prepare_user(USER, UTILITY, NATIVE)
        env.router.set_add_liquidity_result(UTILITY, NATIVE, EXPECTED_LIQUIDITY)
        return env

    def test_requires_vault_allowance(self, external):
        with pytest.raises(InsufficientVaultError, match="allowance"):
            earn(external)

    def test_pays_from_vault(self, external):
        external.approve(external.reward, self.VAULT, LOCKER_ADDRESS, 10**30)
        record = earn(external)

        assert external.balance(external.reward, USER) == record.reward_amount
        assert external.balance(external.reward, self.VAULT) == 1000 * TOKEN_UNIT - record.reward_amount
