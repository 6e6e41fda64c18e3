"""
Locker logic: the reward pipeline and the authority-gated configuration surface.

Every mutating operation runs as one critical section against a buffered
state view. Nothing an operation touched is committed unless it completes,
and records are only emitted after the commit.
"""
import logging
import time
from typing import Callable, Optional

from lp_locker.core import (
    BlockContext,
    ConfigUpdatedRecord,
    DepositRecord,
    EventLog,
    LpLockedRecord,
    RewardEarnedRecord,
)
from lp_locker.crypto import is_valid_address
from lp_locker.errors import (
    AlreadyInitialized,
    AmountMismatch,
    AmountTooLow,
    ExternalCallError,
    InvalidAddress,
    InvalidParameter,
    NotInitialized,
    PermissionDenied,
    SlippageParameterTooHigh,
    TokenError,
    ValidationError,
)
from lp_locker.liquidity import LiquidityAdapter
from lp_locker.locker_state import (
    ADDRESS_FIELDS,
    BPS_DENOMINATOR,
    SCHEMA_VERSION,
    LockerConfig,
    get_locker_config,
    set_locker_config,
)
from lp_locker.rate_guard import RateGuard, RateGuardEntry, get_rate_guard_entry
from lp_locker.router import AmmRouter
from lp_locker.state import StateStore, StateView
from lp_locker.tokens import FungibleToken, NativeLedger
from lp_locker.vault import VaultAccountant

logger = logging.getLogger(__name__)

# The locker's own account: holds payments in flight and the locked LP tokens
LOCKER_ADDRESS = b'\x00' * 19 + b'\x20'

INTEGER_PARAMS = (
    'lp_divisor',
    'lp_to_reward_ratio',
    'min_native_amount',
    'min_utility_amount',
    'max_slippage_bps',
    'default_slippage_bps',
    'min_seconds_between_tx',
    'max_tx_per_block',
)

# Everything initialize() needs from the caller
INIT_PARAMS = (
    tuple(name for name in ADDRESS_FIELDS if name != 'authority')
    + INTEGER_PARAMS
    + ('rate_limit_enabled',)
)


def _now(now: Optional[int]) -> int:
    return int(time.time()) if now is None else now


class LockerLogic:
    """Version 1 of the locker logic."""

    VERSION = b"v1"
    SCHEMA_VERSION = SCHEMA_VERSION

    def __init__(self, store: StateStore, routers: dict[bytes, AmmRouter],
                 events: Optional[EventLog] = None, monitor=None,
                 engine_address: bytes = LOCKER_ADDRESS):
        self.store = store
        self.routers = routers
        self.events = events if events is not None else EventLog()
        self.monitor = monitor
        self.engine_address = engine_address
        self.native = NativeLedger()

    # ------------------------------------------------------------------ #
    # Plumbing
    # ------------------------------------------------------------------ #
    def _run(self, operation: str, body: Callable[[StateView, list], object]):
        """Run body(state, records) atomically, then emit its records."""
        start = time.time()
        records = []
        try:
            with self.store.transaction() as state:
                result = body(state, records)
        except ValidationError as e:
            logger.warning(f"{operation} rejected: {e}")
            self._observe(operation, "rejected", start)
            raise
        except Exception as e:
            logger.error(f"{operation} failed: {e}")
            self._observe(operation, "failed", start)
            raise

        for record in records:
            self.events.emit(record)
        self._observe(operation, "success", start)
        return result

    def _observe(self, operation: str, status: str, start: float):
        if self.monitor is None:
            return
        self.monitor.record_operation(operation, status, time.time() - start)
        if status == "success":
            self.monitor.set_totals(*self.get_pool_info())

    def _load_config(self, state: StateView) -> LockerConfig:
        config = get_locker_config(state)
        if config is None:
            raise NotInitialized("Locker is not initialized")
        return config

    def _load_as_authority(self, state: StateView, caller: bytes) -> LockerConfig:
        config = self._load_config(state)
        if caller != config.authority:
            raise PermissionDenied("Only authority")
        return config

    def _router_for(self, config: LockerConfig) -> AmmRouter:
        router = self.routers.get(config.router)
        if router is None:
            raise ExternalCallError(f"AMM call failed: no router at {config.router.hex()}")
        return router

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def initialize(self, params: dict, authority: bytes, now: Optional[int] = None) -> LockerConfig:
        """
        Create the config record. Allowed exactly once.

        params holds every address field except authority, the four
        rate / minimum amounts, the slippage bounds and the rate-limit
        settings. Running totals always start at zero.
        """
        def body(state, records):
            if get_locker_config(state) is not None:
                raise AlreadyInitialized("Locker already initialized")

            data = dict(params)
            data['authority'] = authority
            for name in INIT_PARAMS:
                if name not in data:
                    raise InvalidParameter(f"Missing {name}")
            for name in INTEGER_PARAMS:
                try:
                    data[name] = int(data[name])
                except (TypeError, ValueError) as e:
                    raise InvalidParameter(f"{name} must be an integer") from e
            for name in ADDRESS_FIELDS:
                if not is_valid_address(data.get(name)):
                    raise InvalidAddress(f"Invalid address for {name}")

            for name in ('lp_divisor', 'lp_to_reward_ratio'):
                if data[name] <= 0:
                    raise InvalidParameter(f"{name} must be positive")
            for name in ('min_native_amount', 'min_utility_amount',
                         'min_seconds_between_tx', 'max_tx_per_block'):
                if data[name] < 0:
                    raise InvalidParameter(f"{name} cannot be negative")

            self._check_slippage_bounds(data['max_slippage_bps'], data['default_slippage_bps'])

            data.update({
                'total_locked_liquidity': 0,
                'total_reward_issued': 0,
                'total_reward_deposited': 0,
                'schema_version': self.SCHEMA_VERSION,
            })
            try:
                config = LockerConfig(data)
            except ValueError as e:
                raise InvalidParameter(str(e)) from e
            set_locker_config(state, config)
            records.append(ConfigUpdatedRecord(
                caller=authority,
                action="initialize",
                timestamp=_now(now),
                changes={'authority': authority.hex()},
            ))
            logger.info(f"Locker initialized: {config}")
            return config

        return self._run("initialize", body)

    def migrate(self, state: StateView, config: LockerConfig) -> None:
        """Bring stored state up to SCHEMA_VERSION. Nothing to do for v1."""

    # ------------------------------------------------------------------ #
    # Reward pipeline
    # ------------------------------------------------------------------ #
    def earn_reward(self, sender: bytes, block: BlockContext, utility_amount: int,
                    native_amount: int, value: int,
                    slippage_bps: Optional[int] = None) -> RewardEarnedRecord:
        """
        Turn utility_amount + native_amount from sender into locked AMM
        liquidity and pay sender the matching reward from the vault.

        `value` is the native payment actually attached to the call; it must
        equal native_amount.
        """
        def body(state, records):
            config = self._load_config(state)
            slippage = config.default_slippage_bps if slippage_bps is None else slippage_bps

            if native_amount < config.min_native_amount:
                raise AmountTooLow(
                    f"Native amount too low: {native_amount} < {config.min_native_amount}"
                )
            if utility_amount < config.min_utility_amount:
                raise AmountTooLow(
                    f"Utility amount too low: {utility_amount} < {config.min_utility_amount}"
                )
            if slippage > config.max_slippage_bps:
                raise SlippageParameterTooHigh(
                    f"Slippage too high: {slippage} > {config.max_slippage_bps} bps"
                )
            if value != native_amount:
                raise AmountMismatch(
                    f"Native amount mismatch: sent {value}, declared {native_amount}"
                )

            RateGuard(config).check_and_record(state, sender, block.timestamp, block.number)

            adapter = LiquidityAdapter(config, self._router_for(config), self.engine_address)
            vault = VaultAccountant(config, self.engine_address)

            # Reject an unfunded vault before touching the router
            floor = adapter.liquidity_floor(utility_amount, native_amount, slippage)
            vault.ensure_solvent(state, vault.reward_for(floor))

            self.native.transfer(state, sender, self.engine_address, value)
            adapter.utility_token.transfer_from(
                state, self.engine_address, sender, self.engine_address, utility_amount
            )

            liquidity = adapter.add_liquidity(
                state, block, utility_amount, native_amount, slippage, value
            )
            reward = vault.settle_reward(state, sender, liquidity)

            record = RewardEarnedRecord(
                user=sender,
                liquidity_amount=liquidity,
                reward_amount=reward,
                native_amount=native_amount,
                utility_amount=utility_amount,
                timestamp=block.timestamp,
            )
            records.append(record)
            logger.info(
                f"Reward earned by {sender.hex()[:8]}: liquidity {liquidity}, reward {reward}"
            )
            return record

        return self._run("earn_reward", body)

    def lock_lp_tokens(self, sender: bytes, block: BlockContext, lp_amount: int) -> LpLockedRecord:
        """Lock liquidity tokens sender already holds and pay their reward."""
        def body(state, records):
            config = self._load_config(state)
            if lp_amount <= 0:
                raise InvalidParameter("LP amount must be positive")

            lp_token = FungibleToken(config.liquidity_token, symbol="LP")
            balance = lp_token.balance_of(state, sender)
            if balance < lp_amount:
                raise TokenError(f"Insufficient LP balance: have {balance}, need {lp_amount}")
            allowed = lp_token.allowance(state, sender, self.engine_address)
            if allowed < lp_amount:
                raise TokenError(f"Insufficient LP allowance: have {allowed}, need {lp_amount}")

            RateGuard(config).check_and_record(state, sender, block.timestamp, block.number)

            lp_token.transfer_from(state, self.engine_address, sender, self.engine_address, lp_amount)
            reward = VaultAccountant(config, self.engine_address).settle_reward(
                state, sender, lp_amount
            )

            record = LpLockedRecord(
                user=sender,
                lp_amount=lp_amount,
                reward_amount=reward,
                timestamp=block.timestamp,
            )
            records.append(record)
            logger.info(f"LP locked by {sender.hex()[:8]}: {lp_amount}, reward {reward}")
            return record

        return self._run("lock_lp_tokens", body)

    def deposit_rewards(self, caller: bytes, amount: int, now: Optional[int] = None) -> DepositRecord:
        """Fund the vault from the authority's reward-token balance."""
        def body(state, records):
            config = self._load_as_authority(state, caller)
            total = VaultAccountant(config, self.engine_address).deposit(state, caller, amount)
            record = DepositRecord(
                depositor=caller,
                amount=amount,
                total_deposited=total,
                timestamp=_now(now),
            )
            records.append(record)
            return record

        return self._run("deposit_rewards", body)

    # ------------------------------------------------------------------ #
    # Authority surface
    # ------------------------------------------------------------------ #
    def _update(self, action: str, caller: bytes, now: Optional[int],
                apply: Callable[[StateView, LockerConfig], dict]) -> LockerConfig:
        def body(state, records):
            config = self._load_as_authority(state, caller)
            changes = apply(state, config)
            set_locker_config(state, config)
            records.append(ConfigUpdatedRecord(
                caller=caller, action=action, timestamp=_now(now), changes=changes,
            ))
            logger.info(f"{action} by {caller.hex()[:8]}: {changes}")
            return config

        return self._run(action, body)

    @staticmethod
    def _check_slippage_bounds(max_bps: int, default_bps: int):
        if max_bps < 0 or default_bps < 0:
            raise InvalidParameter("Slippage cannot be negative")
        if max_bps > BPS_DENOMINATOR:
            raise SlippageParameterTooHigh(
                f"Slippage too high: max {max_bps} > {BPS_DENOMINATOR} bps"
            )
        if default_bps > max_bps:
            raise SlippageParameterTooHigh(
                f"Slippage too high: default {default_bps} > max {max_bps} bps"
            )

    def update_rates(self, caller: bytes, ratio: int, divisor: int,
                     now: Optional[int] = None) -> LockerConfig:
        def apply(state, config):
            if ratio <= 0 or divisor <= 0:
                raise InvalidParameter("Ratio and divisor must be positive")
            config.lp_to_reward_ratio = ratio
            config.lp_divisor = divisor
            return {'lp_to_reward_ratio': ratio, 'lp_divisor': divisor}

        return self._update("update_rates", caller, now, apply)

    def update_router_config(self, caller: bytes, router: bytes, liquidity_token: bytes,
                             now: Optional[int] = None) -> LockerConfig:
        def apply(state, config):
            if not is_valid_address(router) or not is_valid_address(liquidity_token):
                raise InvalidAddress("Invalid address")
            if router not in self.routers:
                raise InvalidParameter(f"No router registered at {router.hex()}")
            config.router = router
            config.liquidity_token = liquidity_token
            return {'router': router.hex(), 'liquidity_token': liquidity_token.hex()}

        return self._update("update_router_config", caller, now, apply)

    def update_rate_limits(self, caller: bytes, enabled: bool, min_seconds_between_tx: int,
                           max_tx_per_block: int, now: Optional[int] = None) -> LockerConfig:
        def apply(state, config):
            if min_seconds_between_tx < 0 or max_tx_per_block < 0:
                raise InvalidParameter("Rate limits cannot be negative")
            config.rate_limit_enabled = bool(enabled)
            config.min_seconds_between_tx = min_seconds_between_tx
            config.max_tx_per_block = max_tx_per_block
            return {
                'rate_limit_enabled': bool(enabled),
                'min_seconds_between_tx': min_seconds_between_tx,
                'max_tx_per_block': max_tx_per_block,
            }

        return self._update("update_rate_limits", caller, now, apply)

    def update_slippage_config(self, caller: bytes, max_slippage_bps: int,
                               default_slippage_bps: int, now: Optional[int] = None) -> LockerConfig:
        def apply(state, config):
            self._check_slippage_bounds(max_slippage_bps, default_slippage_bps)
            config.max_slippage_bps = max_slippage_bps
            config.default_slippage_bps = default_slippage_bps
            return {
                'max_slippage_bps': max_slippage_bps,
                'default_slippage_bps': default_slippage_bps,
            }

        return self._update("update_slippage_config", caller, now, apply)

    def update_vault(self, caller: bytes, vault: bytes, now: Optional[int] = None) -> LockerConfig:
        def apply(state, config):
            if not is_valid_address(vault):
                raise InvalidAddress("Invalid address")
            config.vault = vault
            return {'vault': vault.hex()}

        return self._update("update_vault", caller, now, apply)

    def transfer_authority(self, caller: bytes, new_authority: bytes,
                           now: Optional[int] = None) -> LockerConfig:
        def apply(state, config):
            if not is_valid_address(new_authority):
                raise InvalidAddress("Invalid address")
            config.authority = new_authority
            return {'authority': new_authority.hex()}

        return self._update("transfer_authority", caller, now, apply)

    # ------------------------------------------------------------------ #
    # Read interface
    # ------------------------------------------------------------------ #
    def is_initialized(self) -> bool:
        with self.store.transaction() as state:
            return get_locker_config(state) is not None

    def get_config(self) -> dict:
        with self.store.transaction() as state:
            return self._load_config(state).snapshot()

    def get_pool_info(self) -> tuple[int, int, int, int]:
        """(total locked liquidity, issued, deposited, available rewards)"""
        with self.store.transaction() as state:
            return self._load_config(state).pool_info()

    def get_rate_guard_entry(self, address: bytes) -> Optional[RateGuardEntry]:
        with self.store.transaction() as state:
            return get_rate_guard_entry(state, address)

    def vault_balance(self) -> int:
        with self.store.transaction() as state:
            config = self._load_config(state)
            return VaultAccountant(config, self.engine_address).vault_balance(state)
