"""
Upgradeable front of the locker:
- Persistent logic version pointer
- Registry of logic versions with schema migration on upgrade
- Signed call dispatch
"""
from __future__ import annotations

import logging
from typing import Optional

from lp_locker import core
from lp_locker.core import BlockContext, Call, EventLog
from lp_locker.db import DB
from lp_locker.errors import (
    InvalidAddress,
    InvalidCall,
    InvalidParameter,
    NotInitialized,
    PermissionDenied,
)
from lp_locker.locker import LockerLogic
from lp_locker.locker_state import get_locker_config, set_locker_config
from lp_locker.router import AmmRouter
from lp_locker.state import StateStore

logger = logging.getLogger(__name__)

PROXY_LOGIC_KEY = b"PROXY_LOGIC_ADDR"

LOGIC_VERSIONS: dict[bytes, type] = {
    LockerLogic.VERSION: LockerLogic,
}


def register_logic(logic_cls: type) -> type:
    """Make a logic class available to upgrade_to under its VERSION."""
    LOGIC_VERSIONS[logic_cls.VERSION] = logic_cls
    return logic_cls


def _address(value) -> bytes:
    """Address argument of a call: raw bytes or a hex string."""
    if isinstance(value, bytes):
        return value
    try:
        return bytes.fromhex(value)
    except (TypeError, ValueError) as e:
        raise InvalidAddress(f"Invalid address: {value!r}") from e


class LockerProxy:
    def __init__(self, db: DB, routers: Optional[dict[bytes, AmmRouter]] = None,
                 chain_id: int = 1, monitor=None, initial_logic_version: bytes = LockerLogic.VERSION):
        self.db = db
        self.store = StateStore(db)
        self.routers = dict(routers or {})
        self.chain_id = chain_id
        self.monitor = monitor
        self.events = EventLog()
        self._logic: Optional[LockerLogic] = None

        # Persist logic version
        self.logic_version = db.get(PROXY_LOGIC_KEY)
        if not self.logic_version:
            self.logic_version = initial_logic_version
            db.put(PROXY_LOGIC_KEY, self.logic_version)

        self._load_logic()

    def _load_logic(self):
        logic_cls = LOGIC_VERSIONS.get(self.logic_version)
        if logic_cls is None:
            raise RuntimeError(f"Logic code missing: {self.logic_version!r}")
        self._logic = logic_cls(self.store, self.routers, self.events, self.monitor)

    @property
    def logic(self) -> LockerLogic:
        return self._logic

    def register_router(self, router: AmmRouter):
        self.routers[router.address] = router

    def attach_monitor(self, monitor):
        self.monitor = monitor
        self._logic.monitor = monitor

    # ------------------------------------------------------------------ #
    # Upgrade
    # ------------------------------------------------------------------ #
    def upgrade_to(self, version: bytes, caller: bytes):
        """
        Swap in another logic version. Only the authority may upgrade.

        The config record and rate-guard entries are left untouched unless
        the new logic declares a newer schema, in which case its migration
        runs in the same transaction as the schema bump.
        """
        logic_cls = LOGIC_VERSIONS.get(version)
        if logic_cls is None:
            raise InvalidParameter(f"Logic code not deployed: {version!r}")

        # Held until the new logic is in place so no operation runs between
        # the migration and the swap
        with self.store.lock:
            with self.store.transaction() as state:
                config = get_locker_config(state)
                if config is None:
                    raise NotInitialized("Locker is not initialized")
                if caller != config.authority:
                    raise PermissionDenied("Only authority")

                if logic_cls.SCHEMA_VERSION < config.schema_version:
                    raise InvalidParameter(
                        f"Logic {version!r} predates stored schema {config.schema_version}"
                    )
                if logic_cls.SCHEMA_VERSION > config.schema_version:
                    logger.info(
                        f"Migrating schema {config.schema_version} -> {logic_cls.SCHEMA_VERSION}"
                    )
                    new_logic = logic_cls(self.store, self.routers, self.events, self.monitor)
                    new_logic.migrate(state, config)
                    config.schema_version = logic_cls.SCHEMA_VERSION
                    set_locker_config(state, config)

                state.set_raw(PROXY_LOGIC_KEY, version)

            self.logic_version = version
            self._load_logic()
        logger.info(f"Locker logic upgraded to {version!r}")

    # ------------------------------------------------------------------ #
    # Signed calls
    # ------------------------------------------------------------------ #
    def execute(self, call: Call, block: BlockContext):
        """Verify a signed call and dispatch it to the current logic."""
        is_valid, error = call.validate_basic()
        if not is_valid:
            raise InvalidCall(error)
        if call.chain_id != self.chain_id:
            raise InvalidCall(f"Wrong chain ID. Expected {self.chain_id}, got {call.chain_id}")

        sender = call.sender
        data = call.data
        logic = self._logic
        now = block.timestamp

        if call.method == core.EARN_REWARD:
            return logic.earn_reward(
                sender, block,
                utility_amount=data['utility_amount'],
                native_amount=data['native_amount'],
                value=call.value,
                slippage_bps=data.get('slippage_bps'),
            )
        if call.method == core.LOCK_LP_TOKENS:
            return logic.lock_lp_tokens(sender, block, data['lp_amount'])
        if call.method == core.DEPOSIT_REWARDS:
            return logic.deposit_rewards(sender, data['amount'], now=now)
        if call.method == core.UPDATE_RATES:
            return logic.update_rates(sender, data['ratio'], data['divisor'], now=now)
        if call.method == core.UPDATE_ROUTER_CONFIG:
            return logic.update_router_config(
                sender, _address(data['router']), _address(data['liquidity_token']), now=now
            )
        if call.method == core.UPDATE_RATE_LIMITS:
            return logic.update_rate_limits(
                sender, data['enabled'], data['min_seconds_between_tx'],
                data['max_tx_per_block'], now=now,
            )
        if call.method == core.UPDATE_SLIPPAGE_CONFIG:
            return logic.update_slippage_config(
                sender, data['max_slippage_bps'], data['default_slippage_bps'], now=now
            )
        if call.method == core.UPDATE_VAULT:
            return logic.update_vault(sender, _address(data['vault']), now=now)
        if call.method == core.TRANSFER_AUTHORITY:
            return logic.transfer_authority(sender, _address(data['new_authority']), now=now)
        if call.method == core.UPGRADE_LOGIC:
            version = data['version']
            if isinstance(version, str):
                version = version.encode()
            return self.upgrade_to(version, sender)

        raise InvalidCall(f"Unknown method: {call.method}")

    # ------------------------------------------------------------------ #
    # Delegation
    # ------------------------------------------------------------------ #
    def __getattr__(self, name):
        logic = self.__dict__.get('_logic')
        if logic is None:
            raise AttributeError(name)
        return getattr(logic, name)
