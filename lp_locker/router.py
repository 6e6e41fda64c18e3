"""
AMM routers the locker adds liquidity through.

The locker only relies on the call contract

    add_liquidity_with_native(token, amount_token_desired, amount_token_min,
                              amount_native_min, recipient, deadline) payable
        -> (token_used, native_used, liquidity_minted)

ConstantProductRouter is the production adapter, backed by an x * y = k pool
kept in the same ledger state. MockRouter returns programmed results.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from lp_locker.amm_state import (
    MINIMUM_LIQUIDITY,
    get_pool_state,
    set_pool_state,
)
from lp_locker.core import CallContext
from lp_locker.crypto import ZERO_ADDRESS, generate_hash
from lp_locker.errors import ExternalCallError
from lp_locker.tokens import FungibleToken, NativeLedger

logger = logging.getLogger(__name__)


class AmmRouter(ABC):
    """Interface of an AMM router reachable at `address`."""

    def __init__(self, address: bytes):
        self.address = address

    @abstractmethod
    def add_liquidity_with_native(self, state, ctx: CallContext, token: bytes,
                                  amount_token_desired: int, amount_token_min: int,
                                  amount_native_min: int, recipient: bytes,
                                  deadline: int) -> tuple[int, int, int]:
        """
        Deposit `token` plus the native value attached to ctx into the pool.

        Pulls tokens from ctx.sender via transfer_from (the caller must have
        approved this router), mints liquidity tokens to recipient and
        returns (token_used, native_used, liquidity_minted).
        """


class ConstantProductRouter(AmmRouter):
    """Router over constant-product pools, one per utility token."""

    def __init__(self, address: bytes):
        super().__init__(address)
        self.native = NativeLedger()

    def pair_for(self, token: bytes) -> bytes:
        """Address of the token/native pair, which is also its LP token."""
        return generate_hash(b"PAIR:" + self.address + token)[-20:]

    def add_liquidity_with_native(self, state, ctx, token, amount_token_desired,
                                  amount_token_min, amount_native_min, recipient,
                                  deadline):
        if ctx.block.timestamp > deadline:
            raise ExternalCallError("Router: EXPIRED")

        pair = self.pair_for(token)
        pool = get_pool_state(state, token)

        amounts = pool.optimal_amounts(
            amount_token_desired, ctx.value, amount_token_min, amount_native_min
        )
        if amounts is None:
            raise ExternalCallError("Router: INSUFFICIENT_AMOUNT")
        token_used, native_used = amounts

        liquidity = pool.liquidity_for(token_used, native_used)
        if liquidity <= 0:
            raise ExternalCallError("Router: INSUFFICIENT_LIQUIDITY_MINTED")

        FungibleToken(token).transfer_from(state, self.address, ctx.sender, pair, token_used)
        self.native.transfer(state, ctx.sender, pair, native_used)

        lp_token = FungibleToken(pair, symbol="LP")
        if pool.lp_token_supply == 0:
            lp_token.mint(state, ZERO_ADDRESS, MINIMUM_LIQUIDITY)
            pool.lp_token_supply = MINIMUM_LIQUIDITY
        lp_token.mint(state, recipient, liquidity)

        pool.token_reserve += token_used
        pool.native_reserve += native_used
        pool.lp_token_supply += liquidity
        set_pool_state(state, token, pool)

        logger.info(
            f"Liquidity added: {token_used} token + {native_used} native "
            f"-> {liquidity} LP for {recipient.hex()[:8]}"
        )
        return token_used, native_used, liquidity


class MockRouter(AmmRouter):
    """
    Deterministic router double.

    Takes the attached native value, optionally mints the programmed
    liquidity on `liquidity_token`, and returns whatever result was set with
    set_add_liquidity_result(). Every call is recorded in `calls`.
    """

    def __init__(self, address: bytes, liquidity_token: Optional[bytes] = None):
        super().__init__(address)
        self.liquidity_token = liquidity_token
        self.native = NativeLedger()
        self.result = (0, 0, 0)
        self.failure: Optional[Exception] = None
        self.calls = []

    def set_add_liquidity_result(self, token_used: int, native_used: int, liquidity: int):
        self.result = (token_used, native_used, liquidity)

    def fail_with(self, error: Optional[Exception]):
        """Make the next calls raise `error` (None to clear)."""
        self.failure = error

    def add_liquidity_with_native(self, state, ctx, token, amount_token_desired,
                                  amount_token_min, amount_native_min, recipient,
                                  deadline):
        self.calls.append({
            'token': token,
            'amount_token_desired': amount_token_desired,
            'amount_token_min': amount_token_min,
            'amount_native_min': amount_native_min,
            'recipient': recipient,
            'deadline': deadline,
            'value': ctx.value,
        })
        if self.failure is not None:
            raise self.failure

        self.native.transfer(state, ctx.sender, self.address, ctx.value)
        token_used, native_used, liquidity = self.result
        if self.liquidity_token is not None and liquidity > 0:
            FungibleToken(self.liquidity_token, symbol="LP").mint(state, recipient, liquidity)
        return token_used, native_used, liquidity
