"""
Liquidity adapter: the single external AMM call of an operation, wrapped in
slippage bounds on the way in and an independent output check on the way out.
"""
import logging

from lp_locker.core import BlockContext, CallContext
from lp_locker.errors import AmountMismatch, ExternalCallError, SlippageExceeded
from lp_locker.locker_state import BPS_DENOMINATOR, LockerConfig
from lp_locker.router import AmmRouter
from lp_locker.tokens import FungibleToken

logger = logging.getLogger(__name__)

# Seconds the router may take before the call counts as expired
DEADLINE_WINDOW = 300


def apply_slippage(amount: int, slippage_bps: int) -> int:
    """Lowest acceptable amount after slippage_bps of slippage."""
    return amount * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


class LiquidityAdapter:
    def __init__(self, config: LockerConfig, router: AmmRouter, engine_address: bytes):
        self.config = config
        self.router = router
        self.engine_address = engine_address
        self.utility_token = FungibleToken(config.utility_token, symbol="utility")

    def expected_liquidity(self, utility_amount: int, native_amount: int) -> int:
        return utility_amount * native_amount // self.config.lp_divisor

    def liquidity_floor(self, utility_amount: int, native_amount: int, slippage_bps: int) -> int:
        """Smallest router output the protocol accepts."""
        expected = self.expected_liquidity(utility_amount, native_amount)
        return apply_slippage(expected, slippage_bps)

    def add_liquidity(self, state, block: BlockContext, utility_amount: int,
                      native_amount: int, slippage_bps: int, payment: int) -> int:
        """
        Add utility_amount + native_amount of liquidity held by the engine.

        Returns the liquidity minted to the engine. Raises AmountMismatch,
        ExternalCallError or SlippageExceeded.
        """
        if payment != native_amount:
            raise AmountMismatch(
                f"Native amount mismatch: sent {payment}, declared {native_amount}"
            )

        token_min = apply_slippage(utility_amount, slippage_bps)
        native_min = apply_slippage(native_amount, slippage_bps)
        deadline = block.timestamp + DEADLINE_WINDOW

        self.utility_token.approve(state, self.engine_address, self.router.address, utility_amount)
        ctx = CallContext(sender=self.engine_address, block=block, value=native_amount)
        try:
            token_used, native_used, liquidity = self.router.add_liquidity_with_native(
                state,
                ctx,
                self.config.utility_token,
                utility_amount,
                token_min,
                native_min,
                self.engine_address,
                deadline,
            )
        except Exception as e:
            raise ExternalCallError(f"AMM call failed: {e}") from e
        finally:
            self.utility_token.approve(state, self.engine_address, self.router.address, 0)

        if liquidity <= 0:
            raise ExternalCallError("AMM call failed: no liquidity minted")

        floor = self.liquidity_floor(utility_amount, native_amount, slippage_bps)
        if liquidity < floor:
            raise SlippageExceeded(
                f"Slippage exceeded: router minted {liquidity}, minimum {floor}"
            )

        logger.info(
            f"Router {self.router.address.hex()[:8]} used {token_used} utility + "
            f"{native_used} native, minted {liquidity} (floor {floor})"
        )
        return liquidity
