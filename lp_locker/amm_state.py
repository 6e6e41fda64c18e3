"""
AMM (Automated Market Maker) pool state for a utility-token / native-coin pair.
Implements the constant product formula x * y = k with Uniswap V2 style
liquidity minting.
"""
import math
from decimal import Decimal
from typing import Optional

AMM_POOL_PREFIX = b"AMM_POOL:"

# Burned on the first deposit so the pool can never be fully drained
MINIMUM_LIQUIDITY = 1000


class LiquidityPoolState:
    """
    Reserves and LP supply of one token/native pool.

    token_reserve * native_reserve = k
    """

    def __init__(self, data: dict = None):
        if data is None:
            data = {
                'token_reserve': 0,
                'native_reserve': 0,
                'lp_token_supply': 0,
            }

        self.token_reserve = int(data['token_reserve'])
        self.native_reserve = int(data['native_reserve'])
        self.lp_token_supply = int(data['lp_token_supply'])

    def to_dict(self) -> dict:
        return {
            'token_reserve': str(self.token_reserve),
            'native_reserve': str(self.native_reserve),
            'lp_token_supply': str(self.lp_token_supply),
        }

    @property
    def is_empty(self) -> bool:
        return self.token_reserve == 0 or self.native_reserve == 0

    @property
    def current_price(self) -> Decimal:
        """Native coin per utility token; 1 for an empty pool."""
        if self.token_reserve == 0:
            return Decimal('1.0')
        return Decimal(self.native_reserve) / Decimal(self.token_reserve)

    @staticmethod
    def quote(amount_a: int, reserve_a: int, reserve_b: int) -> int:
        """Amount of B matching amount_a at the current reserve ratio."""
        if amount_a <= 0 or reserve_a == 0:
            return 0
        return (amount_a * reserve_b) // reserve_a

    def optimal_amounts(self, token_desired: int, native_desired: int,
                        token_min: int, native_min: int) -> Optional[tuple[int, int]]:
        """
        Largest (token, native) deposit within the desired amounts that keeps
        the pool ratio. None if that pair falls below either minimum.
        """
        if self.is_empty:
            return token_desired, native_desired

        native_optimal = self.quote(token_desired, self.token_reserve, self.native_reserve)
        if native_optimal <= native_desired:
            if native_optimal < native_min:
                return None
            return token_desired, native_optimal

        token_optimal = self.quote(native_desired, self.native_reserve, self.token_reserve)
        if token_optimal > token_desired or token_optimal < token_min:
            return None
        return token_optimal, native_desired

    def liquidity_for(self, token_amount: int, native_amount: int) -> int:
        """
        LP tokens minted for a deposit.

        First deposit: geometric mean minus MINIMUM_LIQUIDITY.
        Later deposits: proportional to the smaller side.
        """
        if self.lp_token_supply == 0:
            return math.isqrt(token_amount * native_amount) - MINIMUM_LIQUIDITY

        from_token = (token_amount * self.lp_token_supply) // self.token_reserve
        from_native = (native_amount * self.lp_token_supply) // self.native_reserve
        return min(from_token, from_native)

    def __repr__(self) -> str:
        return (
            f"LiquidityPoolState("
            f"token_reserve={self.token_reserve}, "
            f"native_reserve={self.native_reserve}, "
            f"lp_supply={self.lp_token_supply}, "
            f"price={self.current_price})"
        )


def get_pool_state(state, token: bytes) -> LiquidityPoolState:
    data = state.get_doc(AMM_POOL_PREFIX + token)
    return LiquidityPoolState(data)


def set_pool_state(state, token: bytes, pool: LiquidityPoolState):
    state.set_doc(AMM_POOL_PREFIX + token, pool.to_dict())
