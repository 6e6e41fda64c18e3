"""
Vault accountant: reward payouts and vault funding, with the running totals
that back the solvency invariant total_reward_issued <= total_reward_deposited.
"""
import logging

from lp_locker.errors import InsufficientVaultError, InvalidParameter
from lp_locker.locker_state import LockerConfig, set_locker_config
from lp_locker.tokens import FungibleToken

logger = logging.getLogger(__name__)


class VaultAccountant:
    def __init__(self, config: LockerConfig, engine_address: bytes):
        self.config = config
        self.engine_address = engine_address
        self.reward_token = FungibleToken(config.reward_token, symbol="reward")

    @property
    def vault_is_engine(self) -> bool:
        return self.config.vault == self.engine_address

    def reward_for(self, liquidity_amount: int) -> int:
        return liquidity_amount * self.config.lp_to_reward_ratio

    def vault_balance(self, state) -> int:
        return self.reward_token.balance_of(state, self.config.vault)

    def ensure_solvent(self, state, reward_amount: int):
        """Raise InsufficientVaultError unless reward_amount can be paid out."""
        balance = self.vault_balance(state)
        if balance < reward_amount:
            raise InsufficientVaultError(
                f"Insufficient reward tokens in vault: have {balance}, need {reward_amount}"
            )

        available = self.config.available_rewards
        if reward_amount > available:
            raise InsufficientVaultError(
                f"Insufficient deposited rewards: available {available}, need {reward_amount}"
            )

        if not self.vault_is_engine:
            allowed = self.reward_token.allowance(state, self.config.vault, self.engine_address)
            if allowed < reward_amount:
                raise InsufficientVaultError(
                    f"Vault allowance too low: approved {allowed}, need {reward_amount}"
                )

    def settle_reward(self, state, recipient: bytes, liquidity_amount: int) -> int:
        """Pay the reward for liquidity_amount to recipient and book it."""
        reward = self.reward_for(liquidity_amount)
        self.ensure_solvent(state, reward)

        if self.vault_is_engine:
            self.reward_token.transfer(state, self.engine_address, recipient, reward)
        else:
            self.reward_token.transfer_from(
                state, self.engine_address, self.config.vault, recipient, reward
            )

        self.config.total_locked_liquidity += liquidity_amount
        self.config.total_reward_issued += reward
        set_locker_config(state, self.config)
        return reward

    def deposit(self, state, depositor: bytes, amount: int) -> int:
        """
        Move amount reward tokens from depositor into the vault.
        Returns the new total deposited.
        """
        if amount <= 0:
            raise InvalidParameter("Deposit amount must be positive")

        self.reward_token.transfer_from(
            state, self.engine_address, depositor, self.config.vault, amount
        )
        self.config.total_reward_deposited += amount
        set_locker_config(state, self.config)

        logger.info(
            f"Vault {self.config.vault.hex()[:8]} funded with {amount}, "
            f"total deposited {self.config.total_reward_deposited}"
        )
        return self.config.total_reward_deposited
