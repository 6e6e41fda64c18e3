"""
Shared fixtures: a fresh LevelDB directory per test and a locker wired to a
MockRouter, initialized with the reference parameters.
"""
import shutil
import tempfile

import pytest

from lp_locker.core import BlockContext
from lp_locker.crypto import generate_hash
from lp_locker.db import DB
from lp_locker.locker import LOCKER_ADDRESS
from lp_locker.proxy import LockerProxy
from lp_locker.router import MockRouter
from lp_locker.tokens import FungibleToken, NativeLedger

TOKEN_UNIT = 10**18


def make_address(label: str) -> bytes:
    return generate_hash(label.encode())[-20:]


AUTHORITY = make_address("authority")
USER = make_address("user")
OTHER = make_address("other")
UTILITY_TOKEN = make_address("utility-token")
REWARD_TOKEN = make_address("reward-token")
LP_TOKEN = make_address("lp-token")
ROUTER = make_address("router")


def default_params(**overrides) -> dict:
    params = {
        'utility_token': UTILITY_TOKEN,
        'reward_token': REWARD_TOKEN,
        'router': ROUTER,
        'liquidity_token': LP_TOKEN,
        'vault': LOCKER_ADDRESS,
        'lp_divisor': TOKEN_UNIT,
        'lp_to_reward_ratio': 10,
        'min_native_amount': TOKEN_UNIT // 100,
        'min_utility_amount': TOKEN_UNIT,
        'max_slippage_bps': 1000,
        'default_slippage_bps': 200,
        'rate_limit_enabled': True,
        'min_seconds_between_tx': 60,
        'max_tx_per_block': 1,
    }
    params.update(overrides)
    return params


class LockerEnv:
    """A locker plus the ledger helpers tests need to set up balances."""

    def __init__(self, db: DB):
        self.db = db
        self.router = MockRouter(ROUTER, liquidity_token=LP_TOKEN)
        self.locker = LockerProxy(db, routers={ROUTER: self.router})
        self.store = self.locker.store
        self.utility = FungibleToken(UTILITY_TOKEN, symbol="utility")
        self.reward = FungibleToken(REWARD_TOKEN, symbol="reward")
        self.lp = FungibleToken(LP_TOKEN, symbol="LP")
        self.native = NativeLedger()

    def initialize(self, **overrides):
        return self.locker.initialize(default_params(**overrides), AUTHORITY, now=1)

    def mint(self, token: FungibleToken, holder: bytes, amount: int):
        with self.store.transaction() as state:
            token.mint(state, holder, amount)

    def approve(self, token: FungibleToken, owner: bytes, spender: bytes, amount: int):
        with self.store.transaction() as state:
            token.approve(state, owner, spender, amount)

    def fund_native(self, holder: bytes, amount: int):
        with self.store.transaction() as state:
            self.native.credit(state, holder, amount)

    def balance(self, token, holder: bytes) -> int:
        with self.store.transaction() as state:
            return token.balance_of(state, holder)

    def deposit(self, amount: int):
        """Fund the vault through the authority."""
        self.mint(self.reward, AUTHORITY, amount)
        self.approve(self.reward, AUTHORITY, LOCKER_ADDRESS, amount)
        return self.locker.deposit_rewards(AUTHORITY, amount, now=1)

    def prepare_user(self, user: bytes, utility_amount: int, native_amount: int):
        self.mint(self.utility, user, utility_amount)
        self.approve(self.utility, user, LOCKER_ADDRESS, utility_amount)
        self.fund_native(user, native_amount)

    @staticmethod
    def block(number: int = 1, timestamp: int = 1_000) -> BlockContext:
        return BlockContext(number=number, timestamp=timestamp)


@pytest.fixture
def temp_db():
    """A LevelDB database in a throwaway directory."""
    temp_dir = tempfile.mkdtemp()
    db = DB(temp_dir)
    yield db
    db.close()
    shutil.rmtree(temp_dir)


@pytest.fixture
def env(temp_db):
    """Initialized locker with the vault at the locker's own address."""
    locker_env = LockerEnv(temp_db)
    locker_env.initialize()
    return locker_env
