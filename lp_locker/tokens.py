"""
Fungible token and native coin ledgers.

Only standard transfer / transfer_from / approve / balance_of semantics are
modelled. Balances live in the shared ledger state so that a rejected locker
operation rolls token movements back together with everything else.
"""
import logging

from lp_locker.errors import TokenError, InvalidParameter
from lp_locker.state import StateView

logger = logging.getLogger(__name__)


def _read_amount(state: StateView, key: bytes) -> int:
    raw = state.get(key)
    return int(raw.decode()) if raw else 0


def _write_amount(state: StateView, key: bytes, amount: int):
    if amount < 0:
        raise TokenError(f"Negative balance for {key!r}")
    if amount == 0:
        state.delete(key)
    else:
        state.set(key, str(amount).encode())


def _check_amount(amount: int):
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
        raise InvalidParameter(f"Amount must be a non-negative integer, got {amount!r}")


class FungibleToken:
    """ERC20-style ledger identified by its address."""

    def __init__(self, address: bytes, symbol: str = ""):
        self.address = address
        self.symbol = symbol or address.hex()[:8]

    def _balance_key(self, holder: bytes) -> bytes:
        return b"TOKEN:" + self.address + b":BAL:" + holder

    def _allowance_key(self, owner: bytes, spender: bytes) -> bytes:
        return b"TOKEN:" + self.address + b":ALW:" + owner + spender

    def _supply_key(self) -> bytes:
        return b"TOKEN:" + self.address + b":SUPPLY"

    def balance_of(self, state: StateView, holder: bytes) -> int:
        return _read_amount(state, self._balance_key(holder))

    def allowance(self, state: StateView, owner: bytes, spender: bytes) -> int:
        return _read_amount(state, self._allowance_key(owner, spender))

    def total_supply(self, state: StateView) -> int:
        return _read_amount(state, self._supply_key())

    def transfer(self, state: StateView, sender: bytes, to: bytes, amount: int):
        _check_amount(amount)
        balance = self.balance_of(state, sender)
        if balance < amount:
            raise TokenError(
                f"Insufficient {self.symbol} balance: have {balance}, need {amount}"
            )
        _write_amount(state, self._balance_key(sender), balance - amount)
        _write_amount(state, self._balance_key(to), self.balance_of(state, to) + amount)

    def approve(self, state: StateView, owner: bytes, spender: bytes, amount: int):
        _check_amount(amount)
        _write_amount(state, self._allowance_key(owner, spender), amount)

    def transfer_from(self, state: StateView, spender: bytes, owner: bytes,
                      to: bytes, amount: int):
        _check_amount(amount)
        allowed = self.allowance(state, owner, spender)
        if allowed < amount:
            raise TokenError(
                f"Insufficient {self.symbol} allowance: have {allowed}, need {amount}"
            )
        self.transfer(state, owner, to, amount)
        _write_amount(state, self._allowance_key(owner, spender), allowed - amount)

    def mint(self, state: StateView, to: bytes, amount: int):
        _check_amount(amount)
        _write_amount(state, self._balance_key(to), self.balance_of(state, to) + amount)
        _write_amount(state, self._supply_key(), self.total_supply(state) + amount)


class NativeLedger:
    """Native coin balances, moved as the value attached to calls."""

    symbol = "native"

    @staticmethod
    def _key(holder: bytes) -> bytes:
        return b"NATIVE:" + holder

    def balance_of(self, state: StateView, holder: bytes) -> int:
        return _read_amount(state, self._key(holder))

    def transfer(self, state: StateView, sender: bytes, to: bytes, amount: int):
        _check_amount(amount)
        balance = self.balance_of(state, sender)
        if balance < amount:
            raise TokenError(
                f"Insufficient native balance: have {balance}, need {amount}"
            )
        _write_amount(state, self._key(sender), balance - amount)
        _write_amount(state, self._key(to), self.balance_of(state, to) + amount)

    def credit(self, state: StateView, holder: bytes, amount: int):
        _check_amount(amount)
        _write_amount(state, self._key(holder), self.balance_of(state, holder) + amount)
