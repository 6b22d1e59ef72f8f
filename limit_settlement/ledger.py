"""
Host capabilities consumed by the settlement engine, and an in-memory host.

The real ledger applies every top-level call atomically and in sequence; the
in-memory host reproduces that with ``atomic()``, which snapshots every
registered component and restores all of them if the call raises.
"""
import copy
import hashlib
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol

from stellar_sdk import strkey

logger = logging.getLogger(__name__)


class Stateful(Protocol):
    def snapshot(self) -> Any: ...

    def restore(self, state: Any) -> None: ...


class Token(Protocol):
    address: str

    def balance_of(self, owner: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...

    def transfer(self, caller: str, to: str, amount: int) -> bool: ...

    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> bool: ...

    def approve(self, caller: str, spender: str, amount: int) -> bool: ...


class Ledger(Protocol):
    def now(self) -> int: ...

    def block_height(self) -> int: ...

    def balance(self, address: str) -> int: ...

    def send_value(self, sender: str, to: str, amount: int) -> bool: ...

    def contract(self, address: str) -> Any: ...

    def register(self, component: Stateful): ...

    def atomic(self) -> Any: ...


class AmmRouter(Protocol):
    address: str

    def swap_exact_tokens_for_tokens_supporting_fee_on_transfer_tokens(
        self,
        caller: str,
        amount_in: int,
        amount_out_min: int,
        path: List[str],
        to: str,
        deadline: int,
    ) -> Any: ...


def contract_address(label: str) -> str:
    return strkey.StrKey.encode_contract(hashlib.sha256(label.encode("utf-8")).digest())


class InMemoryToken:
    def __init__(self, address: str, symbol: str, transfer_fee_bps: int = 0):
        self.address = address
        self.symbol = symbol
        # Fee-on-transfer tokens deliver less than the amount moved
        self.transfer_fee_bps = transfer_fee_bps
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[tuple, int] = {}
        self.on_transfer: Optional[Callable[[str, str, int], None]] = None

    def mint(self, to: str, amount: int):
        self.balances[to] = self.balances.get(to, 0) + amount

    def balance_of(self, owner: str) -> int:
        return self.balances.get(owner, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    def approve(self, caller: str, spender: str, amount: int) -> bool:
        self.allowances[(caller, spender)] = amount
        return True

    def transfer(self, caller: str, to: str, amount: int) -> bool:
        return self._move(caller, to, amount)

    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> bool:
        allowed = self.allowance(owner, caller)
        if allowed < amount:
            return False
        if not self._move(owner, to, amount):
            return False
        self.allowances[(owner, caller)] = allowed - amount
        return True

    def _move(self, sender: str, to: str, amount: int) -> bool:
        if amount < 0 or self.balance_of(sender) < amount:
            return False
        fee = amount * self.transfer_fee_bps // 10_000
        self.balances[sender] = self.balance_of(sender) - amount
        self.balances[to] = self.balance_of(to) + amount - fee
        if self.on_transfer:
            self.on_transfer(sender, to, amount)
        return True

    def snapshot(self) -> Any:
        return dict(self.balances), dict(self.allowances)

    def restore(self, state: Any) -> None:
        balances, allowances = state
        self.balances = dict(balances)
        self.allowances = dict(allowances)


class InMemoryLedger:
    def __init__(self, timestamp: Optional[int] = None, block: int = 1):
        self.timestamp = int(time.time()) if timestamp is None else timestamp
        self.block = block
        self.native: Dict[str, int] = {}
        self.contracts: Dict[str, Any] = {}
        self._value_hooks: Dict[str, Callable[[str, int], None]] = {}
        self._participants: List[Stateful] = [self]
        self._depth = 0

    def now(self) -> int:
        return self.timestamp

    def block_height(self) -> int:
        return self.block

    def advance(self, seconds: int = 0, blocks: int = 1):
        self.timestamp += seconds
        self.block += blocks

    # =========================================================================
    # Contracts
    # =========================================================================

    def register(self, component: Stateful):
        if not any(p is component for p in self._participants):
            self._participants.append(component)

    def deploy(self, address: str, contract: Any) -> Any:
        self.contracts[address] = contract
        if hasattr(contract, "snapshot") and hasattr(contract, "restore"):
            self.register(contract)
        return contract

    def create_token(self, symbol: str, transfer_fee_bps: int = 0) -> InMemoryToken:
        address = contract_address(f"token:{symbol}")
        return self.deploy(address, InMemoryToken(address, symbol, transfer_fee_bps))

    def contract(self, address: str) -> Any:
        if address not in self.contracts:
            raise KeyError(f"No contract deployed at {address}")
        return self.contracts[address]

    # =========================================================================
    # Native value
    # =========================================================================

    def balance(self, address: str) -> int:
        return self.native.get(address, 0)

    def mint_native(self, address: str, amount: int):
        self.native[address] = self.balance(address) + amount

    def on_value_received(self, address: str, hook: Callable[[str, int], None]):
        self._value_hooks[address] = hook

    def send_value(self, sender: str, to: str, amount: int) -> bool:
        if amount < 0 or self.balance(sender) < amount:
            return False
        self.native[sender] = self.balance(sender) - amount
        self.native[to] = self.balance(to) + amount
        hook = self._value_hooks.get(to)
        if hook:
            hook(sender, amount)
        return True

    # =========================================================================
    # Atomicity
    # =========================================================================

    @contextmanager
    def atomic(self) -> Iterator[None]:
        if self._depth:
            yield
            return

        saved = [(p, copy.deepcopy(p.snapshot())) for p in self._participants]
        self._depth += 1
        try:
            yield
        except BaseException:
            for participant, state in saved:
                participant.restore(state)
            logger.debug(f"Rolled back call at block {self.block}")
            raise
        finally:
            self._depth -= 1

    def snapshot(self) -> Any:
        return dict(self.native)

    def restore(self, state: Any) -> None:
        self.native = dict(state)
