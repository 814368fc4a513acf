"""In-process host environment.

The host stands in for the deterministic machine the engine runs on. It owns
the clock, the address book of deployed contracts, native-asset balances and
the event log, and it provides all-or-nothing transactions: the outermost
mutating call snapshots every registered contract, and any exception restores
those snapshots before propagating.

Contracts declare which attributes are state through ``_state_fields``. Those
attributes are shallow-copied on snapshot, so mutable state must be held in
flat containers (dicts keyed by tuples rather than nested dicts).
"""

from __future__ import annotations

import contextlib
import copy
import functools
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, ClassVar, TypeVar

import structlog
from eth_utils import keccak

from cpamm.errors import InsufficientBalance, UniquenessError
from cpamm.models.types import normalize_address

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])


@dataclass(frozen=True)
class Event:
    """A log record emitted by a contract."""

    address: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)


class Contract:
    """Base class for anything deployed on the host."""

    _state_fields: ClassVar[tuple[str, ...]] = ()

    def __init__(self, host: Host, address: str) -> None:
        self.host = host
        self.address = normalize_address(address, validate=True)

    def snapshot(self) -> dict[str, Any]:
        return {name: copy.copy(getattr(self, name)) for name in self._state_fields}

    def restore(self, state: dict[str, Any]) -> None:
        """Put saved state back; dicts and lists are refilled in place."""
        for name, value in state.items():
            current = getattr(self, name)
            if isinstance(current, dict) and isinstance(value, dict):
                current.clear()
                current.update(value)
            elif isinstance(current, list) and isinstance(value, list):
                current[:] = value
            else:
                setattr(self, name, value)

    def emit(self, name: str, **args: Any) -> None:
        self.host.emit(self.address, name, **args)


def atomic(method: F) -> F:
    """Run a contract method inside a host transaction."""

    @functools.wraps(method)
    def wrapper(self: Contract, *args: Any, **kwargs: Any) -> Any:
        with self.host.transaction():
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


@dataclass
class _Saved:
    contracts: dict[str, Contract]
    states: dict[str, dict[str, Any]]
    native: dict[str, int]
    event_count: int
    nonce: int


class Host:
    """Clock, address book, native balances and transactions."""

    def __init__(self, timestamp: int | None = None) -> None:
        self._timestamp = int(time.time()) if timestamp is None else timestamp
        self._contracts: dict[str, Contract] = {}
        self._native: dict[str, int] = {}
        self._nonce = 0
        self._depth = 0
        self.events: list[Event] = []

    # --- Clock ---

    @property
    def timestamp(self) -> int:
        """Current block time in seconds (full width)."""
        return self._timestamp

    @timestamp.setter
    def timestamp(self, value: int) -> None:
        self._timestamp = value

    def advance(self, seconds: int) -> int:
        self._timestamp += seconds
        return self._timestamp

    # --- Address book ---

    def new_address(self, label: str = "") -> str:
        """Allocate a fresh deterministic address."""
        self._nonce += 1
        digest = keccak(b"cpamm.host" + self._nonce.to_bytes(32, "big") + label.encode())
        return "0x" + digest[12:].hex()

    def deploy(self, contract: Contract) -> Contract:
        """Register a contract at its address.

        Raises:
            UniquenessError: If the address is already occupied
        """
        if contract.address in self._contracts:
            raise UniquenessError(f"Address already in use: {contract.address}")
        self._contracts[contract.address] = contract
        logger.debug(
            "contract_deployed",
            kind=type(contract).__name__,
            address=contract.address,
        )
        return contract

    def at(self, address: str) -> Contract | None:
        return self._contracts.get(normalize_address(address))

    # --- Native asset ---

    def fund(self, address: str, amount: int) -> None:
        """Credit native balance out of thin air (genesis allocation)."""
        address = normalize_address(address)
        self._native[address] = self._native.get(address, 0) + amount

    def native_balance(self, address: str) -> int:
        return self._native.get(normalize_address(address), 0)

    def move_value(self, src: str, dst: str, amount: int) -> None:
        """Move native value without notifying the recipient (call value).

        Raises:
            InsufficientBalance: If src holds less than amount
        """
        src, dst = normalize_address(src), normalize_address(dst)
        balance = self._native.get(src, 0)
        if amount < 0 or balance < amount:
            raise InsufficientBalance(f"Native balance {balance} < {amount}")
        self._native[src] = balance - amount
        self._native[dst] = self._native.get(dst, 0) + amount

    def send_value(self, src: str, dst: str, amount: int) -> None:
        """Move native value and run the recipient's ``receive`` hook, if any."""
        self.move_value(src, dst, amount)
        recipient = self.at(dst)
        hook = getattr(recipient, "receive", None)
        if hook is not None:
            hook(normalize_address(src), amount)

    # --- Events ---

    def emit(self, address: str, name: str, **args: Any) -> None:
        event = Event(address=address, name=name, args=args)
        self.events.append(event)
        logger.debug("event", contract=address[-8:], event_name=name, **args)

    def events_named(self, name: str) -> list[Event]:
        return [event for event in self.events if event.name == name]

    # --- Transactions ---

    def _save(self) -> _Saved:
        return _Saved(
            contracts=dict(self._contracts),
            states={addr: c.snapshot() for addr, c in self._contracts.items()},
            native=dict(self._native),
            event_count=len(self.events),
            nonce=self._nonce,
        )

    def _restore(self, saved: _Saved) -> None:
        self._contracts = saved.contracts
        for addr, state in saved.states.items():
            self._contracts[addr].restore(state)
        self._native = saved.native
        del self.events[saved.event_count :]
        self._nonce = saved.nonce

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """All-or-nothing scope; only the outermost level snapshots."""
        outermost = self._depth == 0
        saved = self._save() if outermost else None
        self._depth += 1
        try:
            yield
        except Exception as err:
            if saved is not None:
                self._restore(saved)
                logger.info(
                    "transaction_reverted",
                    error=type(err).__name__,
                    code=getattr(err, "code", None),
                    detail=str(err),
                )
            raise
        finally:
            self._depth -= 1
