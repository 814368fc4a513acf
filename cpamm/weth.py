"""Wrapped native asset.

Pools only hold ERC-20 style assets, so native value crosses into a pool
through this wrapper: ``deposit`` (or a plain native send) mints wrapped units
1:1, ``withdraw`` burns them and sends the native value back.
"""

from __future__ import annotations

from cpamm.errors import InsufficientBalance
from cpamm.host import Host, atomic
from cpamm.models.types import normalize_address
from cpamm.token import ERC20


class WrappedNative(ERC20):
    def __init__(self, host: Host, address: str, chain_id: int = 1) -> None:
        super().__init__(host, address, "Wrapped Ether", "WETH", 18, chain_id)

    def receive(self, sender: str, value: int) -> None:
        """Native value sent to the wrapper is wrapped for the sender."""
        sender = normalize_address(sender)
        self._balances[sender] = self._balances.get(sender, 0) + value
        self.total_supply += value
        self.emit("Deposit", dst=sender, wad=value)

    @atomic
    def deposit(self, sender: str, value: int) -> None:
        self.host.send_value(sender, self.address, value)

    @atomic
    def withdraw(self, sender: str, wad: int) -> None:
        sender = normalize_address(sender)
        balance = self._balances.get(sender, 0)
        if balance < wad:
            raise InsufficientBalance(f"Withdraw of {wad} exceeds balance {balance}")
        self._balances[sender] = balance - wad
        self.total_supply -= wad
        self.emit("Withdrawal", src=sender, wad=wad)
        self.host.send_value(self.address, sender, wad)
