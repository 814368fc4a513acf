"""Fungible-asset interface and the in-memory ERC-20 used for liquidity tokens.

Pools only ever talk to assets through the narrow ``Token`` protocol. The
``ERC20`` class implements that protocol plus EIP-2612 ``permit``; every pool
inherits from it so its liquidity shares are themselves transferable tokens.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import structlog
from eth_abi import encode  # type: ignore[attr-defined]
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import keccak, to_checksum_address

from cpamm.errors import (
    Expired,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidSignature,
)
from cpamm.host import Contract, Host, atomic
from cpamm.models.types import ZERO_ADDRESS, normalize_address
from cpamm.safe_int import UINT256_MAX

logger = structlog.get_logger()

DOMAIN_TYPEHASH = keccak(
    text="EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
PERMIT_TYPEHASH = keccak(
    text="Permit(address owner,address spender,uint256 value,uint256 nonce,uint256 deadline)"
)
DOMAIN_VERSION = "1"


@runtime_checkable
class Token(Protocol):
    """What a pool needs from an asset."""

    address: str

    def balance_of(self, owner: str) -> int: ...

    def transfer(self, sender: str, to: str, value: int) -> bool: ...

    def transfer_from(self, sender: str, owner: str, to: str, value: int) -> bool: ...

    def approve(self, sender: str, spender: str, value: int) -> bool: ...


def domain_separator(name: str, chain_id: int, verifying_contract: str) -> bytes:
    """EIP-712 domain separator for a token."""
    return keccak(
        encode(
            ["bytes32", "bytes32", "bytes32", "uint256", "address"],
            [
                DOMAIN_TYPEHASH,
                keccak(text=name),
                keccak(text=DOMAIN_VERSION),
                chain_id,
                to_checksum_address(verifying_contract),
            ],
        )
    )


def permit_digest(
    separator: bytes, owner: str, spender: str, value: int, nonce: int, deadline: int
) -> bytes:
    """Hash that the owner signs to authorize ``spender`` for ``value``."""
    struct_hash = keccak(
        encode(
            ["bytes32", "address", "address", "uint256", "uint256", "uint256"],
            [
                PERMIT_TYPEHASH,
                to_checksum_address(owner),
                to_checksum_address(spender),
                value,
                nonce,
                deadline,
            ],
        )
    )
    return keccak(b"\x19\x01" + separator + struct_hash)


def recover_signer(digest: bytes, v: int, r: int, s: int) -> str | None:
    """Recover the signing address, or None if the signature is malformed."""
    if v >= 27:
        v -= 27
    try:
        signature = keys.Signature(vrs=(v, r, s))
        public_key = signature.recover_public_key_from_msg_hash(digest)
    except (BadSignature, KeyValidationError, ValueError):
        return None
    return normalize_address(public_key.to_address())


class ERC20(Contract):
    """Balance / allowance ledger with signature-based approvals."""

    _state_fields = ("total_supply", "_balances", "_allowances", "_nonces")

    def __init__(
        self,
        host: Host,
        address: str,
        name: str,
        symbol: str,
        decimals: int = 18,
        chain_id: int = 1,
    ) -> None:
        super().__init__(host, address)
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.chain_id = chain_id
        self.total_supply = 0
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}
        self._nonces: dict[str, int] = {}
        self.domain_separator = domain_separator(name, chain_id, self.address)

    # --- Views ---

    def balance_of(self, owner: str) -> int:
        return self._balances.get(normalize_address(owner), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((normalize_address(owner), normalize_address(spender)), 0)

    def nonces(self, owner: str) -> int:
        return self._nonces.get(normalize_address(owner), 0)

    # --- Internal ledger ---

    def _mint(self, to: str, value: int) -> None:
        to = normalize_address(to)
        self.total_supply += value
        self._balances[to] = self._balances.get(to, 0) + value
        self.emit("Transfer", sender=ZERO_ADDRESS, to=to, value=value)

    def _burn(self, owner: str, value: int) -> None:
        owner = normalize_address(owner)
        balance = self._balances.get(owner, 0)
        if balance < value:
            raise InsufficientBalance(f"Burn of {value} exceeds balance {balance}")
        self._balances[owner] = balance - value
        self.total_supply -= value
        self.emit("Transfer", sender=owner, to=ZERO_ADDRESS, value=value)

    def _approve(self, owner: str, spender: str, value: int) -> None:
        owner, spender = normalize_address(owner), normalize_address(spender)
        self._allowances[(owner, spender)] = value
        self.emit("Approval", owner=owner, spender=spender, value=value)

    def _transfer(self, owner: str, to: str, value: int) -> None:
        owner, to = normalize_address(owner), normalize_address(to)
        balance = self._balances.get(owner, 0)
        if value < 0 or balance < value:
            raise InsufficientBalance(f"Transfer of {value} exceeds balance {balance}")
        self._balances[owner] = balance - value
        self._balances[to] = self._balances.get(to, 0) + value
        self.emit("Transfer", sender=owner, to=to, value=value)

    # --- Entry points ---

    @atomic
    def approve(self, sender: str, spender: str, value: int) -> bool:
        self._approve(sender, spender, value)
        return True

    @atomic
    def transfer(self, sender: str, to: str, value: int) -> bool:
        self._transfer(sender, to, value)
        return True

    @atomic
    def transfer_from(self, sender: str, owner: str, to: str, value: int) -> bool:
        key = (normalize_address(owner), normalize_address(sender))
        allowed = self._allowances.get(key, 0)
        # An allowance of UINT256_MAX is treated as infinite
        if allowed != UINT256_MAX:
            if allowed < value:
                raise InsufficientAllowance(f"Allowance {allowed} < {value}")
            self._allowances[key] = allowed - value
        self._transfer(owner, to, value)
        return True

    @atomic
    def permit(
        self,
        owner: str,
        spender: str,
        value: int,
        deadline: int,
        v: int,
        r: int,
        s: int,
    ) -> None:
        """Approve ``spender`` using the owner's signature instead of a call.

        The per-owner nonce is consumed on success, so a signature can be
        used once.

        Raises:
            Expired: If deadline is in the past
            InvalidSignature: If the signer is not ``owner``
        """
        if deadline < self.host.timestamp:
            raise Expired("Permit expired")
        owner = normalize_address(owner)
        nonce = self.nonces(owner)
        digest = permit_digest(self.domain_separator, owner, spender, value, nonce, deadline)
        recovered = recover_signer(digest, v, r, s)
        if recovered is None or recovered == ZERO_ADDRESS or recovered != owner:
            raise InvalidSignature()
        self._nonces[owner] = nonce + 1
        self._approve(owner, spender, value)
        logger.debug("permit_accepted", token=self.address[-8:], owner=owner[-8:], nonce=nonce)
