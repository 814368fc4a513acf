"""Pool registry.

The factory creates at most one pool per unordered asset pair and places it at
a location that anyone can compute from (factory address, sorted pair, code
fingerprint) alone. It also owns the protocol fee switch read by every pool.
"""

from __future__ import annotations

import structlog
from eth_abi.packed import encode_packed
from eth_utils import keccak

from cpamm.config import DEFAULT_CONFIG, EngineConfig
from cpamm.errors import Forbidden, PoolExists
from cpamm.host import Contract, Host, atomic
from cpamm.models.types import ZERO_ADDRESS, normalize_address, sort_tokens
from cpamm.pool import Pool

logger = structlog.get_logger()


def pool_salt(token0: str, token1: str) -> bytes:
    return keccak(encode_packed(["address", "address"], [token0, token1]))


def pool_address(
    factory: str,
    token_a: str,
    token_b: str,
    code_hash: bytes = DEFAULT_CONFIG.pool_code_hash,
) -> str:
    """Deterministic pool location for an unordered pair.

    ``keccak256(0xff ++ factory ++ keccak256(token0 ++ token1) ++ code_hash)[12:]``.
    Pure: reads no stored state, so it can be evaluated anywhere.
    """
    token0, token1 = sort_tokens(token_a, token_b)
    factory_bytes = bytes.fromhex(normalize_address(factory, validate=True)[2:])
    digest = keccak(b"\xff" + factory_bytes + pool_salt(token0, token1) + code_hash)
    return "0x" + digest[12:].hex()


class Factory(Contract):
    """Registry of pools plus the protocol fee configuration."""

    _state_fields = ("fee_to", "fee_to_setter", "_pools", "_all_pools")

    def __init__(
        self,
        host: Host,
        address: str,
        fee_to_setter: str,
        config: EngineConfig = DEFAULT_CONFIG,
        pools: dict[tuple[str, str], str] | None = None,
    ) -> None:
        """Initialize the factory.

        Args:
            host: Host environment the factory and its pools live on
            address: Factory address
            fee_to_setter: Account allowed to change the fee configuration
            config: Engine configuration shared with every pool
            pools: Pair map (both orderings) -> pool address. Starts empty
                if None.
        """
        super().__init__(host, address)
        self.config = config
        self.fee_to = ZERO_ADDRESS
        self.fee_to_setter = normalize_address(fee_to_setter, validate=True)
        self._pools: dict[tuple[str, str], str] = pools if pools is not None else {}
        self._all_pools: list[str] = []

    def get_pool(self, token_a: str, token_b: str) -> str:
        """Pool address for a pair (order independent), or the zero address."""
        key = (normalize_address(token_a), normalize_address(token_b))
        return self._pools.get(key, ZERO_ADDRESS)

    def pool(self, token_a: str, token_b: str) -> Pool | None:
        """The Pool contract for a pair, if one was created."""
        address = self.get_pool(token_a, token_b)
        if address == ZERO_ADDRESS:
            return None
        contract = self.host.at(address)
        return contract if isinstance(contract, Pool) else None

    def all_pools(self, index: int) -> str:
        return self._all_pools[index]

    def all_pools_length(self) -> int:
        return len(self._all_pools)

    def pool_address_for(self, token_a: str, token_b: str) -> str:
        return pool_address(self.address, token_a, token_b, self.config.pool_code_hash)

    @atomic
    def create_pool(self, sender: str, token_a: str, token_b: str) -> str:
        """Create the pool for an unordered pair.

        Raises:
            IdenticalAddresses: If both assets are the same
            ZeroAddress: If either asset is the zero address
            PoolExists: If the pair already has a pool
        """
        token0, token1 = sort_tokens(token_a, token_b)
        if (token0, token1) in self._pools:
            raise PoolExists(f"Pool already exists for {token0}/{token1}")

        address = self.pool_address_for(token0, token1)
        pool = Pool(self.host, address, self)
        self.host.deploy(pool)
        pool.initialize(self.address, token0, token1)

        self._pools[(token0, token1)] = address
        self._pools[(token1, token0)] = address
        self._all_pools.append(address)
        count = len(self._all_pools)
        self.emit("PoolCreated", token0=token0, token1=token1, pool=address, count=count)
        logger.info(
            "pool_created",
            pool=address,
            token0=token0[-8:],
            token1=token1[-8:],
            count=count,
            sender=normalize_address(sender)[-8:],
        )
        return address

    @atomic
    def set_fee_to(self, sender: str, fee_to: str) -> None:
        if normalize_address(sender) != self.fee_to_setter:
            raise Forbidden()
        self.fee_to = normalize_address(fee_to, validate=True)
        logger.info("fee_to_set", fee_to=self.fee_to)

    @atomic
    def set_fee_to_setter(self, sender: str, fee_to_setter: str) -> None:
        if normalize_address(sender) != self.fee_to_setter:
            raise Forbidden()
        self.fee_to_setter = normalize_address(fee_to_setter, validate=True)
