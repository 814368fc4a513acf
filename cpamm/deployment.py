"""Wire a complete engine: host, wrapped native asset, factory and router."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from cpamm.config import EngineConfig
from cpamm.factory import Factory
from cpamm.host import Host
from cpamm.router import Router
from cpamm.weth import WrappedNative

logger = structlog.get_logger()


@dataclass
class Deployment:
    host: Host
    weth: WrappedNative
    factory: Factory
    router: Router

    @property
    def config(self) -> EngineConfig:
        return self.factory.config


def deploy(
    config: EngineConfig | None = None,
    host: Host | None = None,
    fee_to_setter: str | None = None,
) -> Deployment:
    """Deploy the core contracts on a (possibly fresh) host.

    Args:
        config: Engine configuration. Read from the environment if None.
        host: Host to deploy on. A new one starting at wall-clock time if None.
        fee_to_setter: Account controlling the protocol fee. A fresh address
            if None.
    """
    config = config or EngineConfig.from_env()
    host = host or Host()
    fee_to_setter = fee_to_setter or host.new_address("fee_to_setter")

    weth = WrappedNative(host, host.new_address("weth"), config.chain_id)
    host.deploy(weth)
    factory = Factory(host, host.new_address("factory"), fee_to_setter, config)
    host.deploy(factory)
    router = Router(host, host.new_address("router"), factory, weth)
    host.deploy(router)

    logger.info(
        "engine_deployed",
        factory=factory.address,
        router=router.address,
        weth=weth.address,
        fee_factor=config.fee_factor,
        fee_base=config.fee_base,
    )
    return Deployment(host=host, weth=weth, factory=factory, router=router)
