"""Pytest configuration and fixtures."""

import pytest

from cpamm.config import EngineConfig
from cpamm.deployment import Deployment, deploy
from cpamm.factory import Factory
from cpamm.host import Host
from cpamm.router import Router
from cpamm.weth import WrappedNative
from tests.helpers import E18, START_TIME, MintableToken, make_token

# Balance every funded account starts with, per asset
INITIAL_BALANCE = 10**9 * E18


@pytest.fixture
def host() -> Host:
    """A host whose clock starts at START_TIME."""
    return Host(timestamp=START_TIME)


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def deployment(host: Host, config: EngineConfig) -> Deployment:
    """Wrapped native asset, factory and router on a fresh host."""
    return deploy(config, host=host)


@pytest.fixture
def factory(deployment: Deployment) -> Factory:
    return deployment.factory


@pytest.fixture
def router(deployment: Deployment) -> Router:
    return deployment.router


@pytest.fixture
def weth(deployment: Deployment) -> WrappedNative:
    return deployment.weth


@pytest.fixture
def alice(host: Host) -> str:
    """Funded with native value; assets are minted by the token fixtures."""
    address = host.new_address("alice")
    host.fund(address, INITIAL_BALANCE)
    return address


@pytest.fixture
def bob(host: Host) -> str:
    address = host.new_address("bob")
    host.fund(address, INITIAL_BALANCE)
    return address


@pytest.fixture
def token_a(host: Host, alice: str) -> MintableToken:
    return make_token(host, "TKA", holder=alice, amount=INITIAL_BALANCE)


@pytest.fixture
def token_b(host: Host, alice: str) -> MintableToken:
    return make_token(host, "TKB", holder=alice, amount=INITIAL_BALANCE)


@pytest.fixture
def token_c(host: Host, alice: str) -> MintableToken:
    return make_token(host, "TKC", holder=alice, amount=INITIAL_BALANCE)


@pytest.fixture
def token_d(host: Host, alice: str) -> MintableToken:
    return make_token(host, "TKD", holder=alice, amount=INITIAL_BALANCE)
