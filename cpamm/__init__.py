"""Constant-product AMM engine - Python implementation."""

from cpamm.config import DEFAULT_CONFIG, EngineConfig
from cpamm.deployment import Deployment, deploy
from cpamm.errors import AmmError

__version__ = "0.1.0"
__all__ = ["DEFAULT_CONFIG", "AmmError", "Deployment", "EngineConfig", "deploy", "__version__"]
