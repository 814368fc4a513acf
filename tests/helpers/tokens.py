"""Asset doubles.

The engine treats assets as external collaborators reached through the
``Token`` protocol; these subclasses add what tests need on top of ERC20.
"""

from cpamm.host import Host
from cpamm.token import ERC20


class MintableToken(ERC20):
    """ERC20 with an unrestricted mint for funding test accounts."""

    def __init__(self, host: Host, address: str, symbol: str = "TKN", decimals: int = 18) -> None:
        super().__init__(host, address, f"Test {symbol}", symbol, decimals)

    def mint(self, to: str, value: int) -> None:
        self._mint(to, value)


class FeeOnTransferToken(MintableToken):
    """Burns 1% of every transfer, so recipients get less than was sent."""

    FEE_PERCENT = 1

    def _transfer(self, owner: str, to: str, value: int) -> None:
        fee = value * self.FEE_PERCENT // 100
        if fee > 0:
            self._burn(owner, fee)
        super()._transfer(owner, to, value - fee)
