"""Test helpers module for shared test utilities.

- constants: start time, deadlines and common amounts
- tokens: mintable and fee-on-transfer asset doubles
- callees: flash swap recipients
- factories: deployment shortcuts (tokens, liquidity, permits)
"""

from tests.helpers.callees import FlashBorrower, ReentrantBorrower
from tests.helpers.constants import DEADLINE, E18, START_TIME
from tests.helpers.factories import (
    make_token,
    provide_liquidity,
    sign_permit,
)
from tests.helpers.tokens import FeeOnTransferToken, MintableToken

__all__ = [
    # Constants
    "DEADLINE",
    "E18",
    "START_TIME",
    # Doubles
    "FeeOnTransferToken",
    "FlashBorrower",
    "MintableToken",
    "ReentrantBorrower",
    # Factories
    "make_token",
    "provide_liquidity",
    "sign_permit",
]
