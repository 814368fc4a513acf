"""Tests for the router: liquidity management, swaps and quotes."""

import pytest
from eth_account import Account

from cpamm import library
from cpamm.errors import (
    ExcessiveInputAmount,
    Expired,
    Forbidden,
    InsufficientAAmount,
    InsufficientAllowance,
    InsufficientBalance,
    InsufficientBAmount,
    InsufficientLiquidity,
    InsufficientOutputAmount,
    InvalidPath,
    InvalidSignature,
    InvariantViolation,
    ZeroAddress,
)
from cpamm.models.types import ZERO_ADDRESS, normalize_address
from cpamm.safe_int import UINT256_MAX
from tests.helpers import (
    DEADLINE,
    E18,
    START_TIME,
    FeeOnTransferToken,
    make_token,
    provide_liquidity,
    sign_permit,
)

OWNER_KEY = bytes.fromhex("59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d")
OWNER = normalize_address(Account.from_key(OWNER_KEY).address)


@pytest.fixture
def approved(router, alice, token_a, token_b, token_c):
    """Alice lets the router pull any amount of the test assets."""
    for token in (token_a, token_b, token_c):
        token.approve(alice, router.address, UINT256_MAX)
    return alice


@pytest.fixture
def dtt(host, router, alice):
    """Fee-on-transfer asset held by alice and approved for the router."""
    token = make_token(host, "DTT", holder=alice, amount=10**9 * E18, cls=FeeOnTransferToken)
    token.approve(alice, router.address, UINT256_MAX)
    return token


def add_eth_liquidity(router, sender, token, amount_token, amount_eth, to=None):
    token.approve(sender, router.address, UINT256_MAX)
    return router.add_liquidity_eth(
        sender, token.address, amount_token, 0, 0, to or sender, DEADLINE, value=amount_eth
    )


class TestAddLiquidity:
    """Tests for add_liquidity."""

    def test_creates_pool_lazily(self, router, factory, approved, token_a, token_b):
        amount_a, amount_b, liquidity = router.add_liquidity(
            approved, token_a.address, token_b.address, E18, 4 * E18, 0, 0, approved, DEADLINE
        )

        assert (amount_a, amount_b) == (E18, 4 * E18)
        assert liquidity == 2 * E18 - 1000
        pool = factory.pool(token_a.address, token_b.address)
        assert pool.balance_of(approved) == liquidity
        assert factory.all_pools_length() == 1

    def test_reduces_b_toward_ratio(self, router, approved, token_a, token_b):
        provide_liquidity(router, approved, token_a, token_b, E18, 4 * E18)
        amount_a, amount_b, _ = router.add_liquidity(
            approved, token_a.address, token_b.address, E18, 10 * E18, 0, 0, approved, DEADLINE
        )
        assert (amount_a, amount_b) == (E18, 4 * E18)

    def test_reduces_a_toward_ratio(self, router, approved, token_a, token_b):
        provide_liquidity(router, approved, token_a, token_b, E18, 4 * E18)
        amount_a, amount_b, _ = router.add_liquidity(
            approved, token_a.address, token_b.address, 10 * E18, 4 * E18, 0, 0, approved, DEADLINE
        )
        assert (amount_a, amount_b) == (E18, 4 * E18)

    def test_b_below_minimum(self, router, approved, token_a, token_b):
        provide_liquidity(router, approved, token_a, token_b, E18, 4 * E18)
        with pytest.raises(InsufficientBAmount):
            router.add_liquidity(
                approved, token_a.address, token_b.address, E18, 10 * E18, 0, 5 * E18, approved, DEADLINE
            )

    def test_a_below_minimum(self, router, approved, token_a, token_b):
        provide_liquidity(router, approved, token_a, token_b, E18, 4 * E18)
        with pytest.raises(InsufficientAAmount):
            router.add_liquidity(
                approved, token_a.address, token_b.address, 10 * E18, 4 * E18, 2 * E18, 0, approved, DEADLINE
            )

    def test_expired_creates_nothing(self, router, factory, approved, token_a, token_b):
        with pytest.raises(Expired):
            router.add_liquidity(
                approved, token_a.address, token_b.address, E18, E18, 0, 0, approved, START_TIME - 1
            )
        assert factory.all_pools_length() == 0

    def test_zero_recipient(self, router, factory, approved, token_a, token_b):
        with pytest.raises(ZeroAddress):
            router.add_liquidity(
                approved, token_a.address, token_b.address, E18, E18, 0, 0, ZERO_ADDRESS, DEADLINE
            )
        assert factory.all_pools_length() == 0


class TestRemoveLiquidity:
    """Tests for remove_liquidity and its signed variant."""

    def test_remove(self, router, factory, approved, bob, token_a, token_b):
        _, _, liquidity = provide_liquidity(router, approved, token_a, token_b, E18, 4 * E18)
        pool = factory.pool(token_a.address, token_b.address)
        pool.approve(approved, router.address, UINT256_MAX)

        amount_a, amount_b = router.remove_liquidity(
            approved, token_a.address, token_b.address, liquidity, 0, 0, bob, DEADLINE
        )

        assert (amount_a, amount_b) == (E18 - 500, 4 * E18 - 2000)
        assert token_a.balance_of(bob) == E18 - 500
        assert token_b.balance_of(bob) == 4 * E18 - 2000
        assert pool.total_supply == 1000

    def test_minimum_rolls_back(self, router, factory, approved, bob, token_a, token_b):
        _, _, liquidity = provide_liquidity(router, approved, token_a, token_b, E18, 4 * E18)
        pool = factory.pool(token_a.address, token_b.address)
        pool.approve(approved, router.address, UINT256_MAX)

        with pytest.raises(InsufficientAAmount):
            router.remove_liquidity(
                approved, token_a.address, token_b.address, liquidity, E18, 0, bob, DEADLINE
            )
        assert pool.balance_of(approved) == liquidity
        assert token_a.balance_of(bob) == 0

    def test_requires_allowance(self, router, approved, bob, token_a, token_b):
        _, _, liquidity = provide_liquidity(router, approved, token_a, token_b, E18, 4 * E18)
        with pytest.raises(InsufficientAllowance):
            router.remove_liquidity(
                approved, token_a.address, token_b.address, liquidity, 0, 0, bob, DEADLINE
            )

    @pytest.mark.parametrize("approve_max", [False, True])
    def test_with_permit(self, router, factory, approved, token_a, token_b, approve_max):
        _, _, liquidity = provide_liquidity(
            router, approved, token_a, token_b, E18, 4 * E18, to=OWNER
        )
        pool = factory.pool(token_a.address, token_b.address)
        value = UINT256_MAX if approve_max else liquidity
        v, r, s = sign_permit(OWNER_KEY, pool, router.address, value, DEADLINE)

        amount_a, amount_b = router.remove_liquidity_with_permit(
            OWNER, token_a.address, token_b.address, liquidity, 0, 0, OWNER, DEADLINE,
            approve_max, v, r, s,
        )

        assert (amount_a, amount_b) == (E18 - 500, 4 * E18 - 2000)
        assert token_a.balance_of(OWNER) == E18 - 500
        assert pool.nonces(OWNER) == 1

    def test_with_bad_permit(self, router, factory, approved, token_a, token_b):
        _, _, liquidity = provide_liquidity(
            router, approved, token_a, token_b, E18, 4 * E18, to=OWNER
        )
        pool = factory.pool(token_a.address, token_b.address)
        # Signed for less than is being removed
        v, r, s = sign_permit(OWNER_KEY, pool, router.address, liquidity - 1, DEADLINE)

        with pytest.raises(InvalidSignature):
            router.remove_liquidity_with_permit(
                OWNER, token_a.address, token_b.address, liquidity, 0, 0, OWNER, DEADLINE,
                False, v, r, s,
            )
        assert pool.balance_of(OWNER) == liquidity


class TestNativeLiquidity:
    """Tests for the native-asset liquidity variants."""

    def test_add_liquidity_eth(self, router, factory, weth, host, alice, token_a):
        native = host.native_balance(alice)

        amount_token, amount_eth, liquidity = add_eth_liquidity(router, alice, token_a, E18, 4 * E18)

        assert (amount_token, amount_eth) == (E18, 4 * E18)
        assert liquidity == 2 * E18 - 1000
        assert host.native_balance(alice) == native - 4 * E18
        pool = factory.pool(token_a.address, weth.address)
        assert weth.balance_of(pool.address) == 4 * E18
        assert host.native_balance(router.address) == 0

    def test_refunds_unused_value(self, router, host, alice, token_a):
        add_eth_liquidity(router, alice, token_a, E18, 4 * E18)
        native = host.native_balance(alice)

        _, amount_eth, _ = add_eth_liquidity(router, alice, token_a, E18, 10 * E18)

        assert amount_eth == 4 * E18
        assert host.native_balance(alice) == native - 4 * E18
        assert host.native_balance(router.address) == 0

    def test_remove_liquidity_eth(self, router, factory, weth, host, alice, bob, token_a):
        _, _, liquidity = add_eth_liquidity(router, alice, token_a, E18, 4 * E18)
        pool = factory.pool(token_a.address, weth.address)
        pool.approve(alice, router.address, UINT256_MAX)
        native = host.native_balance(bob)

        amount_token, amount_eth = router.remove_liquidity_eth(
            alice, token_a.address, liquidity, 0, 0, bob, DEADLINE
        )

        assert (amount_token, amount_eth) == (E18 - 500, 4 * E18 - 2000)
        assert token_a.balance_of(bob) == E18 - 500
        assert host.native_balance(bob) == native + 4 * E18 - 2000
        assert weth.balance_of(router.address) == 0

    def test_remove_liquidity_eth_with_permit(self, router, factory, weth, host, alice, token_a):
        _, _, liquidity = add_eth_liquidity(router, alice, token_a, E18, 4 * E18, to=OWNER)
        pool = factory.pool(token_a.address, weth.address)
        v, r, s = sign_permit(OWNER_KEY, pool, router.address, liquidity, DEADLINE)

        router.remove_liquidity_eth_with_permit(
            OWNER, token_a.address, liquidity, 0, 0, OWNER, DEADLINE, False, v, r, s
        )

        assert token_a.balance_of(OWNER) == E18 - 500
        assert host.native_balance(OWNER) == 4 * E18 - 2000

    def test_router_rejects_stray_value(self, router, host, alice):
        with pytest.raises(Forbidden):
            host.send_value(alice, router.address, 1)


class TestSwapTokens:
    """Tests for token-to-token swaps."""

    def test_exact_input(self, router, approved, bob, token_a, token_b):
        provide_liquidity(router, approved, token_a, token_b, 5 * E18, 10 * E18)
        balance_a = token_a.balance_of(approved)

        amounts = router.swap_exact_tokens_for_tokens(
            approved, E18, 0, [token_a.address, token_b.address], bob, DEADLINE
        )

        assert amounts == [E18, 1662497915624478906]
        assert token_b.balance_of(bob) == 1662497915624478906
        assert token_a.balance_of(approved) == balance_a - E18

    def test_exact_input_slippage(self, router, approved, bob, token_a, token_b):
        provide_liquidity(router, approved, token_a, token_b, 5 * E18, 10 * E18)
        balance_a = token_a.balance_of(approved)

        with pytest.raises(InsufficientOutputAmount):
            router.swap_exact_tokens_for_tokens(
                approved, E18, 1662497915624478907, [token_a.address, token_b.address], bob, DEADLINE
            )
        assert token_a.balance_of(approved) == balance_a
        assert token_b.balance_of(bob) == 0

    def test_exact_output(self, router, factory, approved, bob, token_a, token_b):
        provide_liquidity(router, approved, token_a, token_b, 5 * E18, 10 * E18)
        path = [token_a.address, token_b.address]
        expected = library.get_amounts_in(factory, E18, path)

        amounts = router.swap_tokens_for_exact_tokens(approved, E18, expected[0], path, bob, DEADLINE)

        assert amounts == expected
        assert token_b.balance_of(bob) == E18

    def test_exact_output_too_expensive(self, router, factory, approved, bob, token_a, token_b):
        provide_liquidity(router, approved, token_a, token_b, 5 * E18, 10 * E18)
        path = [token_a.address, token_b.address]
        expected = library.get_amounts_in(factory, E18, path)

        with pytest.raises(ExcessiveInputAmount):
            router.swap_tokens_for_exact_tokens(approved, E18, expected[0] - 1, path, bob, DEADLINE)

    def test_multi_hop_never_custodies(self, router, factory, approved, bob, token_a, token_b, token_c):
        provide_liquidity(router, approved, token_a, token_b, 5 * E18, 10 * E18)
        provide_liquidity(router, approved, token_b, token_c, 10 * E18, 5 * E18)
        path = [token_a.address, token_b.address, token_c.address]
        expected = library.get_amounts_out(factory, E18, path)

        amounts = router.swap_exact_tokens_for_tokens(approved, E18, 0, path, bob, DEADLINE)

        assert amounts == expected
        assert token_c.balance_of(bob) == amounts[-1]
        for token in (token_a, token_b, token_c):
            assert token.balance_of(router.address) == 0
        pool_ab = factory.pool(token_a.address, token_b.address)
        assert library.get_reserves(factory, token_a.address, token_b.address) == (
            6 * E18,
            10 * E18 - amounts[1],
        )
        assert token_b.balance_of(pool_ab.address) == 10 * E18 - amounts[1]

    def test_short_path(self, router, approved, bob, token_a):
        with pytest.raises(InvalidPath):
            router.swap_exact_tokens_for_tokens(approved, E18, 0, [token_a.address], bob, DEADLINE)

    def test_deadline(self, router, approved, bob, token_a, token_b):
        provide_liquidity(router, approved, token_a, token_b, 5 * E18, 10 * E18)
        with pytest.raises(Expired):
            router.swap_exact_tokens_for_tokens(
                approved, E18, 0, [token_a.address, token_b.address], bob, START_TIME - 1
            )

    def test_missing_pool(self, router, approved, bob, token_a, token_b):
        with pytest.raises(InsufficientLiquidity):
            router.swap_exact_tokens_for_tokens(
                approved, E18, 0, [token_a.address, token_b.address], bob, DEADLINE
            )


class TestSwapNative:
    """Tests for swaps crossing the native-asset wrapper."""

    @pytest.fixture
    def eth_pool(self, router, factory, weth, alice, token_a):
        add_eth_liquidity(router, alice, token_a, 10 * E18, 5 * E18)
        return factory.pool(token_a.address, weth.address)

    def test_exact_eth_in(self, router, weth, host, alice, bob, token_a, eth_pool):
        native = host.native_balance(alice)

        amounts = router.swap_exact_eth_for_tokens(
            alice, 0, [weth.address, token_a.address], bob, DEADLINE, value=E18
        )

        assert amounts == [E18, 1662497915624478906]
        assert token_a.balance_of(bob) == 1662497915624478906
        assert host.native_balance(alice) == native - E18
        assert weth.balance_of(eth_pool.address) == 6 * E18

    def test_exact_eth_in_wrong_path(self, router, weth, alice, bob, token_a, eth_pool):
        with pytest.raises(InvalidPath):
            router.swap_exact_eth_for_tokens(
                alice, 0, [token_a.address, weth.address], bob, DEADLINE, value=E18
            )

    def test_exact_eth_in_rolls_back_value(self, router, weth, host, alice, bob, token_a, eth_pool):
        native = host.native_balance(alice)
        with pytest.raises(InsufficientOutputAmount):
            router.swap_exact_eth_for_tokens(
                alice, 2 * E18, [weth.address, token_a.address], bob, DEADLINE, value=E18
            )
        assert host.native_balance(alice) == native

    def test_exact_eth_out(self, router, factory, weth, host, alice, bob, token_a, eth_pool):
        path = [token_a.address, weth.address]
        expected = library.get_amounts_in(factory, E18, path)
        native = host.native_balance(bob)

        amounts = router.swap_tokens_for_exact_eth(alice, E18, expected[0], path, bob, DEADLINE)

        assert amounts == expected
        assert host.native_balance(bob) == native + E18
        assert weth.balance_of(router.address) == 0

    def test_exact_tokens_for_eth(self, router, factory, weth, host, alice, bob, token_a, eth_pool):
        path = [token_a.address, weth.address]
        expected = library.get_amounts_out(factory, E18, path)
        native = host.native_balance(bob)

        amounts = router.swap_exact_tokens_for_eth(alice, E18, 0, path, bob, DEADLINE)

        assert amounts == expected
        assert host.native_balance(bob) == native + amounts[-1]

    def test_exact_tokens_for_eth_wrong_path(self, router, weth, alice, bob, token_a, eth_pool):
        with pytest.raises(InvalidPath):
            router.swap_exact_tokens_for_eth(
                alice, E18, 0, [weth.address, token_a.address], bob, DEADLINE
            )

    def test_eth_for_exact_tokens_refunds(self, router, factory, weth, host, alice, bob, token_a, eth_pool):
        path = [weth.address, token_a.address]
        expected = library.get_amounts_in(factory, E18, path)
        native = host.native_balance(alice)

        amounts = router.swap_eth_for_exact_tokens(alice, E18, path, bob, DEADLINE, value=10 * E18)

        assert amounts == expected
        assert token_a.balance_of(bob) == E18
        assert host.native_balance(alice) == native - amounts[0]
        assert host.native_balance(router.address) == 0

    def test_eth_for_exact_tokens_insufficient_value(self, router, weth, alice, bob, token_a, eth_pool):
        with pytest.raises(ExcessiveInputAmount):
            router.swap_eth_for_exact_tokens(
                alice, E18, [weth.address, token_a.address], bob, DEADLINE, value=1
            )


class TestFeeOnTransfer:
    """Tests for the variants that measure what actually arrived."""

    def test_plain_swap_fails(self, router, approved, bob, dtt, token_b):
        provide_liquidity(router, approved, dtt, token_b, 5 * E18, 10 * E18)
        with pytest.raises(InvariantViolation):
            router.swap_exact_tokens_for_tokens(
                approved, E18, 0, [dtt.address, token_b.address], bob, DEADLINE
            )

    def test_swap_tokens_supporting(self, router, factory, approved, bob, dtt, token_b):
        provide_liquidity(router, approved, dtt, token_b, 5 * E18, 10 * E18)
        reserve_in, reserve_out = library.get_reserves(factory, dtt.address, token_b.address)

        router.swap_exact_tokens_for_tokens_supporting_fee_on_transfer_tokens(
            approved, E18, 0, [dtt.address, token_b.address], bob, DEADLINE
        )

        # Only 99% of the input reaches the pool
        expected = library.get_amount_out(E18 * 99 // 100, reserve_in, reserve_out)
        assert token_b.balance_of(bob) == expected

    def test_swap_tokens_supporting_minimum(self, router, approved, bob, dtt, token_b):
        provide_liquidity(router, approved, dtt, token_b, 5 * E18, 10 * E18)
        with pytest.raises(InsufficientOutputAmount):
            router.swap_exact_tokens_for_tokens_supporting_fee_on_transfer_tokens(
                approved, E18, 1662497915624478906, [dtt.address, token_b.address], bob, DEADLINE
            )

    def test_output_side_fee(self, router, factory, approved, bob, dtt, token_b):
        """Minimum output is checked against what the recipient actually got."""
        provide_liquidity(router, approved, token_b, dtt, 5 * E18, 10 * E18)
        reserve_in, reserve_out = library.get_reserves(factory, token_b.address, dtt.address)
        amount_out = library.get_amount_out(E18, reserve_in, reserve_out)

        with pytest.raises(InsufficientOutputAmount):
            router.swap_exact_tokens_for_tokens_supporting_fee_on_transfer_tokens(
                approved, E18, amount_out, [token_b.address, dtt.address], bob, DEADLINE
            )
        router.swap_exact_tokens_for_tokens_supporting_fee_on_transfer_tokens(
            approved, E18, amount_out * 99 // 100, [token_b.address, dtt.address], bob, DEADLINE
        )
        assert dtt.balance_of(bob) == amount_out - amount_out // 100

    def test_eth_for_tokens_supporting(self, router, weth, alice, bob, dtt):
        add_eth_liquidity(router, alice, dtt, 10 * E18, 5 * E18)

        router.swap_exact_eth_for_tokens_supporting_fee_on_transfer_tokens(
            alice, 0, [weth.address, dtt.address], bob, DEADLINE, value=E18
        )

        assert dtt.balance_of(bob) > 0

    def test_tokens_for_eth_supporting(self, router, weth, host, alice, bob, dtt):
        add_eth_liquidity(router, alice, dtt, 10 * E18, 5 * E18)
        native = host.native_balance(bob)

        router.swap_exact_tokens_for_eth_supporting_fee_on_transfer_tokens(
            alice, E18, 0, [dtt.address, weth.address], bob, DEADLINE
        )

        assert host.native_balance(bob) > native
        assert weth.balance_of(router.address) == 0

    def test_remove_liquidity_eth_plain_fails(self, router, factory, weth, alice, bob, dtt):
        _, _, liquidity = add_eth_liquidity(router, alice, dtt, E18, 4 * E18)
        pool = factory.pool(dtt.address, weth.address)
        pool.approve(alice, router.address, UINT256_MAX)

        with pytest.raises(InsufficientBalance):
            router.remove_liquidity_eth(alice, dtt.address, liquidity, 0, 0, bob, DEADLINE)

    def test_remove_liquidity_eth_supporting(self, router, factory, weth, host, alice, bob, dtt):
        _, _, liquidity = add_eth_liquidity(router, alice, dtt, E18, 4 * E18)
        pool = factory.pool(dtt.address, weth.address)
        pool.approve(alice, router.address, UINT256_MAX)
        dtt_reserve = dtt.balance_of(pool.address)
        supply = pool.total_supply
        native = host.native_balance(bob)

        amount_eth = router.remove_liquidity_eth_supporting_fee_on_transfer_tokens(
            alice, dtt.address, liquidity, 0, 0, bob, DEADLINE
        )

        burned = liquidity * dtt_reserve // supply
        # Two transfers, pool -> router -> bob, each keep 99%
        after_router = burned - burned // 100
        assert dtt.balance_of(bob) == after_router - after_router // 100
        assert host.native_balance(bob) == native + amount_eth
        assert dtt.balance_of(router.address) == 0

    def test_remove_liquidity_eth_with_permit_supporting(self, router, factory, weth, host, alice, dtt):
        _, _, liquidity = add_eth_liquidity(router, alice, dtt, E18, 4 * E18, to=OWNER)
        pool = factory.pool(dtt.address, weth.address)
        v, r, s = sign_permit(OWNER_KEY, pool, router.address, UINT256_MAX, DEADLINE)

        amount_eth = router.remove_liquidity_eth_with_permit_supporting_fee_on_transfer_tokens(
            OWNER, dtt.address, liquidity, 0, 0, OWNER, DEADLINE, True, v, r, s
        )

        assert host.native_balance(OWNER) == amount_eth
        assert dtt.balance_of(OWNER) > 0
        assert pool.allowance(OWNER, router.address) == UINT256_MAX


class TestQuotes:
    """Tests for the router's quote passthroughs."""

    def test_single_hop(self, router):
        assert router.quote(1, 100, 200) == 2
        assert router.get_amount_out(100, 1000, 1000) == 90
        assert router.get_amount_in(90, 1000, 1000) == 100

    def test_paths(self, router, approved, token_a, token_b):
        provide_liquidity(router, approved, token_a, token_b, 10_000, 10_000)
        path = [token_a.address, token_b.address]
        assert router.get_amounts_out(2, path) == [2, 1]
        assert router.get_amounts_in(1, path) == [2, 1]

    def test_short_path(self, router, token_a):
        with pytest.raises(InvalidPath):
            router.get_amounts_out(2, [token_a.address])
