"""
Unit tests for the Hype program client (hype/clients/hype_program.py)

Tests:
- Mint/Burn/Create payload layout
- Slippage limits
- Account ordering and referrer routing
- Error handling
"""

import dataclasses
import struct
from decimal import Decimal

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from hype.clients.hype_program import (
    BURN_PAYLOAD_SIZE,
    MINT_PAYLOAD_SIZE,
    HypeProgramClient,
    HypeProgramConfig,
    TradeArgs,
)
from hype.core.accounts import ShortClient, ShortToken
from hype.core.addresses import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    DEFAULT_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    find_associated_token_address,
    find_authority_address,
    find_client_account_address,
    find_token_account_address,
)
from hype.core.bonding_curve import calculate_burn, calculate_mint
from hype.core.codec import DECIMAL_CONTEXT, scale_up
from hype.core.config import ProtocolConfig
from hype.core.errors import DomainError


@pytest.fixture
def program_client(short_root) -> HypeProgramClient:
    return HypeProgramClient(short_root)


@pytest.fixture
def token(short_root) -> ShortToken:
    return ShortToken(
        mint=Pubkey.new_unique(),
        token_program_id=Pubkey.new_unique(),
        address="ElonMusk",
        network_id=1,
        network="telegram",
        price=Decimal("0.0001"),
        supply=Decimal("100"),
        creation_time=None,
    )


@pytest.fixture
def wallet() -> Pubkey:
    return Pubkey.new_unique()


def u32_at(data: bytes, offset: int) -> int:
    return struct.unpack_from("<I", data, offset)[0]


def u64_at(data: bytes, offset: int) -> int:
    return struct.unpack_from("<Q", data, offset)[0]


class TestMintInstruction:
    """Test Mint payload and accounts"""

    def test_payload_layout(self, program_client, token, wallet):
        trade = program_client.build_mint_instruction(
            token, ShortClient(wallet=wallet, nickname="alice"), TradeArgs(amount=5, slippage_percent=3)
        )
        data = bytes(trade.instruction.data)

        assert len(data) == MINT_PAYLOAD_SIZE
        assert data[0] == 4
        assert u32_at(data, 4) == 1
        assert u64_at(data, 8) == 5_000_000
        assert u64_at(data, 16) != 0
        assert data[24:32] == b"elonmusk"
        assert data[32:48] == b"\x00" * 16
        assert data[48:53] == b"alice"
        assert trade.signers == []

    def test_slippage_limit_from_total(self, program_client, token, wallet, short_root):
        trade = program_client.build_mint_instruction(
            token, ShortClient(wallet=wallet), TradeArgs(amount=5, slippage_percent=3)
        )

        total = calculate_mint(token.supply, 5, short_root).total
        expected = scale_up(DECIMAL_CONTEXT.multiply(total, Decimal("1.03")), 1_000_000)
        assert u64_at(bytes(trade.instruction.data), 16) == expected

    @pytest.mark.parametrize("slippage", [None, 0])
    def test_no_slippage_leaves_limit_zero(self, program_client, token, wallet, slippage):
        trade = program_client.build_mint_instruction(
            token, ShortClient(wallet=wallet), TradeArgs(amount=5, slippage_percent=slippage)
        )
        data = bytes(trade.instruction.data)

        assert u64_at(data, 16) == 0
        assert data[48:80] == b"\x00" * 32

    def test_amount_truncated(self, program_client, token, wallet):
        trade = program_client.build_mint_instruction(
            token, ShortClient(wallet=wallet), TradeArgs(amount=Decimal("1.2345679"))
        )
        assert u64_at(bytes(trade.instruction.data), 8) == 1_234_567

    def test_account_order(self, program_client, token, wallet, short_root):
        trade = program_client.build_mint_instruction(token, ShortClient(wallet=wallet), TradeArgs(amount=1))
        accounts = trade.instruction.accounts
        program_id = DEFAULT_PROGRAM_ID

        assert trade.instruction.program_id == program_id
        assert len(accounts) == 17
        assert [a.pubkey for a in accounts] == [
            wallet,
            short_root.address,
            find_client_account_address(wallet, program_id, 0),
            find_associated_token_address(wallet, short_root.base_crncy_mint),
            find_associated_token_address(wallet, token.mint, TOKEN_2022_PROGRAM_ID),
            find_token_account_address(program_id, 1, "elonmusk", 0),
            short_root.base_crncy_mint,
            short_root.base_crncy_program_address,
            token.mint,
            token.token_program_id,
            find_authority_address(program_id),
            TOKEN_PROGRAM_ID,
            TOKEN_2022_PROGRAM_ID,
            SYSTEM_PROGRAM_ID,
            ASSOCIATED_TOKEN_PROGRAM_ID,
            SYSTEM_PROGRAM_ID,
            SYSTEM_PROGRAM_ID,
        ]
        assert [a.is_signer for a in accounts] == [True] + [False] * 16
        assert accounts[6].is_writable is False
        assert accounts[10].is_writable is False
        assert accounts[15].is_writable is False
        assert accounts[16].is_writable is True

    def test_referrer_routing(self, program_client, token, wallet, short_root):
        referrer = Pubkey.new_unique()
        trade = program_client.build_mint_instruction(
            token, ShortClient(wallet=wallet, ref_wallet=referrer), TradeArgs(amount=1)
        )
        accounts = trade.instruction.accounts

        assert accounts[15].pubkey == referrer
        assert accounts[16].pubkey == find_associated_token_address(referrer, short_root.base_crncy_mint)

    def test_system_program_referrer_means_none(self, program_client, token, wallet):
        trade = program_client.build_mint_instruction(
            token, ShortClient(wallet=wallet, ref_wallet=SYSTEM_PROGRAM_ID), TradeArgs(amount=1)
        )
        accounts = trade.instruction.accounts

        assert accounts[15].pubkey == SYSTEM_PROGRAM_ID
        assert accounts[16].pubkey == SYSTEM_PROGRAM_ID

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_amount(self, program_client, token, wallet, amount):
        with pytest.raises(ValueError):
            program_client.build_mint_instruction(token, ShortClient(wallet=wallet), TradeArgs(amount=amount))

    def test_negative_slippage(self, program_client, token, wallet):
        with pytest.raises(ValueError):
            program_client.build_mint_instruction(
                token, ShortClient(wallet=wallet), TradeArgs(amount=1, slippage_percent=-1)
            )

    def test_custom_program_config(self, short_root, token, wallet):
        program_id = Pubkey.new_unique()
        client = HypeProgramClient(short_root, HypeProgramConfig(program_id=program_id, version=2))
        trade = client.build_mint_instruction(token, ShortClient(wallet=wallet), TradeArgs(amount=1))

        assert trade.instruction.program_id == program_id
        assert trade.instruction.accounts[2].pubkey == find_client_account_address(wallet, program_id, 2)

    def test_program_config_from_protocol_section(self):
        assert HypeProgramConfig.from_config(ProtocolConfig(version=2)) == HypeProgramConfig(
            program_id=DEFAULT_PROGRAM_ID, version=2
        )

        program_id = Pubkey.new_unique()
        program_config = HypeProgramConfig.from_config(ProtocolConfig(program_id=str(program_id)))
        assert program_config.program_id == program_id
        assert program_config.version == 0

    def test_counts_instructions(self, program_client, token, wallet, fresh_metrics):
        program_client.build_mint_instruction(token, ShortClient(wallet=wallet), TradeArgs(amount=1))
        assert fresh_metrics.get_counter("instructions_built", labels={"kind": "mint"}) == 1


class TestBurnInstruction:
    """Test Burn payload"""

    def test_payload_layout(self, program_client, token, wallet, short_root):
        token = dataclasses.replace(token, supply=Decimal("600000"))
        trade = program_client.build_burn_instruction(
            token, ShortClient(wallet=wallet, nickname="alice"), TradeArgs(amount=100_000, slippage_percent=3)
        )
        data = bytes(trade.instruction.data)

        total = calculate_burn(token.supply, 100_000, short_root).total
        assert total > 0
        assert len(data) == BURN_PAYLOAD_SIZE
        assert data[0] == 5
        assert u32_at(data, 4) == 1
        assert u64_at(data, 8) == 100_000_000_000
        assert u64_at(data, 16) == scale_up(DECIMAL_CONTEXT.multiply(total, Decimal("0.97")), 1_000_000)
        assert data[24:29] == b"alice"

    def test_burn_beyond_supply(self, program_client, token, wallet):
        with pytest.raises(DomainError):
            program_client.build_burn_instruction(
                token, ShortClient(wallet=wallet), TradeArgs(amount=101, slippage_percent=1)
            )

    def test_payout_below_fees_rejected(self, program_client, token, wallet):
        # cashout of a tiny burn is below the 0.01 fee floor
        with pytest.raises(DomainError, match="negative"):
            program_client.build_burn_instruction(
                token, ShortClient(wallet=wallet), TradeArgs(amount=Decimal("0.5"), slippage_percent=1)
            )

    def test_accounts_match_mint(self, program_client, token, wallet):
        client = ShortClient(wallet=wallet)
        mint = program_client.build_mint_instruction(token, client, TradeArgs(amount=1))
        burn = program_client.build_burn_instruction(token, client, TradeArgs(amount=1))

        assert mint.instruction.accounts == burn.instruction.accounts


class TestCreateInstruction:
    """Test Create payload and generated signers"""

    def test_payload_and_signers(self, program_client, wallet, short_root):
        trade = program_client.build_create_instruction(
            "Durov", 1, ShortClient(wallet=wallet, nickname="pavel"), TradeArgs(amount=10, slippage_percent=5)
        )
        data = bytes(trade.instruction.data)
        accounts = trade.instruction.accounts

        total = calculate_mint(0, 10, short_root).total
        assert len(data) == MINT_PAYLOAD_SIZE
        assert data[0] == 4
        assert u64_at(data, 8) == 10_000_000
        assert u64_at(data, 16) == scale_up(DECIMAL_CONTEXT.multiply(total, Decimal("1.05")), 1_000_000)
        assert data[24:29] == b"durov"

        mint_keypair, program_keypair = trade.signers
        assert accounts[8].pubkey == mint_keypair.pubkey()
        assert accounts[9].pubkey == program_keypair.pubkey()
        assert accounts[8].is_signer and accounts[9].is_signer
        assert accounts[4].pubkey == find_associated_token_address(
            wallet, mint_keypair.pubkey(), TOKEN_2022_PROGRAM_ID
        )

    def test_custom_mint_keypair(self, program_client, wallet):
        custom = Keypair()
        trade = program_client.build_create_instruction(
            "durov", 0, ShortClient(wallet=wallet), TradeArgs(amount=1, custom_pk=custom)
        )

        assert trade.signers[0].pubkey() == custom.pubkey()
        assert trade.instruction.accounts[8].pubkey == custom.pubkey()

    def test_unknown_network(self, program_client, wallet):
        with pytest.raises(DomainError):
            program_client.build_create_instruction("durov", 9, ShortClient(wallet=wallet), TradeArgs(amount=1))
