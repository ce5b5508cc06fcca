"""
Unit tests for program-derived addresses (hype/core/addresses.py)
"""

import struct

from solders.pubkey import Pubkey
from spl.token import constants as spl_constants
from spl.token.instructions import get_associated_token_address

from hype.core.accounts import AccountTag
from hype.core.addresses import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    DEFAULT_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    find_associated_token_address,
    find_authority_address,
    find_client_account_address,
    find_root_account_address,
    find_token_account_address,
)


class TestProgramDerivedAddresses:
    """Test seed construction and determinism"""

    def test_authority_seed(self):
        expected, _ = Pubkey.find_program_address([b"hypewtch"], DEFAULT_PROGRAM_ID)
        assert find_authority_address(DEFAULT_PROGRAM_ID) == expected

    def test_root_seed(self):
        authority = find_authority_address(DEFAULT_PROGRAM_ID)
        seed = struct.pack("<ii", 0, AccountTag.ROOT)
        expected, _ = Pubkey.find_program_address([seed, bytes(authority)], DEFAULT_PROGRAM_ID)

        assert find_root_account_address(DEFAULT_PROGRAM_ID, 0) == expected

    def test_client_seed(self):
        wallet = Pubkey.new_unique()
        seed = struct.pack("<ii", 3, AccountTag.CLIENT)
        expected, _ = Pubkey.find_program_address([seed, bytes(wallet)], DEFAULT_PROGRAM_ID)

        assert find_client_account_address(wallet, DEFAULT_PROGRAM_ID, 3) == expected

    def test_token_seed(self):
        authority = find_authority_address(DEFAULT_PROGRAM_ID)
        seed = bytearray(32)
        seed[:5] = b"durov"
        struct.pack_into("<ii", seed, 24, 1, 0)
        expected, _ = Pubkey.find_program_address([bytes(seed), bytes(authority)], DEFAULT_PROGRAM_ID)

        assert find_token_account_address(DEFAULT_PROGRAM_ID, 1, "durov", 0) == expected

    def test_token_address_is_case_insensitive(self):
        assert find_token_account_address(DEFAULT_PROGRAM_ID, 0, "Durov", 0) == \
            find_token_account_address(DEFAULT_PROGRAM_ID, 0, "durov", 0)

    def test_token_address_depends_on_network_and_version(self):
        base = find_token_account_address(DEFAULT_PROGRAM_ID, 0, "durov", 0)

        assert find_token_account_address(DEFAULT_PROGRAM_ID, 1, "durov", 0) != base
        assert find_token_account_address(DEFAULT_PROGRAM_ID, 0, "durov", 1) != base

    def test_long_handle_truncated_to_seed_slot(self):
        long_handle = "a" * 24
        assert find_token_account_address(DEFAULT_PROGRAM_ID, 0, long_handle + "zzz", 0) == \
            find_token_account_address(DEFAULT_PROGRAM_ID, 0, long_handle, 0)

    def test_version_changes_root(self):
        assert find_root_account_address(DEFAULT_PROGRAM_ID, 0) != find_root_account_address(DEFAULT_PROGRAM_ID, 1)


class TestAssociatedTokenAddresses:
    """Test ATA derivation for both token programs"""

    def test_classic_program_matches_spl(self):
        owner, mint = Pubkey.new_unique(), Pubkey.new_unique()
        assert find_associated_token_address(owner, mint) == get_associated_token_address(owner, mint)

    def test_program_ids_match_spl(self):
        assert TOKEN_2022_PROGRAM_ID == spl_constants.TOKEN_2022_PROGRAM_ID
        assert str(TOKEN_2022_PROGRAM_ID) == "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
        assert ASSOCIATED_TOKEN_PROGRAM_ID == spl_constants.ASSOCIATED_TOKEN_PROGRAM_ID

    def test_token_2022(self):
        owner, mint = Pubkey.new_unique(), Pubkey.new_unique()
        expected, _ = Pubkey.find_program_address(
            [bytes(owner), bytes(TOKEN_2022_PROGRAM_ID), bytes(mint)],
            ASSOCIATED_TOKEN_PROGRAM_ID
        )

        assert find_associated_token_address(owner, mint, TOKEN_2022_PROGRAM_ID) == expected
        assert expected == get_associated_token_address(owner, mint, spl_constants.TOKEN_2022_PROGRAM_ID)
        assert expected != find_associated_token_address(owner, mint)
