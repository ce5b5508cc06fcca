"""
Program-Derived Addresses for the Hype Protocol
Authority, root, client and token account derivation plus associated token accounts
"""

import struct

from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from hype.core.accounts import AccountTag


# Program IDs
DEFAULT_PROGRAM_ID = Pubkey.from_string("HYPExvaQRQHrkCNc1DAHJoByUeBqFvkJyhtpFdacLcdH")

# Seeds for PDA derivation
AUTHORITY_SEED = b"hypewtch"
TOKEN_SEED_LENGTH = 32
TOKEN_ADDRESS_SEED_LENGTH = 24


def _tag_seed(version: int, tag: AccountTag) -> bytes:
    return struct.pack("<ii", version, tag)


def find_authority_address(program_id: Pubkey) -> Pubkey:
    """Program-wide authority: seeds = ["hypewtch"]"""
    pda, _ = Pubkey.find_program_address([AUTHORITY_SEED], program_id)
    return pda


def find_root_account_address(program_id: Pubkey, version: int) -> Pubkey:
    """
    Derive the root account address

    Seeds: [i32 version | i32 ROOT tag, authority]
    """
    authority = find_authority_address(program_id)
    pda, _ = Pubkey.find_program_address(
        [_tag_seed(version, AccountTag.ROOT), bytes(authority)],
        program_id
    )
    return pda


def find_client_account_address(wallet: Pubkey, program_id: Pubkey, version: int) -> Pubkey:
    """
    Derive the per-wallet client account address

    Seeds: [i32 version | i32 CLIENT tag, wallet]
    """
    pda, _ = Pubkey.find_program_address(
        [_tag_seed(version, AccountTag.CLIENT), bytes(wallet)],
        program_id
    )
    return pda


def find_token_account_address(
    program_id: Pubkey,
    network_id: int,
    address: str,
    version: int
) -> Pubkey:
    """
    Derive the per-token account address

    Seeds: [32-byte buffer, authority] where the buffer holds the lowercased
    token address at 0 (at most 24 bytes), i32 network id at 24 and i32
    version at 28.

    Args:
        program_id: Hype program
        network_id: Index into the root's network table
        address: Token handle (case-insensitive)
        version: Protocol version
    """
    seed = bytearray(TOKEN_SEED_LENGTH)
    handle = address.lower().encode("utf-8")[:TOKEN_ADDRESS_SEED_LENGTH]
    seed[:len(handle)] = handle
    struct.pack_into("<ii", seed, TOKEN_ADDRESS_SEED_LENGTH, network_id, version)

    authority = find_authority_address(program_id)
    pda, _ = Pubkey.find_program_address([bytes(seed), bytes(authority)], program_id)
    return pda


def find_associated_token_address(
    owner: Pubkey,
    mint: Pubkey,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID
) -> Pubkey:
    """
    Associated token account of owner for mint

    Args:
        owner: Wallet owning the token account
        mint: Token mint
        token_program_id: Classic token program or Token-2022
    """
    return get_associated_token_address(owner, mint, token_program_id)
