"""
Hype Program Client
Encodes Mint/Burn/Create instructions for the Hype bonding-curve program
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from hype.core.accounts import NICKNAME_STRING_LENGTH, ShortClient, ShortRoot, ShortToken
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
from hype.core.codec import DECIMAL_CONTEXT, Field, Kind, Number, encode_fields, scale_up, to_decimal
from hype.core.config import ProtocolConfig
from hype.core.errors import DomainError
from hype.core.events import EventKind
from hype.core.logger import get_logger
from hype.core.metrics import get_metrics


logger = get_logger(__name__)
metrics = get_metrics()


TOKEN_ADDRESS_LENGTH = 24

MINT_PAYLOAD_SIZE = 80
BURN_PAYLOAD_SIZE = 56

# Create shares the Mint payload and discriminant
MINT_PAYLOAD_LAYOUT = (
    Field("discriminant", 0, Kind.U8),
    Field("network_id", 4, Kind.U32),
    Field("amount", 8, Kind.U64),
    Field("slippage_limit", 16, Kind.U64),
    Field("address", 24, Kind.TEXT, TOKEN_ADDRESS_LENGTH),
    Field("nickname", 48, Kind.TEXT, NICKNAME_STRING_LENGTH),
)

BURN_PAYLOAD_LAYOUT = (
    Field("discriminant", 0, Kind.U8),
    Field("network_id", 4, Kind.U32),
    Field("amount", 8, Kind.U64),
    Field("slippage_limit", 16, Kind.U64),
    Field("nickname", 24, Kind.TEXT, NICKNAME_STRING_LENGTH),
)


@dataclass
class TradeArgs:
    """Trade intent"""
    amount: Number  # tokens, domain units
    slippage_percent: Optional[Number] = None
    custom_pk: Optional[Keypair] = None  # Create only: mint keypair to use


@dataclass
class TradeInstruction:
    """Encoded instruction plus the generated keypairs that must co-sign it"""
    instruction: Instruction
    signers: List[Keypair] = field(default_factory=list)


@dataclass
class HypeProgramConfig:
    """Hype program identity"""
    program_id: Pubkey = DEFAULT_PROGRAM_ID
    version: int = 0

    @classmethod
    def from_config(cls, protocol: ProtocolConfig) -> "HypeProgramConfig":
        """Program identity from the loaded protocol section"""
        return cls(program_id=protocol.program_pubkey, version=protocol.version)


class HypeProgramClient:
    """
    Hype program client for encoding trade instructions

    Features:
    - Mint/Burn/Create payload encoding
    - Slippage limits from the exact curve quote
    - Client/token/authority PDA derivation
    - Referrer fee routing

    Usage:
        client = HypeProgramClient(root.to_short(root_address))
        trade = client.build_mint_instruction(
            token=short_token,
            client=ShortClient(wallet=wallet.pubkey(), nickname="alice"),
            args=TradeArgs(amount=5, slippage_percent=3)
        )
    """

    def __init__(self, root: ShortRoot, config: Optional[HypeProgramConfig] = None):
        """
        Initialize Hype program client

        Args:
            root: Root context (decimals factor, curve parameters, base currency)
            config: Program id and version (optional)
        """
        self.root = root
        self.config = config or HypeProgramConfig()
        self.authority = find_authority_address(self.config.program_id)

        # Cache for derived client PDAs (wallet -> client account)
        self._client_pda_cache: Dict[Pubkey, Pubkey] = {}

        logger.info(
            "hype_program_client_initialized",
            program_id=str(self.config.program_id),
            version=self.config.version
        )

    def build_mint_instruction(
        self,
        token: ShortToken,
        client: ShortClient,
        args: TradeArgs
    ) -> TradeInstruction:
        """
        Build a Mint instruction

        Args:
            token: Token being bought
            client: Buyer (wallet, nickname, referrer)
            args: Amount and optional slippage percent

        Returns:
            TradeInstruction without extra signers

        Raises:
            DomainError: If amount is not positive or the trade leaves the curve domain
        """
        amount = self._scaled_amount(args.amount)
        limit = 0
        if self._has_slippage(args):
            quote = calculate_mint(token.supply, args.amount, self.root)
            limit = self._slippage_limit(quote.total, args.slippage_percent, direction=1)

        data = self._encode_mint_payload(token.network_id, amount, limit, token.address, client.nickname)
        accounts = self._trade_accounts(
            client=client,
            token_account=self.derive_token_account(token.network_id, token.address),
            token_mint=token.mint,
            token_program=token.token_program_id,
        )

        instruction = Instruction(
            program_id=self.config.program_id,
            accounts=accounts,
            data=data
        )

        logger.debug(
            "mint_instruction_built",
            mint=str(token.mint),
            wallet=str(client.wallet),
            amount=str(args.amount),
            slippage_limit=limit
        )
        metrics.increment_counter("instructions_built", labels={"kind": "mint"})

        return TradeInstruction(instruction=instruction)

    def build_burn_instruction(
        self,
        token: ShortToken,
        client: ShortClient,
        args: TradeArgs
    ) -> TradeInstruction:
        """
        Build a Burn instruction

        Args:
            token: Token being sold
            client: Seller (wallet, nickname, referrer)
            args: Amount and optional slippage percent

        Returns:
            TradeInstruction without extra signers

        Raises:
            DomainError: If amount is not positive, exceeds supply, or the
                payout net of fees is negative
        """
        amount = self._scaled_amount(args.amount)
        limit = 0
        if self._has_slippage(args):
            quote = calculate_burn(token.supply, args.amount, self.root)
            limit = self._slippage_limit(quote.total, args.slippage_percent, direction=-1)

        data = bytes(encode_fields(
            {
                "discriminant": EventKind.BURN,
                "network_id": token.network_id,
                "amount": amount,
                "slippage_limit": limit,
                "nickname": client.nickname,
            },
            BURN_PAYLOAD_LAYOUT,
            size=BURN_PAYLOAD_SIZE
        ))
        accounts = self._trade_accounts(
            client=client,
            token_account=self.derive_token_account(token.network_id, token.address),
            token_mint=token.mint,
            token_program=token.token_program_id,
        )

        instruction = Instruction(
            program_id=self.config.program_id,
            accounts=accounts,
            data=data
        )

        logger.debug(
            "burn_instruction_built",
            mint=str(token.mint),
            wallet=str(client.wallet),
            amount=str(args.amount),
            slippage_limit=limit
        )
        metrics.increment_counter("instructions_built", labels={"kind": "burn"})

        return TradeInstruction(instruction=instruction)

    def build_create_instruction(
        self,
        address: str,
        network_id: int,
        client: ShortClient,
        args: TradeArgs
    ) -> TradeInstruction:
        """
        Build a Create instruction: launch a token and mint its first tokens

        The token mint (args.custom_pk or a fresh keypair) and the token
        program account are new keypairs that must co-sign the transaction.

        Args:
            address: Token handle on its social network
            network_id: Index into the root's network table
            client: Creator (wallet, nickname, referrer)
            args: Initial mint amount and optional slippage percent

        Returns:
            TradeInstruction with [mint keypair, token program keypair] as signers

        Raises:
            DomainError: If amount is not positive or network_id is unknown
        """
        self.root.network_descriptor(network_id)

        amount = self._scaled_amount(args.amount)
        limit = 0
        if self._has_slippage(args):
            quote = calculate_mint(Decimal(0), args.amount, self.root)
            limit = self._slippage_limit(quote.total, args.slippage_percent, direction=1)

        mint_keypair = args.custom_pk or Keypair()
        program_keypair = Keypair()

        data = self._encode_mint_payload(network_id, amount, limit, address, client.nickname)
        accounts = self._trade_accounts(
            client=client,
            token_account=self.derive_token_account(network_id, address),
            token_mint=mint_keypair.pubkey(),
            token_program=program_keypair.pubkey(),
            new_token=True,
        )

        instruction = Instruction(
            program_id=self.config.program_id,
            accounts=accounts,
            data=data
        )

        logger.debug(
            "create_instruction_built",
            mint=str(mint_keypair.pubkey()),
            address=address,
            network_id=network_id,
            wallet=str(client.wallet),
            slippage_limit=limit
        )
        metrics.increment_counter("instructions_built", labels={"kind": "create"})

        return TradeInstruction(instruction=instruction, signers=[mint_keypair, program_keypair])

    def derive_client_account(self, wallet: Pubkey) -> Pubkey:
        """Client PDA of a wallet (cached)"""
        if wallet not in self._client_pda_cache:
            self._client_pda_cache[wallet] = find_client_account_address(
                wallet, self.config.program_id, self.config.version
            )
        return self._client_pda_cache[wallet]

    def derive_token_account(self, network_id: int, address: str) -> Pubkey:
        return find_token_account_address(
            self.config.program_id, network_id, address, self.config.version
        )

    def referral_accounts(self, ref_wallet: Optional[Pubkey]) -> Tuple[Pubkey, Pubkey]:
        """
        (referrer wallet, referrer base currency account)

        A missing referrer, or one set to the system program placeholder,
        routes both slots to the system program.
        """
        if ref_wallet is None or ref_wallet == SYSTEM_PROGRAM_ID:
            return SYSTEM_PROGRAM_ID, SYSTEM_PROGRAM_ID
        return ref_wallet, find_associated_token_address(ref_wallet, self.root.base_crncy_mint)

    def _trade_accounts(
        self,
        client: ShortClient,
        token_account: Pubkey,
        token_mint: Pubkey,
        token_program: Pubkey,
        new_token: bool = False
    ) -> List[AccountMeta]:
        wallet = client.wallet
        ref_wallet, ref_account = self.referral_accounts(client.ref_wallet)

        # Order matters
        return [
            AccountMeta(pubkey=wallet, is_signer=True, is_writable=True),
            AccountMeta(pubkey=self.root.address, is_signer=False, is_writable=True),
            AccountMeta(pubkey=self.derive_client_account(wallet), is_signer=False, is_writable=True),
            AccountMeta(
                pubkey=find_associated_token_address(wallet, self.root.base_crncy_mint),
                is_signer=False,
                is_writable=True
            ),
            AccountMeta(
                pubkey=find_associated_token_address(wallet, token_mint, TOKEN_2022_PROGRAM_ID),
                is_signer=False,
                is_writable=True
            ),
            AccountMeta(pubkey=token_account, is_signer=False, is_writable=True),
            AccountMeta(pubkey=self.root.base_crncy_mint, is_signer=False, is_writable=False),
            AccountMeta(pubkey=self.root.base_crncy_program_address, is_signer=False, is_writable=True),
            AccountMeta(pubkey=token_mint, is_signer=new_token, is_writable=True),
            AccountMeta(pubkey=token_program, is_signer=new_token, is_writable=True),
            AccountMeta(pubkey=self.authority, is_signer=False, is_writable=False),
            AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=TOKEN_2022_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=ASSOCIATED_TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=ref_wallet, is_signer=False, is_writable=False),
            AccountMeta(pubkey=ref_account, is_signer=False, is_writable=True),
        ]

    def _encode_mint_payload(
        self,
        network_id: int,
        amount: int,
        limit: int,
        address: str,
        nickname: Optional[str]
    ) -> bytes:
        return bytes(encode_fields(
            {
                "discriminant": EventKind.MINT,
                "network_id": network_id,
                "amount": amount,
                "slippage_limit": limit,
                "address": address.lower(),
                "nickname": nickname,
            },
            MINT_PAYLOAD_LAYOUT,
            size=MINT_PAYLOAD_SIZE
        ))

    def _scaled_amount(self, amount: Number) -> int:
        if to_decimal(amount) <= 0:
            raise DomainError(f"Trade amount must be positive, got {amount}")
        return scale_up(amount, self.root.base_crncy_decs_factor)

    @staticmethod
    def _has_slippage(args: TradeArgs) -> bool:
        if args.slippage_percent is None:
            return False
        percent = to_decimal(args.slippage_percent)
        if percent < 0:
            raise ValueError(f"Slippage percent must be non-negative, got {percent}")
        return percent > 0

    def _slippage_limit(self, total: Decimal, percent: Number, direction: int) -> int:
        """
        Worst acceptable total, as a raw integer

        Mint caps what the buyer pays: total * (1 + p/100).
        Burn floors what the seller receives: total * (1 - p/100).
        """
        factor = DECIMAL_CONTEXT.add(
            1, DECIMAL_CONTEXT.multiply(direction, DECIMAL_CONTEXT.divide(to_decimal(percent), 100))
        )
        limit = DECIMAL_CONTEXT.multiply(total, factor)
        if limit < 0:
            raise DomainError(f"Slippage limit {limit} is negative (total {total})")
        return scale_up(limit, self.root.base_crncy_decs_factor)
