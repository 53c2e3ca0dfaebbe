import base64
from dataclasses import dataclass, field
from typing import Optional

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from ..core.errors import (
    InvalidCloseRequest,
    NoValidAccounts,
    ReclaimError,
    ReferralResolutionFailed,
)
from ..core.ledger import LedgerGateway
from ..core.logger import logger
from .instructions import (
    CloseInstruction,
    build_burn_instruction,
    build_close_instruction,
    build_compute_budget_ixs,
    build_transfer_ix,
)
from .key_pair import OperatorIdentity
from .referral import ReferralDirectory
from .split import RevenueSplit, SplitPolicy, split_revenue
from .utils import lamports_to_sol, validate_pubkey

DEFAULT_COMPUTE_UNIT_LIMIT = 10_000
DEFAULT_COMPUTE_UNIT_PRICE = 150_000  # micro-lamports


@dataclass(frozen=True)
class CloseRequest:
    owner: str | Pubkey
    accounts: list[str | Pubkey]
    referral_code: Optional[str] = None

    def __post_init__(self):
        if not self.accounts:
            raise InvalidCloseRequest("At least one account to close is required", stage="validate")


@dataclass(frozen=True, slots=True)
class AccountFailure:
    account: str
    error: str
    stage: str

    def to_dict(self) -> dict:
        return {"accountPublicKey": self.account, "error": self.error, "stage": self.stage}


@dataclass
class BatchResult:
    successes: list[CloseInstruction] = field(default_factory=list)
    errors: list[AccountFailure] = field(default_factory=list)
    total_reclaimed: int = 0

    @property
    def processed_accounts(self) -> list[str]:
        return [str(c.account) for c in self.successes]


@dataclass
class ComposedTransaction:
    instructions: list[Instruction]
    fee_payer: Pubkey
    recent_blockhash: Hash
    transaction: Transaction

    @property
    def signatures(self) -> list[Signature]:
        """Signatures collected so far; unsigned slots hold the default signature."""
        return [s for s in self.transaction.signatures if s != Signature.default()]

    def serialize(self) -> str:
        """Base64 wire transaction, left open for the owner to co-sign."""
        return base64.b64encode(bytes(self.transaction)).decode("utf-8")


@dataclass
class CloseResult:
    transaction: ComposedTransaction
    split: RevenueSplit
    processed_accounts: list[str]
    errors: list[AccountFailure] = field(default_factory=list)

    @property
    def owner_share_lamports(self) -> int:
        return self.split.owner_share

    @property
    def sol_received(self) -> float:
        return lamports_to_sol(self.split.owner_share)


async def collect_close_instructions(
    gateway: LedgerGateway,
    owner: Pubkey,
    accounts: list[str | Pubkey],
) -> BatchResult:
    """
    Build close instructions one account at a time, keeping going past failures.

    Accounts are visited strictly in order and the running total only counts
    the ones that produced an instruction.
    """
    result = BatchResult()
    for raw in accounts:
        try:
            account = validate_pubkey(raw, stage="close")
            closing = await build_close_instruction(gateway, owner, account)
        except ReclaimError as e:
            logger.warning(f"Failed to process account {raw}: {e}")
            result.errors.append(AccountFailure(account=str(raw), error=str(e), stage=e.stage))
            continue
        result.successes.append(closing)
        result.total_reclaimed += closing.rent_lamports
    return result


class TransactionComposer:
    """
    Turns a close request into a settlement transaction ready for the owner to sign.

    Instruction order is fixed: compute budget, charity subsidy, burns and
    closes, referral transfer, treasury settlement.
    """

    def __init__(
        self,
        *,
        gateway: LedgerGateway,
        referrals: ReferralDirectory,
        operator: OperatorIdentity,
        policy: SplitPolicy = SplitPolicy(),
        compute_unit_limit: int = DEFAULT_COMPUTE_UNIT_LIMIT,
        compute_unit_price: int = DEFAULT_COMPUTE_UNIT_PRICE,
    ) -> None:
        self.gateway = gateway
        self.referrals = referrals
        self.operator = operator
        self.policy = policy
        self.compute_unit_limit = compute_unit_limit
        self.compute_unit_price = compute_unit_price

    async def close_account(
        self,
        owner: str | Pubkey,
        account: str | Pubkey,
        referral_code: Optional[str] = None,
    ) -> CloseResult:
        """Close one empty token account. An unknown referral code fails the request."""
        request = CloseRequest(owner=owner, accounts=[account], referral_code=referral_code)
        owner_pub = validate_pubkey(request.owner)
        account_pub = validate_pubkey(account)

        owner_balance, ixs = await self._open(owner_pub)
        closing = await build_close_instruction(self.gateway, owner_pub, account_pub)
        logger.info(f"Rent amount for {account_pub}: {closing.rent_lamports}")
        ixs.append(closing.instruction)

        return await self._settle(
            owner=owner_pub,
            ixs=ixs,
            total_reclaimed=closing.rent_lamports,
            owner_balance=owner_balance,
            referral_code=request.referral_code,
            strict_referral=True,
            processed=[str(account_pub)],
        )

    async def close_account_with_balance(
        self,
        owner: str | Pubkey,
        account: str | Pubkey,
        referral_code: Optional[str] = None,
    ) -> CloseResult:
        """Burn the remaining tokens of one account, then close it. Referral is optional."""
        request = CloseRequest(owner=owner, accounts=[account], referral_code=referral_code)
        owner_pub = validate_pubkey(request.owner)
        account_pub = validate_pubkey(account)

        owner_balance, ixs = await self._open(owner_pub)
        burn_ix = await build_burn_instruction(self.gateway, owner_pub, account_pub)
        if burn_ix is not None:
            ixs.append(burn_ix)
        closing = await build_close_instruction(self.gateway, owner_pub, account_pub)
        logger.info(f"Rent amount for {account_pub}: {closing.rent_lamports}")
        ixs.append(closing.instruction)

        return await self._settle(
            owner=owner_pub,
            ixs=ixs,
            total_reclaimed=closing.rent_lamports,
            owner_balance=owner_balance,
            referral_code=request.referral_code,
            strict_referral=False,
            processed=[str(account_pub)],
        )

    async def close_accounts_batch(
        self,
        owner: str | Pubkey,
        accounts: list[str | Pubkey],
        referral_code: Optional[str] = None,
    ) -> CloseResult:
        """Close many empty accounts at once, skipping the ones that cannot be closed."""
        request = CloseRequest(owner=owner, accounts=list(accounts), referral_code=referral_code)
        owner_pub = validate_pubkey(request.owner)

        owner_balance, ixs = await self._open(owner_pub)
        batch = await collect_close_instructions(self.gateway, owner_pub, request.accounts)
        if not batch.successes:
            raise NoValidAccounts(len(batch.errors))

        logger.info(
            f"Batch for {owner_pub}: {len(batch.successes)} closable, "
            f"{len(batch.errors)} skipped, {batch.total_reclaimed} lamports"
        )
        ixs.extend(c.instruction for c in batch.successes)

        return await self._settle(
            owner=owner_pub,
            ixs=ixs,
            total_reclaimed=batch.total_reclaimed,
            owner_balance=owner_balance,
            referral_code=request.referral_code,
            strict_referral=False,
            processed=batch.processed_accounts,
            errors=batch.errors,
        )

    async def _open(self, owner: Pubkey) -> tuple[int, list[Instruction]]:
        """
        Read the owner's balance once and start the instruction list.

        The subsidy decision rests on this snapshot for the whole request; no
        later step reads the owner's balance again.
        """
        owner_balance = await self.gateway.get_owner_native_balance(owner)
        logger.info(f"User {owner} balance: {owner_balance}")

        ixs = build_compute_budget_ixs(self.compute_unit_limit, self.compute_unit_price)
        if owner_balance == 0:
            logger.info(f"Adding charity transfer of {self.policy.charity_subsidy_lamports} lamports to {owner}")
            ixs.append(build_transfer_ix(
                self.operator.pubkey, owner, self.policy.charity_subsidy_lamports,
            ))
        return owner_balance, ixs

    async def _resolve_referral(self, code: Optional[str], *, strict: bool) -> Pubkey | None:
        """Referral wallet that can receive a transfer right now, or None."""
        if not code:
            return None

        wallet = await self.referrals.resolve(code)
        if wallet is None:
            if strict:
                raise ReferralResolutionFailed(code)
            logger.info(f"Referral code {code} not found, continuing without referral")
            return None

        address = validate_pubkey(wallet.wallet_address, stage="referral")
        if not await self.gateway.wallet_exists_and_funded(address):
            logger.info(f"Referral wallet {address} is missing or unfunded, no referral share")
            return None
        return address

    async def _settle(
        self,
        *,
        owner: Pubkey,
        ixs: list[Instruction],
        total_reclaimed: int,
        owner_balance: int,
        referral_code: Optional[str],
        strict_referral: bool,
        processed: list[str],
        errors: Optional[list[AccountFailure]] = None,
    ) -> CloseResult:
        referral = await self._resolve_referral(referral_code, strict=strict_referral)
        split = split_revenue(
            total_reclaimed,
            owner_balance,
            referral_eligible=referral is not None,
            policy=self.policy,
        )
        logger.info(
            f"Split of {total_reclaimed}: owner={split.owner_share} "
            f"treasury={split.treasury_remainder} referral={split.referral_share} "
            f"subsidy={split.charity_subsidy}"
        )

        if referral is not None:
            ixs.append(build_transfer_ix(owner, referral, split.referral_share))
        ixs.append(build_transfer_ix(owner, self.operator.pubkey, split.treasury_remainder))

        composed = await self._finalize(ixs, owner=owner, subsidized=owner_balance == 0)
        return CloseResult(
            transaction=composed,
            split=split,
            processed_accounts=processed,
            errors=errors or [],
        )

    async def _finalize(self, ixs: list[Instruction], *, owner: Pubkey, subsidized: bool) -> ComposedTransaction:
        """Bind a blockhash and pick the fee payer; the operator signs only when it pays."""
        blockhash = await self.gateway.get_recent_blockhash()
        fee_payer = self.operator.pubkey if subsidized else owner

        message = Message.new_with_blockhash(ixs, fee_payer, blockhash)
        transaction = Transaction.new_unsigned(message)
        if subsidized:
            transaction.partial_sign([self.operator.keypair], blockhash)

        return ComposedTransaction(
            instructions=list(ixs),
            fee_payer=fee_payer,
            recent_blockhash=blockhash,
            transaction=transaction,
        )
