from dataclasses import dataclass

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.instructions import BurnParams, CloseAccountParams, burn, close_account

from ..core.errors import AccountNotFound, MissingAssociatedAccount, OwnershipMismatch
from ..core.ledger import LedgerGateway
from ..core.logger import logger


@dataclass(frozen=True, slots=True)
class CloseInstruction:
    account: Pubkey
    rent_lamports: int
    instruction: Instruction


def build_compute_budget_ixs(unit_limit: int, unit_price: int) -> list[Instruction]:
    return [set_compute_unit_limit(unit_limit), set_compute_unit_price(unit_price)]


def build_transfer_ix(source: Pubkey, destination: Pubkey, lamports: int) -> Instruction:
    return transfer(TransferParams(from_pubkey=source, to_pubkey=destination, lamports=lamports))


async def build_close_instruction(
    gateway: LedgerGateway,
    owner: Pubkey,
    account: Pubkey,
) -> CloseInstruction:
    """
    Close `account` into the owner's wallet.

    The owner is both the destination and the close authority; any later
    redistribution is done by plain transfers out of the owner's wallet.
    """
    rent = await gateway.get_account_rent(account)
    if rent is None:
        raise AccountNotFound(str(account))

    ix = close_account(CloseAccountParams(
        program_id=rent.program_id,
        account=account,
        dest=owner,
        owner=owner,
    ))
    return CloseInstruction(account=account, rent_lamports=rent.lamports, instruction=ix)


async def build_burn_instruction(
    gateway: LedgerGateway,
    owner: Pubkey,
    account: Pubkey,
) -> Instruction | None:
    """
    Burn the whole token balance of `account` so it can be closed.

    Returns None when there is nothing to burn.
    """
    balance = await gateway.get_token_balance(account)
    if balance is None:
        raise AccountNotFound(str(account))

    if balance.amount == 0:
        logger.info(f"Token account {account} has zero balance. Skipping burn.")
        return None

    if balance.owner != owner:
        raise OwnershipMismatch(str(owner), str(account))

    associated = await gateway.get_associated_holding_account(owner, balance.mint, balance.program_id)
    if associated is None:
        raise MissingAssociatedAccount(f"{owner}/{balance.mint}")

    logger.info(f"Burning {balance.amount} tokens from account {account}")
    return burn(BurnParams(
        program_id=balance.program_id,
        account=account,
        mint=balance.mint,
        owner=owner,
        amount=balance.amount,
    ))
