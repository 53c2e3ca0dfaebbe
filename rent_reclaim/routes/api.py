from fastapi import APIRouter, HTTPException, Depends, Query

from ..core.client import SolanaClient
from ..core.errors import (
    InvalidCloseRequest,
    InvalidIdentifier,
    OwnershipMismatch,
    ReclaimError,
    ReferralResolutionFailed,
)
from ..core.logger import logger
from ..deps.composer import get_composer
from ..deps.solana_client import get_solana_client
from ..deps.referrals import get_referrals
from ..dto import (
    AccountErrorDTO,
    AffiliatedWalletResponse,
    CloseAccountRequest,
    CloseAccountsBunchRequest,
    CloseBunchResponse,
    CloseTransactionResponse,
    ReferralWalletResponse,
    TokenAccountsResponse,
    WalletBalanceResponse,
)
from ..services import accounts
from ..services.composer import CloseResult, TransactionComposer
from ..services.referral import ReferralDirectory, ReferralWallet
from ..services.utils import validate_pubkey

router = APIRouter()


def _status_for(error: ReclaimError) -> int:
    if isinstance(error, (InvalidIdentifier, InvalidCloseRequest)):
        return 400
    if isinstance(error, OwnershipMismatch):
        return 403
    return 422


def _to_http(error: ReclaimError, route: str) -> HTTPException:
    logger.warning(f"Error in {route}: {error}")
    return HTTPException(status_code=_status_for(error), detail=error.to_dict())


def _to_response(result: CloseResult) -> dict:
    return {
        "transaction": result.transaction.serialize(),
        "solReceived": result.sol_received,
        "ownerShareLamports": result.owner_share_lamports,
        "feePayer": str(result.transaction.fee_payer),
    }


@router.post("/close-account")
async def close_account(
    data: CloseAccountRequest,
    composer: TransactionComposer = Depends(get_composer),
) -> CloseTransactionResponse:
    try:
        result = await composer.close_account(
            data.user_public_key,
            data.account_public_key,
            data.referral_code,
        )
    except ReclaimError as e:
        raise _to_http(e, "/close-account")
    return CloseTransactionResponse(**_to_response(result))


@router.post("/close-account-with-balance")
async def close_account_with_balance(
    data: CloseAccountRequest,
    composer: TransactionComposer = Depends(get_composer),
) -> CloseTransactionResponse:
    try:
        result = await composer.close_account_with_balance(
            data.user_public_key,
            data.account_public_key,
            data.referral_code,
        )
    except ReclaimError as e:
        raise _to_http(e, "/close-account-with-balance")
    return CloseTransactionResponse(**_to_response(result))


@router.post("/close-accounts-bunch")
async def close_accounts_bunch(
    data: CloseAccountsBunchRequest,
    composer: TransactionComposer = Depends(get_composer),
) -> CloseBunchResponse:
    try:
        result = await composer.close_accounts_batch(
            data.user_public_key,
            data.account_public_keys,
            data.referral_code,
        )
    except ReclaimError as e:
        raise _to_http(e, "/close-accounts-bunch")
    return CloseBunchResponse(
        **_to_response(result),
        processedAccounts=result.processed_accounts,
        errors=[AccountErrorDTO(**f.to_dict()) for f in result.errors],
    )


@router.get("/get-accounts-without-balance-list")
async def get_accounts_without_balance(
    wallet_address: str = Query(...),
    solana_client: SolanaClient = Depends(get_solana_client),
) -> TokenAccountsResponse:
    try:
        owner = validate_pubkey(wallet_address)
    except InvalidIdentifier as e:
        raise _to_http(e, "/get-accounts-without-balance-list")
    return TokenAccountsResponse(accounts=await accounts.list_accounts_without_balance(solana_client, owner))


@router.get("/get-accounts-with-balance-list", response_model_exclude_none=True)
async def get_accounts_with_balance(
    wallet_address: str = Query(...),
    solana_client: SolanaClient = Depends(get_solana_client),
) -> TokenAccountsResponse:
    try:
        owner = validate_pubkey(wallet_address)
    except InvalidIdentifier as e:
        raise _to_http(e, "/get-accounts-with-balance-list")
    return TokenAccountsResponse(accounts=await accounts.list_accounts_with_balance(solana_client, owner))


@router.get("/get-wallet-balance")
async def get_wallet_balance(
    wallet_address: str = Query(...),
    solana_client: SolanaClient = Depends(get_solana_client),
) -> WalletBalanceResponse:
    try:
        owner = validate_pubkey(wallet_address)
    except InvalidIdentifier as e:
        raise _to_http(e, "/get-wallet-balance")
    return WalletBalanceResponse(balance=await accounts.get_wallet_balance(solana_client, owner))


async def _lookup_referral(referrals: ReferralDirectory, code: str, route: str) -> ReferralWallet:
    wallet = await referrals.resolve(code)
    if wallet is None:
        error = ReferralResolutionFailed(code)
        logger.info(f"{route}: {error}")
        raise HTTPException(status_code=404, detail=error.to_dict())
    return wallet


@router.get("/check-referral-code")
async def check_referral_code(
    referral_code: str = Query(..., min_length=1),
    referrals: ReferralDirectory = Depends(get_referrals),
) -> ReferralWalletResponse:
    wallet = await _lookup_referral(referrals, referral_code, "/check-referral-code")
    return ReferralWalletResponse(wallet_address=wallet.wallet_address, sol_received=wallet.sol_received)


@router.get("/affiliated-wallet")
async def get_affiliated_wallet(
    referral_code: str = Query(..., min_length=1),
    referrals: ReferralDirectory = Depends(get_referrals),
) -> AffiliatedWalletResponse:
    wallet = await _lookup_referral(referrals, referral_code, "/affiliated-wallet")
    return AffiliatedWalletResponse(
        affiliated_wallet=ReferralWalletResponse(wallet_address=wallet.wallet_address, sol_received=wallet.sol_received),
    )
