import typing
from pydantic import BaseModel, Field


class CloseAccountRequest(BaseModel):
    user_public_key: str = Field(min_length=1)
    account_public_key: str = Field(min_length=1)
    referral_code: typing.Optional[str] = None


class CloseAccountsBunchRequest(BaseModel):
    user_public_key: str = Field(min_length=1)
    account_public_keys: list[str] = Field(min_length=1)
    referral_code: typing.Optional[str] = None


class AccountErrorDTO(BaseModel):
    accountPublicKey: str
    error: str
    stage: str


class CloseTransactionResponse(BaseModel):
    """Base64 transaction for the owner to co-sign, and the SOL they end up with."""
    transaction: str
    solReceived: float
    ownerShareLamports: int
    feePayer: str


class CloseBunchResponse(CloseTransactionResponse):
    processedAccounts: list[str]
    errors: list[AccountErrorDTO] = []


class TokenAccountDTO(BaseModel):
    pubkey: str
    mint: str
    balance: float
    rentAmount: float
    name: typing.Optional[str] = None
    symbol: typing.Optional[str] = None
    logo: typing.Optional[str] = None


class TokenAccountsResponse(BaseModel):
    accounts: list[TokenAccountDTO]


class WalletBalanceResponse(BaseModel):
    balance: float


class ReferralWalletResponse(BaseModel):
    wallet_address: str
    sol_received: float = 0


class AffiliatedWalletResponse(BaseModel):
    affiliated_wallet: ReferralWalletResponse
