import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from rent_reclaim.core.client import AccountRent, TokenBalance, TokenMetadata
from rent_reclaim.core.constants import TOKEN_PROGRAM_ID
from rent_reclaim.services.composer import TransactionComposer
from rent_reclaim.services.key_pair import OperatorIdentity
from rent_reclaim.services.referral import ReferralWallet

RENT_LAMPORTS = 2_039_280


class FakeLedgerGateway:
    """In-memory ledger with call recording."""

    def __init__(self):
        self.rents: dict[Pubkey, AccountRent] = {}
        self.token_balances: dict[Pubkey, TokenBalance] = {}
        self.native_balances: dict[Pubkey, int] = {}
        self.associated: dict[tuple[Pubkey, Pubkey], Pubkey] = {}
        self.funded: set[Pubkey] = set()
        self.metadata: dict[Pubkey, TokenMetadata] = {}
        self.blockhash = Hash.new_unique()
        self.calls: list[tuple] = []

    def add_account(self, lamports: int = RENT_LAMPORTS, program_id: Pubkey = TOKEN_PROGRAM_ID) -> Pubkey:
        account = Pubkey.new_unique()
        self.rents[account] = AccountRent(lamports=lamports, program_id=program_id)
        return account

    def add_token_account(self, owner: Pubkey, amount: int, lamports: int = RENT_LAMPORTS, with_ata: bool = True) -> Pubkey:
        account = self.add_account(lamports)
        mint = Pubkey.new_unique()
        self.token_balances[account] = TokenBalance(amount=amount, mint=mint, owner=owner)
        if with_ata:
            self.associated[(owner, mint)] = account
        return account

    async def get_account_rent(self, account):
        self.calls.append(("get_account_rent", account))
        return self.rents.get(account)

    async def get_owner_native_balance(self, owner):
        self.calls.append(("get_owner_native_balance", owner))
        return self.native_balances.get(owner, 0)

    async def get_token_balance(self, account):
        self.calls.append(("get_token_balance", account))
        return self.token_balances.get(account)

    async def get_associated_holding_account(self, owner, mint, program_id=TOKEN_PROGRAM_ID):
        self.calls.append(("get_associated_holding_account", owner, mint))
        return self.associated.get((owner, mint))

    async def wallet_exists_and_funded(self, address):
        self.calls.append(("wallet_exists_and_funded", address))
        return address in self.funded

    async def get_recent_blockhash(self):
        self.calls.append(("get_recent_blockhash",))
        return self.blockhash

    async def get_token_metadata(self, mint):
        self.calls.append(("get_token_metadata", mint))
        return self.metadata.get(mint)


class FakeReferralDirectory:
    def __init__(self, wallets: dict[str, str | ReferralWallet] | None = None):
        self.wallets = wallets or {}

    async def resolve(self, code):
        entry = self.wallets.get(code)
        if entry is None or isinstance(entry, ReferralWallet):
            return entry
        return ReferralWallet(wallet_address=entry)


@pytest.fixture
def gateway():
    return FakeLedgerGateway()


@pytest.fixture
def referrals():
    return FakeReferralDirectory()


@pytest.fixture
def operator():
    return OperatorIdentity(keypair=Keypair())


@pytest.fixture
def owner():
    return Keypair()


@pytest.fixture
def composer(gateway, referrals, operator):
    return TransactionComposer(gateway=gateway, referrals=referrals, operator=operator)
