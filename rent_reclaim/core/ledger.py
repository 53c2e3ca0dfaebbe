from typing import Protocol

from solders.hash import Hash
from solders.pubkey import Pubkey

from .client import AccountRent, TokenBalance


class LedgerGateway(Protocol):
    """Lookups the composer needs from the ledger. Implemented by SolanaClient."""

    async def get_account_rent(self, account: Pubkey) -> AccountRent | None: ...

    async def get_owner_native_balance(self, owner: Pubkey) -> int: ...

    async def get_token_balance(self, account: Pubkey) -> TokenBalance | None: ...

    async def get_associated_holding_account(
        self, owner: Pubkey, mint: Pubkey, program_id: Pubkey = ...
    ) -> Pubkey | None: ...

    async def wallet_exists_and_funded(self, address: Pubkey) -> bool: ...

    async def get_recent_blockhash(self) -> Hash: ...
