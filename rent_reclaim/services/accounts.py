import httpx
from solders.pubkey import Pubkey

from ..core.client import SolanaClient, TokenAccountSummary
from ..core.constants import IPFS_GATEWAY, IPFS_SCHEME
from ..core.logger import logger
from ..dto import TokenAccountDTO
from .utils import lamports_to_sol


async def list_accounts_without_balance(solana_client: SolanaClient, owner: Pubkey) -> list[TokenAccountDTO]:
    """Empty token accounts of `owner` with the rent each would release, in SOL."""
    accounts = await solana_client.list_token_accounts(owner)
    return [
        TokenAccountDTO(
            pubkey=str(acc.pubkey),
            mint=str(acc.mint),
            balance=acc.ui_amount,
            rentAmount=lamports_to_sol(acc.lamports),
        )
        for acc in accounts
        if acc.amount == 0
    ]


async def fetch_off_chain_metadata(uri: str) -> dict:
    async with httpx.AsyncClient(timeout=10.0, follow_redirects=True) as client:
        r = await client.get(gateway_url(uri))
        r.raise_for_status()
        return r.json()


def gateway_url(uri: str) -> str:
    if uri.startswith(IPFS_SCHEME):
        return IPFS_GATEWAY + uri[len(IPFS_SCHEME):]
    return uri


async def _describe(solana_client: SolanaClient, acc: TokenAccountSummary) -> TokenAccountDTO:
    entry = TokenAccountDTO(
        pubkey=str(acc.pubkey),
        mint=str(acc.mint),
        balance=acc.ui_amount,
        rentAmount=lamports_to_sol(acc.lamports),
    )
    metadata = await solana_client.get_token_metadata(acc.mint)
    if metadata is None:
        return entry

    off_chain: dict = {}
    if metadata.uri:
        try:
            off_chain = await fetch_off_chain_metadata(metadata.uri)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Error fetching NFT metadata for {acc.mint}: {e}")
        if not isinstance(off_chain, dict):
            off_chain = {}

    image = off_chain.get("image")
    return entry.model_copy(update={
        "name": metadata.name or off_chain.get("name"),
        "symbol": metadata.symbol or off_chain.get("symbol"),
        "logo": gateway_url(image) if isinstance(image, str) else None,
    })


async def list_accounts_with_balance(solana_client: SolanaClient, owner: Pubkey) -> list[TokenAccountDTO]:
    """Token accounts of `owner` still holding tokens, with name, symbol and logo where the mint has metadata."""
    accounts = await solana_client.list_token_accounts(owner)
    return [await _describe(solana_client, acc) for acc in accounts if acc.amount > 0]


async def get_wallet_balance(solana_client: SolanaClient, owner: Pubkey) -> float:
    return lamports_to_sol(await solana_client.get_owner_native_balance(owner))
