import httpx
import asyncio
import time
import random
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from construct import ConstructError
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts
from solders.account import Account
from solders.hash import Hash
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from .constants import (
    METADATA_LAYOUT,
    METADATA_PROGRAM_ID,
    TOKEN_ACCOUNT_LAYOUT,
    TOKEN_PROGRAMS,
    TOKEN_PROGRAM_ID,
)
from .logger import logger


@dataclass(frozen=True, slots=True)
class AccountRent:
    lamports: int
    program_id: Pubkey


@dataclass(frozen=True, slots=True)
class TokenBalance:
    amount: int
    mint: Pubkey
    owner: Pubkey
    program_id: Pubkey = TOKEN_PROGRAM_ID


@dataclass(frozen=True, slots=True)
class TokenAccountSummary:
    pubkey: Pubkey
    mint: Pubkey
    amount: int
    ui_amount: float
    lamports: int


@dataclass(frozen=True, slots=True)
class TokenMetadata:
    name: str
    symbol: str
    uri: str


class AsyncRateLimiter:
    def __init__(self, max_calls: int, per_seconds: float):
        self.max_calls = max_calls
        self.per_seconds = per_seconds
        self.calls = deque()

    async def wait(self):
        now = time.monotonic()
        while len(self.calls) >= self.max_calls:
            elapsed = now - self.calls[0]
            if elapsed < self.per_seconds:
                wait_time = self.per_seconds - elapsed
                await asyncio.sleep(min(wait_time, 0.01))
                now = time.monotonic()
            else:
                self.calls.popleft()
        self.calls.append(now)

class ExponentialBackoff:
    def __init__(self, min_delay=0.2, max_delay=5.0, factor=2.0, jitter=0.2):
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.factor = factor
        self.jitter = jitter
        self._current = self.min_delay

    async def delay(self):
        jitter = random.uniform(1 - self.jitter, 1 + self.jitter)
        delay = min(self._current * jitter, self.max_delay)
        logger.warning(f"[Backoff] Sleeping for {delay:.2f}s due to rate limit...")
        await asyncio.sleep(delay)
        self._current = min(self._current * self.factor, self.max_delay)

    def reset(self):
        self._current = self.min_delay

class PatchedHttpxClient(httpx.AsyncClient):
    def __init__(self, *args, max_retries: int = 10, limiter: AsyncRateLimiter, backoff: ExponentialBackoff | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._max_retries = max_retries
        self._limiter = limiter
        self._backoff = backoff or ExponentialBackoff()

    async def send(self, request: httpx.Request, *args, **kwargs) -> httpx.Response:
        for attempt in range(self._max_retries):
            await self._limiter.wait()
            response = await super().send(request, *args, **kwargs)

            if response.status_code != 429:
                self._backoff.reset()
                return response

            logger.warning(f"[PatchedHttpxClient] 429 Too Many Requests → attempt {attempt+1}/{self._max_retries} for {request.url}")
            await self._backoff.delay()

        logger.error(f"[PatchedHttpxClient] Giving up after {self._max_retries} retries → {request.url}")
        raise httpx.HTTPStatusError("429 Too Many Requests (max retries)", request=request, response=response)

class SolanaClient:
    """Read-only ledger gateway over a Solana JSON-RPC endpoint.

    HTTP 429 responses are retried with backoff inside the transport. Once it
    gives up, solana-py raises `SolanaRpcException` and, like every other
    failure, it propagates to the caller.
    """

    def __init__(self, rpc_endpoint: str, max_calls=10, per_seconds=0.9):
        """Initialize Solana client with RPC endpoint.

        Args:
            rpc_endpoint: URL of the Solana RPC endpoint
        """
        self.rpc_endpoint = rpc_endpoint
        self._client = None
        self._limiter = AsyncRateLimiter(max_calls=max_calls, per_seconds=per_seconds)

    async def get_client(self) -> AsyncClient:
        if self._client is None:
            raw_client = AsyncClient(self.rpc_endpoint, commitment=Confirmed)
            patched_httpx = PatchedHttpxClient(base_url=self.rpc_endpoint, timeout=10.0, limiter=self._limiter)
            raw_client._provider.session = patched_httpx
            self._client = raw_client
        return self._client

    async def _execute_with_retry(self, func: Callable[[], Any]) -> Any:
        """Retry rate-limit errors reported in the JSON-RPC body; raise on any other error."""
        backoff = ExponentialBackoff()
        while True:
            result = await func()

            if hasattr(result, "error") and result.error:
                err = result.error
                msg = err.get("message") if isinstance(err, dict) else str(err)

                if "429" in msg or "Too Many Requests" in msg:
                    logger.warning(f"[429] RPC response error: {msg}")
                    await backoff.delay()
                    continue
                raise RuntimeError(f"RPC error: {msg}")

            return result

    async def close(self):
        """Close the client connection."""
        if self._client:
            await self._client.close()
            self._client = None

    async def get_account_info(self, pubkey: Pubkey) -> Account | None:
        """Get raw account info from the blockchain, None when the account does not exist."""
        client = await self.get_client()
        response = await self._execute_with_retry(lambda: client.get_account_info(pubkey, encoding="base64"))
        return response.value

    async def get_account_rent(self, account: Pubkey) -> AccountRent | None:
        """Lamports stored in `account`; closing it releases all of them."""
        info = await self.get_account_info(account)
        if info is None:
            return None
        return AccountRent(lamports=int(info.lamports), program_id=info.owner)

    async def get_owner_native_balance(self, owner: Pubkey) -> int:
        client = await self.get_client()
        response = await self._execute_with_retry(lambda: client.get_balance(owner))
        return int(response.value)

    async def get_token_balance(self, account: Pubkey) -> TokenBalance | None:
        """Decode amount, mint and owner of a token account.

        Returns:
            None if the account is missing or not owned by a token program.
        """
        info = await self.get_account_info(account)
        if info is None or info.owner not in TOKEN_PROGRAMS:
            return None
        try:
            parsed = TOKEN_ACCOUNT_LAYOUT.parse(bytes(info.data))
        except ConstructError as e:
            logger.warning(f"Undecodable token account {account}: {e}")
            return None
        return TokenBalance(
            amount=int(parsed.amount),
            mint=Pubkey.from_bytes(parsed.mint),
            owner=Pubkey.from_bytes(parsed.owner),
            program_id=info.owner,
        )

    async def get_associated_holding_account(
        self,
        owner: Pubkey,
        mint: Pubkey,
        program_id: Pubkey = TOKEN_PROGRAM_ID,
    ) -> Pubkey | None:
        ata = get_associated_token_address(owner, mint, token_program_id=program_id)
        if await self.get_account_info(ata) is None:
            return None
        return ata

    async def wallet_exists_and_funded(self, address: Pubkey) -> bool:
        info = await self.get_account_info(address)
        return info is not None and info.lamports > 0

    async def get_recent_blockhash(self) -> Hash:
        """Get the latest blockhash."""
        client = await self.get_client()
        response = await self._execute_with_retry(lambda: client.get_latest_blockhash())
        return response.value.blockhash

    async def list_token_accounts(self, owner: Pubkey) -> list[TokenAccountSummary]:
        """All SPL Token and Token-2022 accounts held by `owner`."""
        client = await self.get_client()
        summaries: list[TokenAccountSummary] = []
        for program_id in TOKEN_PROGRAMS:
            response = await self._execute_with_retry(
                lambda: client.get_token_accounts_by_owner_json_parsed(
                    owner,
                    TokenAccountOpts(program_id=program_id),
                )
            )
            for keyed in response.value:
                info = keyed.account.data.parsed["info"]
                token_amount = info["tokenAmount"]
                summaries.append(TokenAccountSummary(
                    pubkey=keyed.pubkey,
                    mint=Pubkey.from_string(info["mint"]),
                    amount=int(token_amount["amount"]),
                    ui_amount=float(token_amount.get("uiAmount") or 0),
                    lamports=int(keyed.account.lamports),
                ))
        return summaries

    async def get_token_metadata(self, mint: Pubkey) -> TokenMetadata | None:
        """Name, symbol and URI from the mint's Metaplex metadata account, if it has one."""
        pda, _ = Pubkey.find_program_address(
            [b"metadata", bytes(METADATA_PROGRAM_ID), bytes(mint)],
            METADATA_PROGRAM_ID,
        )
        info = await self.get_account_info(pda)
        if info is None or info.owner != METADATA_PROGRAM_ID:
            return None
        try:
            parsed = METADATA_LAYOUT.parse(bytes(info.data))
        except (ConstructError, UnicodeDecodeError) as e:
            logger.warning(f"Undecodable metadata account {pda} for mint {mint}: {e}")
            return None
        return TokenMetadata(
            name=parsed.name.rstrip("\x00"),
            symbol=parsed.symbol.rstrip("\x00"),
            uri=parsed.uri.rstrip("\x00"),
        )
