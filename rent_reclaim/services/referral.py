import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ..core.logger import logger
from .utils import load_json


@dataclass(frozen=True, slots=True)
class ReferralWallet:
    wallet_address: str
    sol_received: float = 0


class ReferralDirectory(Protocol):
    async def resolve(self, code: str) -> ReferralWallet | None: ...


class JsonReferralDirectory:
    """
    Read-only referral lookup over a JSON export of the affiliation store.

    The file holds two collections, `users` and `affiliated_wallets`, each a
    list of records with `referral_code` and `wallet_address`. Registered users
    take precedence over bare affiliated wallets. The file is re-read on every
    lookup so codes issued by the affiliation service show up without restart.
    """

    def __init__(self, path: Path):
        self.path = path

    def _load(self) -> dict:
        if not self.path.exists():
            logger.warning(f"Referral file {self.path} not found, no referral codes available")
            return {}
        try:
            data = load_json(self.path)
        except json.JSONDecodeError as e:
            logger.error(f"Referral file {self.path} is not valid JSON, no referral codes available: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Referral file {self.path} must hold an object, got {type(data).__name__}")
            return {}
        return data

    async def resolve(self, code: str) -> ReferralWallet | None:
        data = await asyncio.to_thread(self._load)
        for collection in ("users", "affiliated_wallets"):
            for record in data.get(collection, []):
                if record.get("referral_code") == code and record.get("wallet_address"):
                    logger.info(f"Found wallet in {collection} with referral code: {code}")
                    return ReferralWallet(
                        wallet_address=record["wallet_address"],
                        sol_received=record.get("sol_received", 0),
                    )
        logger.info(f"No affiliated wallet found for referral code: {code}")
        return None
