from pydantic import BaseModel, Field
import os
from pathlib import Path

class Settings(BaseModel):
    solana_rpc_url: str = Field(default=os.getenv("SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com"))
    solana_keypair: str | None = Field(default=os.getenv("SOLANA_KEYPAIR"))
    referrals_path: Path = Field(default=Path(os.getenv("REFERRALS_PATH", "/data/referrals.json")))
    rpc_max_calls: int = Field(default=int(os.getenv("RPC_MAX_CALLS", "10")))
    rpc_per_seconds: float = Field(default=float(os.getenv("RPC_PER_SECONDS", "0.9")))

    # basis points of the reclaimed rent
    owner_share_bps: int = Field(default=int(os.getenv("OWNER_SHARE_BPS", "6500")))
    subsidized_owner_share_bps: int = Field(default=int(os.getenv("SUBSIDIZED_OWNER_SHARE_BPS", "7500")))
    referral_share_bps: int = Field(default=int(os.getenv("REFERRAL_SHARE_BPS", "3000")))
    # lamports
    charity_subsidy_lamports: int = Field(default=int(os.getenv("CHARITY_SUBSIDY_LAMPORTS", "5000")))

    compute_unit_limit: int = Field(default=int(os.getenv("COMPUTE_UNIT_LIMIT", "10000")))
    compute_unit_price: int = Field(default=int(os.getenv("COMPUTE_UNIT_PRICE", "150000")))  # micro-lamports

    allowed_origins: list[str] = Field(default=os.getenv("ALLOWED_ORIGINS", "*").split(","))
    log_level: str = Field(default=os.getenv("LOG_LEVEL", "INFO"))

settings = Settings()
