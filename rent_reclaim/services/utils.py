import json
from pathlib import Path

from solders.pubkey import Pubkey

from ..core.constants import LAMPORTS_PER_SOL
from ..core.errors import InvalidIdentifier


def validate_pubkey(value: str | Pubkey, *, stage: str | None = None) -> Pubkey:
    """Canonical Pubkey for `value` or InvalidIdentifier naming it."""
    if isinstance(value, Pubkey):
        return value
    if not isinstance(value, str) or not value:
        raise InvalidIdentifier(value, stage=stage)
    try:
        return Pubkey.from_string(value)
    except ValueError as e:
        raise InvalidIdentifier(value, stage=stage) from e


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


def load_json(path: Path) -> dict:
    with open(path, "r") as f:
        return json.load(f)
