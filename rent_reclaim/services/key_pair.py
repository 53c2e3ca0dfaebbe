import json
from dataclasses import dataclass

from base58 import b58decode
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..core.errors import OperatorKeyError
from ..core.logger import logger

SECRET_KEY_LENGTH = 64


@dataclass(frozen=True)
class OperatorIdentity:
    """Operator signing key. Built once at start-up and never mutated."""
    keypair: Keypair

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()


def _decode_secret(secret: str) -> bytes:
    secret = secret.strip()
    if secret.startswith("[") or secret.startswith("{"):
        data = json.loads(secret)
        if not isinstance(data, list):
            raise OperatorKeyError("SOLANA_KEYPAIR must be an array.")
        return bytes(data)
    return b58decode(secret)


def load_operator_identity(secret: str | None) -> OperatorIdentity:
    """Accepts a base58 string or a JSON byte array, as exported by the Solana CLI."""
    if not secret:
        raise OperatorKeyError("SOLANA_KEYPAIR is not defined")
    try:
        raw = _decode_secret(secret)
    except (ValueError, TypeError) as e:
        raise OperatorKeyError("SOLANA_KEYPAIR is not valid. Ensure it is a Base58 string or JSON array.") from e

    if len(raw) != SECRET_KEY_LENGTH:
        raise OperatorKeyError(f"Invalid secret key size. Must be {SECRET_KEY_LENGTH} bytes.")

    try:
        keypair = Keypair.from_bytes(raw)
    except ValueError as e:
        raise OperatorKeyError(f"SOLANA_KEYPAIR rejected: {e}") from e

    logger.info(f"Operator identity loaded: {keypair.pubkey()}")
    return OperatorIdentity(keypair=keypair)
