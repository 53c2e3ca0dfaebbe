from solders.pubkey import Pubkey
from construct import Struct, Bytes, Int8ul, Int32ul, Int64ul, PascalString

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_PROGRAM_2022_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
TOKEN_PROGRAMS = (TOKEN_PROGRAM_ID, TOKEN_PROGRAM_2022_ID)
METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")

LAMPORTS_PER_SOL = 1_000_000_000
BPS_DENOMINATOR = 10_000

IPFS_SCHEME = "ipfs://"
IPFS_GATEWAY = "https://ipfs.io/ipfs/"

# Leading fields of an SPL token account; Token-2022 shares the base layout.
TOKEN_ACCOUNT_LAYOUT = Struct(
    "mint" / Bytes(32),
    "owner" / Bytes(32),
    "amount" / Int64ul,
)
TOKEN_ACCOUNT_BASE_SIZE = 165

# Leading fields of a Metaplex metadata account. Strings are null-padded.
METADATA_LAYOUT = Struct(
    "key" / Int8ul,
    "update_authority" / Bytes(32),
    "mint" / Bytes(32),
    "name" / PascalString(Int32ul, "utf8"),
    "symbol" / PascalString(Int32ul, "utf8"),
    "uri" / PascalString(Int32ul, "utf8"),
)
