import base64
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from rent_reclaim.core.client import TokenAccountSummary, TokenMetadata
from rent_reclaim.main import app
from rent_reclaim.services import accounts
from rent_reclaim.services.referral import ReferralWallet


@pytest.fixture
def http(composer, gateway, referrals):
    app.state.composer = composer
    app.state.solana = gateway
    app.state.referrals = referrals
    return TestClient(app, raise_server_exceptions=False)


def test_close_account_returns_serialized_transaction(http, gateway, owner):
    gateway.native_balances[owner.pubkey()] = 50_000_000
    account = gateway.add_account(lamports=2_000_000)

    resp = http.post("/close-account", json={
        "user_public_key": str(owner.pubkey()),
        "account_public_key": str(account),
    })

    assert resp.status_code == 200
    body = resp.json()
    assert body["solReceived"] == pytest.approx(0.0013)
    assert body["ownerShareLamports"] == 1_300_000
    assert body["feePayer"] == str(owner.pubkey())
    tx = Transaction.from_bytes(base64.b64decode(body["transaction"]))
    assert tx.message.recent_blockhash == gateway.blockhash


def test_close_account_missing_fields(http):
    resp = http.post("/close-account", json={"user_public_key": str(Pubkey.new_unique())})
    assert resp.status_code == 400


def test_close_account_invalid_key(http):
    resp = http.post("/close-account", json={
        "user_public_key": "bad-key",
        "account_public_key": str(Pubkey.new_unique()),
    })
    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "InvalidIdentifier"
    assert resp.json()["detail"]["identifier"] == "bad-key"


def test_close_account_unknown_referral(http, gateway, owner):
    account = gateway.add_account()

    resp = http.post("/close-account", json={
        "user_public_key": str(owner.pubkey()),
        "account_public_key": str(account),
        "referral_code": "NOPE",
    })

    assert resp.status_code == 422
    assert resp.json()["detail"]["error"] == "ReferralResolutionFailed"


def test_close_with_balance_not_owner(http, gateway, owner):
    account = gateway.add_token_account(Pubkey.new_unique(), amount=5)

    resp = http.post("/close-account-with-balance", json={
        "user_public_key": str(owner.pubkey()),
        "account_public_key": str(account),
    })

    assert resp.status_code == 403


def test_close_accounts_bunch_reports_errors(http, gateway, owner):
    good = gateway.add_account()
    missing = Pubkey.new_unique()

    resp = http.post("/close-accounts-bunch", json={
        "user_public_key": str(owner.pubkey()),
        "account_public_keys": [str(good), str(missing)],
    })

    assert resp.status_code == 200
    body = resp.json()
    assert body["processedAccounts"] == [str(good)]
    assert body["errors"][0]["accountPublicKey"] == str(missing)
    assert body["errors"][0]["stage"] == "close"


def test_close_accounts_bunch_all_failed(http, owner):
    resp = http.post("/close-accounts-bunch", json={
        "user_public_key": str(owner.pubkey()),
        "account_public_keys": [str(Pubkey.new_unique())],
    })

    assert resp.status_code == 422
    assert resp.json()["detail"]["error"] == "NoValidAccounts"


def test_close_accounts_bunch_empty_list(http, owner):
    resp = http.post("/close-accounts-bunch", json={
        "user_public_key": str(owner.pubkey()),
        "account_public_keys": [],
    })
    assert resp.status_code == 400


def test_account_listings(http, gateway, owner):
    empty = TokenAccountSummary(Pubkey.new_unique(), Pubkey.new_unique(), 0, 0.0, 2_039_280)
    held = TokenAccountSummary(Pubkey.new_unique(), Pubkey.new_unique(), 5_000_000, 5.0, 2_039_280)
    gateway.list_token_accounts = AsyncMock(return_value=[empty, held])

    without = http.get("/get-accounts-without-balance-list", params={"wallet_address": str(owner.pubkey())})
    with_balance = http.get("/get-accounts-with-balance-list", params={"wallet_address": str(owner.pubkey())})

    assert [a["pubkey"] for a in without.json()["accounts"]] == [str(empty.pubkey)]
    assert without.json()["accounts"][0]["rentAmount"] == pytest.approx(0.00203928)
    assert [a["pubkey"] for a in with_balance.json()["accounts"]] == [str(held.pubkey)]
    assert with_balance.json()["accounts"][0]["balance"] == 5.0
    assert "name" not in with_balance.json()["accounts"][0]


def test_wallet_balance(http, gateway, owner):
    gateway.native_balances[owner.pubkey()] = 1_500_000_000

    resp = http.get("/get-wallet-balance", params={"wallet_address": str(owner.pubkey())})

    assert resp.json() == {"balance": 1.5}


def test_wallet_balance_requires_address(http):
    assert http.get("/get-wallet-balance").status_code == 400
    assert http.get("/get-wallet-balance", params={"wallet_address": "nope"}).status_code == 400


def held_account(gateway) -> TokenAccountSummary:
    held = TokenAccountSummary(Pubkey.new_unique(), Pubkey.new_unique(), 5_000_000, 5.0, 2_039_280)
    gateway.list_token_accounts = AsyncMock(return_value=[held])
    return held


def test_accounts_with_balance_carry_metadata(http, gateway, owner, monkeypatch):
    held = held_account(gateway)
    gateway.metadata[held.mint] = TokenMetadata(name="Bonk", symbol="BONK", uri="ipfs://QmMeta")
    fetch = AsyncMock(return_value={"name": "Bonk!", "image": "ipfs://QmImage"})
    monkeypatch.setattr(accounts, "fetch_off_chain_metadata", fetch)

    resp = http.get("/get-accounts-with-balance-list", params={"wallet_address": str(owner.pubkey())})

    entry = resp.json()["accounts"][0]
    assert entry["name"] == "Bonk"
    assert entry["symbol"] == "BONK"
    assert entry["logo"] == "https://ipfs.io/ipfs/QmImage"
    fetch.assert_awaited_once_with("ipfs://QmMeta")


def test_accounts_with_balance_keep_names_when_json_fails(http, gateway, owner, monkeypatch):
    held = held_account(gateway)
    gateway.metadata[held.mint] = TokenMetadata(name="Bonk", symbol="BONK", uri="https://example.com/bonk.json")
    monkeypatch.setattr(accounts, "fetch_off_chain_metadata", AsyncMock(side_effect=httpx.ConnectError("down")))

    resp = http.get("/get-accounts-with-balance-list", params={"wallet_address": str(owner.pubkey())})

    entry = resp.json()["accounts"][0]
    assert resp.status_code == 200
    assert entry["name"] == "Bonk"
    assert "logo" not in entry


def test_gateway_url_rewrites_ipfs():
    assert accounts.gateway_url("ipfs://QmX") == "https://ipfs.io/ipfs/QmX"
    assert accounts.gateway_url("https://arweave.net/abc") == "https://arweave.net/abc"


def test_check_referral_code(http, referrals):
    referrals.wallets["ABCD1234"] = ReferralWallet(wallet_address="wallet-1", sol_received=1.25)

    resp = http.get("/check-referral-code", params={"referral_code": "ABCD1234"})

    assert resp.status_code == 200
    assert resp.json() == {"wallet_address": "wallet-1", "sol_received": 1.25}


def test_check_referral_code_unknown(http):
    resp = http.get("/check-referral-code", params={"referral_code": "NOPE"})

    assert resp.status_code == 404
    assert resp.json()["detail"]["error"] == "ReferralResolutionFailed"
    assert resp.json()["detail"]["identifier"] == "NOPE"


def test_check_referral_code_requires_code(http):
    assert http.get("/check-referral-code").status_code == 400
    assert http.get("/check-referral-code", params={"referral_code": ""}).status_code == 400


def test_affiliated_wallet(http, referrals):
    referrals.wallets["ABCD1234"] = "wallet-2"

    resp = http.get("/affiliated-wallet", params={"referral_code": "ABCD1234"})

    assert resp.json() == {"affiliated_wallet": {"wallet_address": "wallet-2", "sol_received": 0}}
    assert http.get("/affiliated-wallet", params={"referral_code": "NOPE"}).status_code == 404
