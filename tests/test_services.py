"""Tests for the transaction and auth services."""

import struct
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from ecdsa import SECP256k1, VerifyingKey
from ecdsa.util import sigdecode_string

from stacks_turnkey.chain.hiro import BroadcastError
from stacks_turnkey.fees import InsufficientFundsError
from stacks_turnkey.sdk import StacksTurnkey
from stacks_turnkey.services.auth_service import STACKS_DERIVATION_PATH, AuthError
from stacks_turnkey.services.types import (
    OAuthProviderParams,
    PasskeyParams,
    WalletAuthParams,
    WalletType,
)
from stacks_turnkey.signing.base import SigningError
from stacks_turnkey.signing.local import LocalSigner
from stacks_turnkey.stacks.c32 import public_key_to_address
from stacks_turnkey.stacks.clarity import Cl
from stacks_turnkey.stacks.transactions import (
    TransactionSigner,
    UnsignedContractCallOptions,
    UnsignedTokenTransferOptions,
    make_unsigned_stx_token_transfer,
)

from conftest import RECIPIENT, FakeHiro

JWT_SECRET = "stacks-turnkey-test-secret-0123456789"


def unpack_condition(raw: bytes) -> dict:
    """Pull origin fields out of a serialized single-sig transaction."""
    return {
        "nonce": struct.unpack(">Q", raw[27:35])[0],
        "fee": struct.unpack(">Q", raw[35:43])[0],
        "signature": raw[44:109],
    }


def assert_signed_by(raw: bytes, unsigned, public_key: str) -> None:
    """Check the broadcast signature covers the unsigned transaction's pre-sign hash."""
    signature = unpack_condition(raw)["signature"]
    digest = bytes.fromhex(TransactionSigner(unsigned).pre_sign_sig_hash())
    vk = VerifyingKey.from_string(bytes.fromhex(public_key), curve=SECP256k1)
    assert vk.verify_digest(signature[1:], digest, sigdecode=sigdecode_string)


@pytest.fixture
def turnkey_client() -> MagicMock:
    client = MagicMock()
    client.api_public_key = "03" + "ab" * 32
    for name in (
        "create_sub_organization", "create_private_keys", "create_wallet", "oauth_login",
        "init_otp", "verify_otp", "otp_login", "get_user", "get_wallet",
        "get_wallet_accounts", "get_authenticators", "get_authenticator", "get_sub_org_ids",
        "close",
    ):
        setattr(client, name, AsyncMock())
    return client


@pytest.fixture
def sdk(settings, local_signer, fake_hiro, turnkey_client) -> StacksTurnkey:
    return StacksTurnkey(
        settings=settings,
        turnkey_client=turnkey_client,
        signer=local_signer,
        hiro_transport=fake_hiro.transport,
    )


class TestChainReads:
    """Tests for read helpers and their fallbacks."""

    @pytest.mark.asyncio
    async def test_reads(self, sdk, fake_hiro):
        fake_hiro.balance = 5000
        fake_hiro.nonce = 2
        fake_hiro.fee_rate = 4
        fake_hiro.transactions = [{"tx": {"tx_id": "0x01"}}]
        service = sdk.transactions

        assert await service.get_stacks_balance(RECIPIENT) == 5000
        assert await service.get_current_nonce(RECIPIENT) == 2
        assert await service.get_fee_rate() == 4
        assert await service.get_stacks_transactions(RECIPIENT) == [{"tx": {"tx_id": "0x01"}}]

    @pytest.mark.asyncio
    async def test_fallbacks(self, sdk, fake_hiro):
        fake_hiro.failing = {"/extended", "/v2/accounts", "/v2/fees"}
        service = sdk.transactions

        assert await service.get_stacks_balance(RECIPIENT) == 0
        assert await service.get_current_nonce(RECIPIENT) == 0
        assert await service.get_fee_rate() == 1
        assert await service.get_stacks_transactions(RECIPIENT) == []

    @pytest.mark.asyncio
    async def test_fallbacks_on_malformed_replies(self, sdk, fake_hiro):
        fake_hiro.replies = {
            "/extended/v1/address/": {"text": "<html>gateway</html>"},
            "/v2/accounts/": {"json": {"nonce": "n/a"}},
            "/v2/fees/": {"text": "slow"},
            "/extended/v2/addresses/": {"json": [1, 2]},
        }
        service = sdk.transactions

        assert await service.get_stacks_balance(RECIPIENT) == 0
        assert await service.get_current_nonce(RECIPIENT) == 0
        assert await service.get_fee_rate() == 1
        assert await service.get_stacks_transactions(RECIPIENT) == []

    @pytest.mark.asyncio
    async def test_transfer_with_unparseable_balance(self, sdk, fake_hiro, public_key):
        fake_hiro.replies = {"/extended/v1/address/": {"text": "<html>gateway</html>"}}

        with pytest.raises(InsufficientFundsError) as exc_info:
            await sdk.transactions.transfer_stx(public_key, RECIPIENT, 1000)

        assert exc_info.value.balance == 0
        assert fake_hiro.broadcasts == []

    def test_safe_transfer_amount(self, sdk):
        assert sdk.transactions.safe_transfer_amount(1000, 2, 180) == 640
        with pytest.raises(InsufficientFundsError):
            sdk.transactions.safe_transfer_amount(300, 2, 180)

    def test_derive_address_follows_network(self, sdk, public_key):
        assert sdk.transactions.derive_stacks_address_from_turnkey_address(public_key).startswith("ST")
        sdk.set_network("mainnet")
        assert sdk.transactions.derive_stacks_address_from_turnkey_address(public_key).startswith("SP")


class TestTransferStx:
    """Tests for the STX transfer flow."""

    def _unsigned(self, public_key, amount, nonce, fee, memo=""):
        return make_unsigned_stx_token_transfer(UnsignedTokenTransferOptions(
            recipient=RECIPIENT, amount=amount, public_key=public_key,
            nonce=nonce, fee=fee, memo=memo, network="testnet",
        ))

    @pytest.mark.asyncio
    async def test_transfer_covered_amount(self, sdk, fake_hiro, public_key):
        fake_hiro.balance = 1_000_000
        fake_hiro.nonce = 5
        fake_hiro.fee_rate = 2

        result = await sdk.transactions.transfer_stx(public_key, RECIPIENT, 1000)

        assert result == {"txid": "cd" * 32, "amount": 1000, "fee": 360, "nonce": 5}
        assert len(fake_hiro.broadcasts) == 1

        raw = fake_hiro.broadcasts[0]
        assert len(raw) == 180
        assert unpack_condition(raw)["nonce"] == 5
        assert unpack_condition(raw)["fee"] == 360
        assert struct.unpack(">Q", raw[138:146])[0] == 1000
        assert_signed_by(raw, self._unsigned(public_key, 1000, 5, 360), public_key)

    @pytest.mark.asyncio
    async def test_reads_use_sender_address(self, sdk, fake_hiro, public_key):
        await sdk.transactions.transfer_stx(public_key, RECIPIENT, 1000)

        sender = public_key_to_address(public_key, "testnet")
        paths = [request.url.path for request in fake_hiro.requests]
        assert f"/extended/v1/address/{sender}/balances" in paths
        assert f"/v2/accounts/{sender}" in paths

    @pytest.mark.asyncio
    async def test_shortfall_is_adjusted(self, sdk, fake_hiro, public_key):
        fake_hiro.balance = 1000
        fake_hiro.fee_rate = 2

        result = await sdk.transactions.transfer_stx(public_key, RECIPIENT, 900)

        assert result["amount"] == 640
        assert result["fee"] == 360
        raw = fake_hiro.broadcasts[0]
        assert struct.unpack(">Q", raw[138:146])[0] == 640

    @pytest.mark.asyncio
    async def test_shortfall_without_auto_adjust(self, settings, local_signer, public_key):
        fake = FakeHiro(balance=1000, fee_rate=2)
        settings.auto_adjust_amount = False
        sdk = StacksTurnkey(settings=settings, signer=local_signer, hiro_transport=fake.transport)

        with pytest.raises(InsufficientFundsError):
            await sdk.transactions.transfer_stx(public_key, RECIPIENT, 900)

        assert fake.broadcasts == []

    @pytest.mark.asyncio
    async def test_balance_below_fee(self, sdk, fake_hiro, public_key):
        fake_hiro.balance = 300
        fake_hiro.fee_rate = 2

        with pytest.raises(InsufficientFundsError):
            await sdk.transactions.transfer_stx(public_key, RECIPIENT, 100)

        assert fake_hiro.broadcasts == []

    @pytest.mark.asyncio
    async def test_fee_rate_fallback(self, sdk, fake_hiro, public_key):
        fake_hiro.failing = {"/v2/fees"}

        result = await sdk.transactions.transfer_stx(public_key, RECIPIENT, 1000, memo="hello")

        assert result["fee"] == 180
        raw = fake_hiro.broadcasts[0]
        assert raw[146:151] == b"hello"

    @pytest.mark.asyncio
    async def test_rejected_broadcast(self, sdk, fake_hiro, public_key):
        fake_hiro.reject_reason = "BadNonce"

        with pytest.raises(BroadcastError):
            await sdk.transactions.transfer_stx(public_key, RECIPIENT, 1000)

    @pytest.mark.asyncio
    async def test_signing_failure_stops_broadcast(self, settings, fake_hiro, public_key):
        sdk = StacksTurnkey(settings=settings, signer=LocalSigner(), hiro_transport=fake_hiro.transport)

        with pytest.raises(SigningError):
            await sdk.transactions.transfer_stx(public_key, RECIPIENT, 1000)

        assert fake_hiro.broadcasts == []

    @pytest.mark.asyncio
    async def test_organization_id_reaches_signer(self, sdk, public_key):
        real_sign = sdk.signer.sign
        sdk.signer.sign = AsyncMock(side_effect=real_sign)

        await sdk.transactions.transfer_stx(public_key, RECIPIENT, 1000, organization_id="sub-org-9")

        request = sdk.signer.sign.await_args.args[0]
        assert request.organization_id == "sub-org-9"
        assert request.key_id == public_key


class TestContractCalls:
    """Tests for contract calls and sBTC transfers."""

    @pytest.mark.asyncio
    async def test_execute_function_call_fills_nonce_and_fee(self, sdk, fake_hiro, public_key):
        fake_hiro.nonce = 11
        fake_hiro.fee_rate = 3
        options = UnsignedContractCallOptions(
            contract_address=RECIPIENT,
            contract_name="counter",
            function_name="increment",
            function_args=[Cl.uint(1)],
            public_key="",
            network="testnet",
        )

        result = await sdk.transactions.execute_function_call(public_key, options)

        raw = fake_hiro.broadcasts[0]
        assert result["nonce"] == 11
        assert result["fee"] == 3 * len(raw)
        assert unpack_condition(raw)["nonce"] == 11
        assert unpack_condition(raw)["fee"] == 3 * len(raw)

    @pytest.mark.asyncio
    async def test_execute_function_call_keeps_given_values(self, sdk, fake_hiro, public_key):
        options = UnsignedContractCallOptions(
            contract_address=RECIPIENT,
            contract_name="counter",
            function_name="increment",
            function_args=[],
            public_key=public_key,
            nonce=0,
            fee=1234,
        )

        result = await sdk.transactions.execute_function_call(public_key, options)

        assert result["nonce"] == 0
        assert result["fee"] == 1234
        assert not any(r.url.path.startswith("/v2/accounts") for r in fake_hiro.requests)

    @pytest.mark.asyncio
    async def test_transfer_sbtc(self, sdk, fake_hiro, public_key):
        sdk.settings.sbtc_testnet_contract = f"{RECIPIENT}.sbtc-token"

        await sdk.transactions.transfer_sbtc(public_key, RECIPIENT, 2500)

        raw = fake_hiro.broadcasts[0]
        contract_address, contract_name = sdk.settings.sbtc_contract().split(".")
        sender = public_key_to_address(public_key, "testnet")
        expected_args = (
            Cl.uint(2500).serialize()
            + Cl.principal(sender).serialize()
            + Cl.principal(RECIPIENT).serialize()
            + Cl.none().serialize()
        )

        assert contract_name.encode() in raw
        assert b"\x08transfer" in raw
        assert raw.endswith(struct.pack(">I", 4) + expected_args)
        assert raw[116] == 26
        assert contract_address == RECIPIENT

    def test_sbtc_contract_per_network(self, settings):
        assert settings.sbtc_contract("mainnet") == (
            "SM3VDXK3WZZSA84XXFKAFAF15NNZX32CTSG82JFQ4.sbtc-token"
        )
        assert settings.sbtc_contract("testnet") == settings.sbtc_testnet_contract


class TestGenerateWallet:
    @pytest.mark.asyncio
    async def test_generate_stacks_wallet(self, sdk, turnkey_client, public_key):
        turnkey_client.create_sub_organization.return_value = {"subOrganizationId": "sub-1"}
        turnkey_client.create_private_keys.return_value = {"privateKeyIds": ["pk-1"]}
        turnkey_client.create_wallet.return_value = {"walletId": "w-1", "addresses": [public_key]}

        result = await sdk.transactions.generate_stacks_wallet("alice", "Savings")

        assert result["stacksAddress"] == public_key_to_address(public_key, "testnet")
        assert result["wallet"]["walletId"] == "w-1"

        kwargs = turnkey_client.create_sub_organization.await_args.kwargs
        assert kwargs["sub_organization_name"] == "Savings's Sub organization"
        assert kwargs["organization_id"] == "org-parent"
        api_key = kwargs["root_users"][0]["apiKeys"][0]
        assert api_key["publicKey"] == turnkey_client.api_public_key

        wallet_args = turnkey_client.create_wallet.await_args.args
        assert wallet_args[0] == "sub-1"
        assert wallet_args[1] == "Savings"
        assert wallet_args[2][0]["path"] == STACKS_DERIVATION_PATH

    @pytest.mark.asyncio
    async def test_wallet_without_addresses(self, sdk, turnkey_client):
        turnkey_client.create_sub_organization.return_value = {"subOrganizationId": "sub-1"}
        turnkey_client.create_wallet.return_value = {"walletId": "w-1", "addresses": []}

        with pytest.raises(ValueError):
            await sdk.transactions.generate_stacks_wallet("alice", "Savings")


class TestAuthService:
    """Tests for auth flows against a mocked Turnkey client."""

    @pytest.mark.asyncio
    async def test_get_sub_org_id_requires_one_filter(self, sdk):
        with pytest.raises(AuthError):
            await sdk.auth.get_sub_org_id()
        with pytest.raises(AuthError):
            await sdk.auth.get_sub_org_id(email="a@example.com", username="a")

    @pytest.mark.asyncio
    async def test_get_sub_org_id_by_email(self, sdk, turnkey_client):
        turnkey_client.get_sub_org_ids.return_value = {"organizationIds": ["sub-1", "sub-2"]}

        assert await sdk.auth.get_sub_org_id_by_email("a@example.com") == "sub-1"
        turnkey_client.get_sub_org_ids.assert_awaited_once_with(
            filter_type="EMAIL", filter_value="a@example.com", organization_id="org-parent"
        )

    @pytest.mark.asyncio
    async def test_get_sub_org_id_not_found(self, sdk, turnkey_client):
        turnkey_client.get_sub_org_ids.return_value = {"organizationIds": []}
        assert await sdk.auth.get_sub_org_id_by_public_key("02ab") is None

    @pytest.mark.asyncio
    async def test_create_user_sub_org_with_oauth(self, sdk, turnkey_client):
        token = jwt.encode({"email": "alice@example.com", "sub": "123"}, JWT_SECRET, algorithm="HS256")
        turnkey_client.create_sub_organization.return_value = {
            "subOrganizationId": "sub-1", "rootUserIds": ["user-1"],
        }
        turnkey_client.get_user.return_value = {"user": {"userId": "user-1"}}

        result = await sdk.auth.create_user_sub_org(
            email="ignored@example.com",
            oauth=OAuthProviderParams(provider_name="google", oidc_token=token),
            passkey=PasskeyParams(challenge="c", attestation={"id": "x"}),
            wallet=WalletAuthParams(public_key="02cd"),
        )

        assert result == {
            "subOrg": {"subOrganizationId": "sub-1", "rootUserIds": ["user-1"]},
            "user": {"userId": "user-1"},
        }
        kwargs = turnkey_client.create_sub_organization.await_args.kwargs
        assert kwargs["sub_organization_name"] == "Sub Org - alice@example.com"
        root_user = kwargs["root_users"][0]
        assert root_user["userName"] == "alice"
        assert root_user["userEmail"] == "alice@example.com"
        assert root_user["oauthProviders"] == [{"providerName": "google", "oidcToken": token}]
        assert root_user["authenticators"][0]["authenticatorName"] == "Passkey"
        assert root_user["apiKeys"][0]["curveType"] == "API_KEY_CURVE_SECP256K1"
        assert kwargs["wallet"]["accounts"][0]["path"] == STACKS_DERIVATION_PATH
        turnkey_client.get_user.assert_awaited_once_with("sub-1", "user-1")

    def test_wallet_api_key_curve_follows_wallet_type(self):
        ethereum = WalletAuthParams(public_key="02cd").to_api_key()
        solana = WalletAuthParams(public_key="ab" * 32, type=WalletType.SOLANA).to_api_key()

        assert ethereum["curveType"] == "API_KEY_CURVE_SECP256K1"
        assert solana["curveType"] == "API_KEY_CURVE_ED25519"
        assert solana["publicKey"] == "ab" * 32

    @pytest.mark.asyncio
    async def test_create_user_sub_org_without_root_user(self, sdk, turnkey_client):
        turnkey_client.create_sub_organization.return_value = {"subOrganizationId": "sub-1"}

        with pytest.raises(AuthError):
            await sdk.auth.create_user_sub_org(email="a@example.com")

    def test_decode_jwt(self, sdk):
        with_email = jwt.encode({"email": "a@example.com"}, JWT_SECRET, algorithm="HS256")
        without_email = jwt.encode({"sub": "1"}, JWT_SECRET, algorithm="HS256")

        assert sdk.auth.decode_jwt(with_email)["email"] == "a@example.com"
        assert sdk.auth.decode_jwt(without_email) is None
        assert sdk.auth.decode_jwt("not-a-jwt") is None

    @pytest.mark.asyncio
    async def test_oauth_login(self, sdk, turnkey_client):
        turnkey_client.oauth_login.return_value = {
            "session": "session-jwt",
            "activity": {"votes": [{"userId": "user-1"}]},
        }

        result = await sdk.auth.oauth("credential", "02ab", "sub-1")

        assert result == {"userId": "user-1", "session": "session-jwt", "organizationId": "sub-1"}

    @pytest.mark.asyncio
    async def test_init_email_auth_existing_user(self, sdk, turnkey_client):
        turnkey_client.get_sub_org_ids.return_value = {"organizationIds": ["sub-1"]}
        turnkey_client.init_otp.return_value = {"otpId": "otp-1"}

        result = await sdk.auth.init_email_auth("a+b@example.com", "02ab", base_url="https://app.example")

        assert result == {"otpId": "otp-1"}
        turnkey_client.create_sub_organization.assert_not_awaited()
        kwargs = turnkey_client.init_otp.await_args.kwargs
        assert kwargs["otp_type"] == "OTP_TYPE_EMAIL"
        assert kwargs["contact"] == "a+b@example.com"
        template = kwargs["email_customization"]["magicLinkTemplate"]
        assert template == (
            "https://app.example/email-auth?userEmail=a%2Bb@example.com"
            "&continueWith=email&publicKey=02ab&credentialBundle=%s"
        )

    @pytest.mark.asyncio
    async def test_init_email_auth_creates_sub_org(self, sdk, turnkey_client):
        turnkey_client.get_sub_org_ids.return_value = {"organizationIds": []}
        turnkey_client.create_sub_organization.return_value = {
            "subOrganizationId": "sub-new", "rootUserIds": ["user-1"],
        }
        turnkey_client.get_user.return_value = {"user": {"userId": "user-1"}}
        turnkey_client.init_otp.return_value = {"otpId": "otp-1"}

        await sdk.auth.init_email_auth("new@example.com", "02ab")

        turnkey_client.create_sub_organization.assert_awaited_once()
        customization = turnkey_client.init_otp.await_args.kwargs["email_customization"]
        assert "magicLinkTemplate" not in customization
        assert customization["appName"] == "Stacks Embed"

    @pytest.mark.asyncio
    async def test_otp_login(self, sdk, turnkey_client):
        turnkey_client.get_sub_org_ids.return_value = {"organizationIds": ["sub-1"]}
        turnkey_client.otp_login.return_value = {
            "session": "s", "activity": {"votes": [{"userId": "user-1"}]},
        }

        result = await sdk.auth.otp_login("02ab", "verification-token", "a@example.com")

        assert result["organizationId"] == "sub-1"
        turnkey_client.otp_login.assert_awaited_once_with(
            verification_token="verification-token", public_key="02ab", organization_id="sub-1"
        )

    @pytest.mark.asyncio
    async def test_otp_login_unknown_email(self, sdk, turnkey_client):
        turnkey_client.get_sub_org_ids.return_value = {"organizationIds": []}

        with pytest.raises(AuthError):
            await sdk.auth.otp_login("02ab", "token", "nobody@example.com")

    @pytest.mark.asyncio
    async def test_get_wallet_annotates_stacks_address(self, sdk, turnkey_client, public_key):
        turnkey_client.get_wallet.return_value = {"wallet": {"walletId": "w-1"}}
        turnkey_client.get_wallet_accounts.return_value = {
            "accounts": [{"address": public_key, "path": STACKS_DERIVATION_PATH}],
        }

        result = await sdk.auth.get_wallet("w-1", "sub-1")

        account = result["accounts"][0]
        assert account["publicKey"] == public_key
        assert account["address"] == public_key_to_address(public_key, "testnet")
        assert result["wallet"] == {"walletId": "w-1"}

    @pytest.mark.asyncio
    async def test_authenticators(self, sdk, turnkey_client):
        turnkey_client.get_authenticators.return_value = {"authenticators": [{"authenticatorId": "a-1"}]}
        turnkey_client.get_authenticator.return_value = {"authenticator": {"authenticatorId": "a-1"}}

        assert await sdk.auth.get_authenticators("user-1", "sub-1") == [{"authenticatorId": "a-1"}]
        assert await sdk.auth.get_authenticator("a-1", "sub-1") == {"authenticatorId": "a-1"}
