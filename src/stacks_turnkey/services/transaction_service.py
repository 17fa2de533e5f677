"""Stacks transaction orchestration.

Builds, signs and broadcasts transactions for a Turnkey-held key. The
Turnkey wallet address (an uncompressed secp256k1 public key) is the key
identifier for signing; the Stacks sender address is derived from it.
"""

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Optional

from stacks_turnkey.chain.hiro import ChainAPIError
from stacks_turnkey.fees import compute_sendable_amount, estimate_fee, resolve_transfer_amount
from stacks_turnkey.serialization import to_serializable_json
from stacks_turnkey.services.auth_service import STACKS_WALLET_ACCOUNT
from stacks_turnkey.signing.base import SigningRequest
from stacks_turnkey.stacks.c32 import public_key_to_address
from stacks_turnkey.stacks.clarity import Cl
from stacks_turnkey.stacks.transactions import (
    StacksTransaction,
    TransactionSigner,
    UnsignedContractCallOptions,
    UnsignedTokenTransferOptions,
    estimate_transaction_size,
    make_unsigned_contract_call,
    make_unsigned_stx_token_transfer,
)

if TYPE_CHECKING:
    from stacks_turnkey.sdk import StacksTurnkey

logger = logging.getLogger(__name__)

DEFAULT_FEE_RATE = 1


class TransactionService:
    """Wallet provisioning, chain reads and signed transaction flows."""

    def __init__(self, sdk: "StacksTurnkey"):
        self.sdk = sdk

    @property
    def turnkey(self):
        return self.sdk.get_client()

    @property
    def hiro(self):
        return self.sdk.get_hiro()

    async def generate_stacks_wallet(self, user_name: str, wallet_name: str) -> dict:
        """Create a sub-organization holding a Stacks key and wallet.

        The root user is bound to the SDK's own API key so the SDK can sign
        on behalf of the new sub-organization.

        Returns:
            {"subOrganization", "wallet", "stacksAddress"}
        """
        sub_organization = await self.turnkey.create_sub_organization(
            sub_organization_name=f"{wallet_name}'s Sub organization",
            root_users=[
                {
                    "userName": user_name,
                    "apiKeys": [
                        {
                            "apiKeyName": "root-api-key",
                            "publicKey": self.turnkey.api_public_key,
                            "curveType": "API_KEY_CURVE_P256",
                        }
                    ],
                    "authenticators": [],
                    "oauthProviders": [],
                }
            ],
            root_quorum_threshold=1,
            organization_id=self.sdk.get_default_organization_id(),
        )
        sub_org_id = sub_organization["subOrganizationId"]

        await self.turnkey.create_private_keys(
            sub_org_id,
            [
                {
                    "privateKeyName": "stacks-key-1",
                    "curve": "CURVE_SECP256K1",
                    "privateKeyTags": [],
                    "addressFormats": ["ADDRESS_FORMAT_UNCOMPRESSED"],
                }
            ],
        )

        wallet = await self.turnkey.create_wallet(
            sub_org_id, wallet_name, [dict(STACKS_WALLET_ACCOUNT)]
        )
        addresses = wallet.get("addresses") or []
        if not addresses:
            raise ValueError(f"Wallet {wallet.get('walletId')} has no addresses")

        return to_serializable_json({
            "subOrganization": sub_organization,
            "wallet": wallet,
            "stacksAddress": self.derive_stacks_address_from_turnkey_address(addresses[0]),
        })

    def derive_stacks_address_from_turnkey_address(self, turnkey_wallet_address: str) -> str:
        return public_key_to_address(turnkey_wallet_address, self.sdk.get_network())

    # ------------------------------------------------------------------
    # Chain reads
    # ------------------------------------------------------------------

    async def get_current_nonce(self, address: str) -> int:
        """Next nonce for an address; 0 if it cannot be fetched."""
        try:
            return await self.hiro.get_nonce(address)
        except ChainAPIError as e:
            logger.error(f"Error fetching account nonce for {address}: {e}")
            return 0

    async def get_stacks_transactions(self, address: str) -> list:
        """Recent transactions for an address; empty if they cannot be fetched."""
        try:
            return await self.hiro.get_transactions(address)
        except ChainAPIError as e:
            logger.error(f"Error fetching transactions for {address}: {e}")
            return []

    async def get_stacks_balance(self, address: str) -> int:
        """STX balance in micro-STX; 0 if it cannot be fetched."""
        try:
            return await self.hiro.get_balance(address)
        except ChainAPIError as e:
            logger.error(f"Error fetching balance for {address}: {e}")
            return 0

    async def get_fee_rate(self) -> int:
        """Transfer fee rate in micro-STX per byte; 1 if it cannot be fetched."""
        try:
            return await self.hiro.get_fee_rate()
        except ChainAPIError as e:
            logger.error(f"Error fetching fee rate: {e}")
            return DEFAULT_FEE_RATE

    def safe_transfer_amount(self, balance: int, fee_rate: int, estimated_size: int) -> int:
        """Largest amount that can be sent while still paying the fee.

        Raises:
            InsufficientFundsError: If the balance does not exceed the fee
        """
        return compute_sendable_amount(balance, fee_rate, estimated_size)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def _sign_and_broadcast(
        self,
        transaction: StacksTransaction,
        turnkey_wallet_address: str,
        organization_id: Optional[str] = None,
    ) -> dict:
        signer = TransactionSigner(transaction)
        result = await self.sdk.signer.sign(SigningRequest(
            key_id=turnkey_wallet_address,
            message_hash=signer.pre_sign_sig_hash(),
            organization_id=organization_id,
        ))
        transaction.set_signature(bytes.fromhex(result.to_message_signature()))

        logger.info(f"Broadcasting transaction {transaction.txid()}")
        return await self.hiro.broadcast_transaction(transaction)

    async def transfer_stx(
        self,
        turnkey_wallet_address: str,
        to: str,
        amount: int,
        memo: str = "",
        organization_id: Optional[str] = None,
    ) -> dict:
        """Send STX from a Turnkey wallet.

        If balance cannot cover amount plus fee, the amount is reduced to
        the sendable amount (when settings.auto_adjust_amount is on).

        Args:
            turnkey_wallet_address: Turnkey wallet public key (sender)
            to: Recipient Stacks address
            amount: Requested amount in micro-STX
            memo: Optional memo (up to 34 bytes)
            organization_id: Sub-organization owning the key

        Returns:
            {"txid", "amount", "fee", "nonce"}

        Raises:
            InsufficientFundsError: If the balance cannot cover the fee, or
                the amount when auto-adjust is off
            SigningError: If the signer returns no signature
            BroadcastError: If the node rejects the transaction
        """
        network = self.sdk.get_network()
        sender = self.derive_stacks_address_from_turnkey_address(turnkey_wallet_address)
        balance = await self.get_stacks_balance(sender)
        fee_rate = await self.get_fee_rate()

        # Size is independent of amount, nonce and fee values
        dummy = make_unsigned_stx_token_transfer(UnsignedTokenTransferOptions(
            recipient=to,
            amount=amount,
            public_key=turnkey_wallet_address,
            memo=memo,
            network=network,
        ))
        estimated_size = estimate_transaction_size(dummy)

        send_amount = resolve_transfer_amount(
            amount,
            balance,
            fee_rate,
            estimated_size,
            auto_adjust=self.sdk.settings.auto_adjust_amount,
        )
        fee = estimate_fee(fee_rate, estimated_size)
        nonce = await self.get_current_nonce(sender)

        transaction = make_unsigned_stx_token_transfer(UnsignedTokenTransferOptions(
            recipient=to,
            amount=send_amount,
            public_key=turnkey_wallet_address,
            nonce=nonce,
            fee=fee,
            memo=memo,
            network=network,
        ))

        broadcast = await self._sign_and_broadcast(
            transaction, turnkey_wallet_address, organization_id
        )
        return to_serializable_json({
            **broadcast,
            "amount": send_amount,
            "fee": fee,
            "nonce": nonce,
        })

    async def execute_function_call(
        self,
        turnkey_wallet_address: str,
        contract_call_options: UnsignedContractCallOptions,
        organization_id: Optional[str] = None,
    ) -> dict:
        """Call a public contract function from a Turnkey wallet.

        A nonce or fee left unset on the options is fetched from the chain
        or estimated from the transfer fee rate.

        Returns:
            {"txid", "fee", "nonce"}
        """
        options = replace(contract_call_options, public_key=turnkey_wallet_address)
        sender = self.derive_stacks_address_from_turnkey_address(turnkey_wallet_address)

        if options.nonce is None:
            options = replace(options, nonce=await self.get_current_nonce(sender))
        if options.fee is None:
            fee_rate = await self.get_fee_rate()
            estimated_size = estimate_transaction_size(make_unsigned_contract_call(options))
            options = replace(options, fee=estimate_fee(fee_rate, estimated_size))

        transaction = make_unsigned_contract_call(options)
        broadcast = await self._sign_and_broadcast(
            transaction, turnkey_wallet_address, organization_id
        )
        return to_serializable_json({
            **broadcast,
            "fee": options.fee,
            "nonce": options.nonce,
        })

    async def transfer_sbtc(
        self,
        turnkey_wallet_address: str,
        to: str,
        amount: int,
        organization_id: Optional[str] = None,
    ) -> dict:
        """Transfer sBTC (satoshis) via the network's sbtc-token contract."""
        network = self.sdk.get_network()
        contract_address, contract_name = self.sdk.settings.sbtc_contract(network).split(".", 1)
        sender = self.derive_stacks_address_from_turnkey_address(turnkey_wallet_address)

        function_args: list[Any] = [
            Cl.uint(amount),
            Cl.principal(sender),
            Cl.principal(to),
            Cl.none(),
        ]
        options = UnsignedContractCallOptions(
            contract_address=contract_address,
            contract_name=contract_name,
            function_name="transfer",
            function_args=function_args,
            public_key=turnkey_wallet_address,
            network=network,
        )
        return await self.execute_function_call(
            turnkey_wallet_address, options, organization_id
        )
