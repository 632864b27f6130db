"""
Merchant wallet store
Keeps the merchant's receiving wallet on local storage, with an optional
server-side mirror that only ever sees the encrypted record.
"""

import hmac
import json
from typing import Any, Dict, Optional

import structlog
from pydantic import ValidationError

from midatopay.chain.felt import felt_hex
from midatopay.config import MidatoPayConfig
from midatopay.database.client import DatabaseClient
from midatopay.errors import CorruptedWalletRecord, InvalidCredentials
from midatopay.models import MerchantWallet, utcnow
from midatopay.wallet.crypto import decrypt_secret, encrypt_secret, hash_password, verify_password
from midatopay.wallet.keys import derive_account_address, derive_public_key, generate_private_key
from midatopay.wallet.storage import FileKeyValueStore

logger = structlog.get_logger()

STORAGE_KEY = "midatopay_merchant_wallet"
EXPORT_VERSION = "1.0"


def mirror_record(wallet: MerchantWallet) -> Dict[str, Any]:
    """Row stored in merchant_wallets; no password check value, key stays encrypted"""
    return wallet.model_dump(mode="json", exclude={"password_check"})


class WalletStore:
    def __init__(
        self,
        storage: FileKeyValueStore,
        account_class_hash: str,
        db: Optional[DatabaseClient] = None,
        storage_key: str = STORAGE_KEY,
    ):
        self.storage = storage
        self.account_class_hash = account_class_hash
        self.db = db
        self.storage_key = storage_key

    @classmethod
    def from_config(cls, config: MidatoPayConfig, db: Optional[DatabaseClient] = None) -> "WalletStore":
        return cls(
            storage=FileKeyValueStore(config.wallet_store_dir),
            account_class_hash=config.account_class_hash,
            db=db,
        )

    def generate_wallet(self, email: str, password: str) -> MerchantWallet:
        """Draw a fresh key pair and derive the account address. Nothing is stored."""
        if not password:
            raise ValueError("password is required")

        private_key = generate_private_key()
        public_key = derive_public_key(private_key)
        address = derive_account_address(public_key, self.account_class_hash)

        wallet = MerchantWallet(
            email=email,
            password_check=hash_password(password),
            encrypted_private_key=encrypt_secret(felt_hex(private_key), password),
            public_key=felt_hex(public_key),
            address=felt_hex(address),
        )
        logger.info("wallet_generated", email=wallet.email, address=wallet.address)
        return wallet

    async def save_wallet(self, wallet: MerchantWallet, user_id: Optional[str] = None) -> None:
        """
        Persist locally, then mirror to the backing store when a user id is given.
        A failed mirror is logged and does not undo the local save.
        """
        self.storage.set(self.storage_key, wallet.model_dump_json())
        logger.info("wallet_saved", email=wallet.email)

        if user_id and self.db is not None:
            try:
                await self.db.save_wallet(user_id, mirror_record(wallet))
            except Exception as e:
                logger.error("wallet_mirror_failed", user_id=user_id, error=str(e))

    def _parse(self, raw: str) -> MerchantWallet:
        try:
            wallet = MerchantWallet.model_validate_json(raw)
        except (ValidationError, ValueError) as e:
            raise CorruptedWalletRecord(f"Unreadable wallet record: {e}") from e
        if "," in wallet.address:
            raise CorruptedWalletRecord(f"Malformed address: {wallet.address}")
        return wallet

    def load_wallet(self) -> Optional[MerchantWallet]:
        """
        Returns:
            The stored wallet, or None when there is none or it was corrupted
            (a corrupted record is deleted)
        """
        try:
            raw = self.storage.get(self.storage_key)
            if raw is None:
                return None
            return self._parse(raw)
        except (CorruptedWalletRecord, UnicodeDecodeError) as e:
            logger.warning("corrupted_wallet_discarded", error=str(e))
            self.clear_wallet()
            return None

    def verify_credentials(self, email: str, password: str) -> bool:
        wallet = self.load_wallet()
        if wallet is None:
            return False

        # Both checks always run
        email_ok = hmac.compare_digest(
            wallet.email.encode(), email.strip().lower().encode()
        )
        password_ok = verify_password(password, wallet.password_check)
        return email_ok and password_ok

    def unlock_private_key(self, password: str) -> str:
        """
        Raises:
            InvalidCredentials: no wallet stored or wrong password
        """
        wallet = self.load_wallet()
        if wallet is None:
            raise InvalidCredentials("No wallet stored")
        return decrypt_secret(wallet.encrypted_private_key, password)

    def clear_wallet(self) -> None:
        self.storage.delete(self.storage_key)
        logger.info("wallet_cleared")

    def has_wallet(self) -> bool:
        return self.storage.exists(self.storage_key)

    def export_wallet(self) -> Optional[str]:
        wallet = self.load_wallet()
        if wallet is None:
            return None
        export_data = {
            **wallet.model_dump(mode="json"),
            "exported_at": utcnow().isoformat(),
            "version": EXPORT_VERSION,
        }
        return json.dumps(export_data, indent=2)

    def import_wallet(self, wallet_json: str) -> MerchantWallet:
        """
        Replace the stored wallet with an exported one.

        Raises:
            CorruptedWalletRecord: the document is not a valid wallet export
        """
        try:
            data = json.loads(wallet_json)
        except ValueError as e:
            raise CorruptedWalletRecord("Wallet export is not valid JSON") from e
        if not isinstance(data, dict):
            raise CorruptedWalletRecord("Wallet export must be a JSON object")

        data.pop("exported_at", None)
        data.pop("version", None)
        wallet = self._parse(json.dumps(data))

        self.storage.set(self.storage_key, wallet.model_dump_json())
        logger.info("wallet_imported", email=wallet.email, address=wallet.address)
        return wallet
