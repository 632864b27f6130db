"""
Merchant receiving wallets
"""

from midatopay.wallet.storage import FileKeyValueStore
from midatopay.wallet.store import WalletStore

__all__ = ["FileKeyValueStore", "WalletStore"]
