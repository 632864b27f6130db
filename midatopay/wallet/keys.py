"""
Stark key material for merchant receiving wallets
"""

import secrets

from starknet_py.constants import EC_ORDER
from starknet_py.hash.address import compute_address
from starknet_py.hash.utils import private_to_stark_key

from midatopay.chain.felt import to_felt


def generate_private_key() -> int:
    """Uniform private key in [1, EC_ORDER)"""
    return secrets.randbelow(EC_ORDER - 1) + 1


def derive_public_key(private_key: int) -> int:
    return private_to_stark_key(private_key)


def derive_account_address(public_key: int, class_hash: str) -> int:
    """
    Counterfactual address of an account deployed from class_hash with the
    public key as both constructor argument and salt.
    """
    return compute_address(
        class_hash=to_felt(class_hash),
        constructor_calldata=[public_key],
        salt=public_key,
    )
