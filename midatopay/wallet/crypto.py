"""
Password checks and private key encryption at rest

- Password check value: salted PBKDF2-SHA256 (passlib)
- Private key: scrypt-derived key + ChaCha20-Poly1305
"""

import base64
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from passlib.context import CryptContext

from midatopay.errors import InvalidCredentials
from midatopay.models import EncryptedSecret

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1
SALT_SIZE = 16
NONCE_SIZE = 12


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_check: str) -> bool:
    try:
        return pwd_context.verify(password, password_check)
    except ValueError:
        # Malformed check value
        return False


def _derive_key(password: str, salt: bytes) -> bytes:
    kdf = Scrypt(salt=salt, length=32, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(password.encode())


def encrypt_secret(plaintext: str, password: str) -> EncryptedSecret:
    salt = secrets.token_bytes(SALT_SIZE)
    nonce = secrets.token_bytes(NONCE_SIZE)
    cipher = ChaCha20Poly1305(_derive_key(password, salt))
    ciphertext = cipher.encrypt(nonce, plaintext.encode(), None)
    return EncryptedSecret(
        salt=base64.b64encode(salt).decode(),
        nonce=base64.b64encode(nonce).decode(),
        ciphertext=base64.b64encode(ciphertext).decode(),
    )


def decrypt_secret(secret: EncryptedSecret, password: str) -> str:
    """
    Raises:
        InvalidCredentials: wrong password or tampered ciphertext
    """
    salt = base64.b64decode(secret.salt)
    nonce = base64.b64decode(secret.nonce)
    ciphertext = base64.b64decode(secret.ciphertext)
    cipher = ChaCha20Poly1305(_derive_key(password, salt))
    try:
        return cipher.decrypt(nonce, ciphertext, None).decode()
    except InvalidTag as e:
        raise InvalidCredentials("Invalid password or corrupted key") from e
