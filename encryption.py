"""
Encryption of bridge credentials at rest.

Values are AES-256-GCM encrypted with a key derived (scrypt) from the
deployment secret and stored as ``enc:<urlsafe base64(nonce || ciphertext)>``.
Anything without the ``enc:`` prefix is treated as plaintext.
"""
import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from bridge_models import ApiKeyAuth, BasicAuth, BearerAuth
from errors import DecryptionError

logger = logging.getLogger(__name__)

ENCRYPTED_PREFIX = "enc:"
KEY_SALT = b"mcp-bridge-salt"
NONCE_SIZE = 12

# auth model -> fields holding secrets
SENSITIVE_FIELDS = {
    BearerAuth: ("token",),
    ApiKeyAuth: ("key",),
    BasicAuth: ("password",),
}


class EncryptionService:
    def __init__(self, secret: str):
        if not secret:
            raise ValueError("BRIDGE_SECRET is required to encrypt bridge credentials")
        kdf = Scrypt(salt=KEY_SALT, length=32, n=2**14, r=8, p=1)
        self._aead = AESGCM(kdf.derive(secret.encode("utf-8")))

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return ENCRYPTED_PREFIX + base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, value: str) -> str:
        if not self.is_encrypted(value):
            return value
        try:
            raw = base64.urlsafe_b64decode(value[len(ENCRYPTED_PREFIX):].encode("ascii"))
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Encrypted value is not valid base64") from e
        if len(raw) <= NONCE_SIZE:
            raise DecryptionError("Encrypted value is truncated")
        try:
            plaintext = self._aead.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
        except InvalidTag as e:
            raise DecryptionError("Encrypted value failed authentication") from e
        return plaintext.decode("utf-8")

    @staticmethod
    def is_encrypted(value: str) -> bool:
        return isinstance(value, str) and value.startswith(ENCRYPTED_PREFIX)


def encrypt_auth_config(auth, encryption: EncryptionService):
    """Return a copy of ``auth`` with its secret fields encrypted."""
    fields = SENSITIVE_FIELDS.get(type(auth), ())
    update = {
        field: encryption.encrypt(getattr(auth, field))
        for field in fields
        if getattr(auth, field) and not encryption.is_encrypted(getattr(auth, field))
    }
    return auth.model_copy(update=update) if update else auth


def decrypt_auth_config(auth, encryption: EncryptionService):
    """Return a copy of ``auth`` with its secret fields decrypted. Raises DecryptionError."""
    fields = SENSITIVE_FIELDS.get(type(auth), ())
    update = {}
    for field in fields:
        value = getattr(auth, field)
        if encryption.is_encrypted(value):
            try:
                update[field] = encryption.decrypt(value)
            except DecryptionError:
                logger.error("Failed to decrypt %s field of %s credentials", field, auth.type)
                raise
    return auth.model_copy(update=update) if update else auth
