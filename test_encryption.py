import base64

import pytest

from bridge_models import ApiKeyAuth, BasicAuth, BearerAuth, NoAuth
from encryption import EncryptionService, decrypt_auth_config, encrypt_auth_config
from errors import DecryptionError


class TestEncryptionService:

    def test_round_trip(self, encryption):
        sealed = encryption.encrypt("api-token-123")
        assert sealed.startswith("enc:")
        assert "api-token-123" not in sealed
        assert encryption.decrypt(sealed) == "api-token-123"

    def test_nonce_makes_ciphertexts_differ(self, encryption):
        assert encryption.encrypt("same") != encryption.encrypt("same")

    def test_plaintext_passes_through(self, encryption):
        assert encryption.decrypt("not-encrypted") == "not-encrypted"

    def test_tampered_ciphertext_fails(self, encryption):
        raw = bytearray(base64.urlsafe_b64decode(encryption.encrypt("api-token-123")[len("enc:"):]))
        raw[-1] ^= 0x01
        tampered = "enc:" + base64.urlsafe_b64encode(bytes(raw)).decode()
        with pytest.raises(DecryptionError):
            encryption.decrypt(tampered)

    def test_truncated_and_garbage_fail(self, encryption):
        with pytest.raises(DecryptionError):
            encryption.decrypt("enc:AAAA")
        with pytest.raises(DecryptionError):
            encryption.decrypt("enc:***")

    def test_other_secret_cannot_decrypt(self, encryption):
        sealed = encryption.encrypt("value")
        with pytest.raises(DecryptionError):
            EncryptionService("another-secret").decrypt(sealed)

    def test_missing_secret_fails_at_construction(self):
        with pytest.raises(ValueError):
            EncryptionService("")


class TestAuthConfigs:

    def test_sensitive_fields_only(self, encryption):
        auth = BasicAuth(username="ann", password="pw")
        sealed = encrypt_auth_config(auth, encryption)
        assert sealed.username == "ann"
        assert sealed.password.startswith("enc:")
        assert decrypt_auth_config(sealed, encryption) == auth

    def test_already_encrypted_is_not_encrypted_twice(self, encryption):
        once = encrypt_auth_config(BearerAuth(token="t"), encryption)
        assert encrypt_auth_config(once, encryption) == once

    def test_api_key(self, encryption):
        sealed = encrypt_auth_config(ApiKeyAuth(key="k", location="query"), encryption)
        assert decrypt_auth_config(sealed, encryption).key == "k"

    def test_no_auth_is_unchanged(self, encryption):
        assert encrypt_auth_config(NoAuth(), encryption) == NoAuth()
