"""Tests for per-field AES-256-GCM encryption."""

import base64
from concurrent.futures import ThreadPoolExecutor

import pytest

from credential_guard.errors import AuthenticationFailure, KeyUnavailable
from credential_guard.security.field_cipher import EncryptedBlob, FieldCipher
from credential_guard.security.key_provider import VaultKeyProvider


class TestRoundTrip:
    """decrypt(encrypt(s)) == s for any UTF-8 string."""

    @pytest.mark.parametrize("plaintext", [
        "",
        "hunter2",
        "pässwörd-密码-пароль",
        "emoji 🔐🗝️",
        "x" * 10_000,
    ])
    def test_roundtrip(self, cipher, plaintext):
        assert cipher.decrypt(cipher.encrypt(plaintext)) == plaintext

    def test_same_plaintext_different_blobs(self, cipher):
        assert cipher.encrypt("same") != cipher.encrypt("same")

    def test_new_cipher_same_key_decrypts(self, cipher, key_provider, audit_logger):
        blob = cipher.encrypt("persisted")
        other = FieldCipher(key_provider, audit_logger=audit_logger)
        assert other.decrypt(blob) == "persisted"


class TestWireFormat:
    """base64(nonce(12) ‖ ciphertext ‖ tag(16)), no wrapping."""

    def test_layout(self, cipher):
        blob = cipher.encrypt("abc")
        raw = base64.b64decode(blob)
        assert len(raw) == 12 + 3 + 16
        assert "\n" not in blob

    def test_empty_plaintext_layout(self, cipher):
        raw = base64.b64decode(cipher.encrypt(""))
        assert len(raw) == 12 + 16

    def test_line_wrapped_blob_accepted(self, cipher):
        blob = cipher.encrypt("a fairly long secret value " * 4)
        wrapped = "\n".join(blob[i:i + 76] for i in range(0, len(blob), 76)) + "\n"
        assert cipher.decrypt(wrapped) == "a fairly long secret value " * 4

    def test_blob_dataclass_roundtrip(self, cipher):
        blob = cipher.encrypt_blob("value")
        parsed = EncryptedBlob.decode(blob.encode())
        assert parsed == blob
        assert cipher.decrypt_blob(parsed) == "value"

    def test_blob_rejects_bad_nonce_length(self):
        with pytest.raises(ValueError):
            EncryptedBlob(nonce=b"short", ciphertext_and_tag=b"\x00" * 16)


class TestTamperDetection:
    """Any flipped byte in ciphertext or tag fails authentication."""

    def test_every_byte_flip_detected(self, cipher):
        raw = bytearray(base64.b64decode(cipher.encrypt("top secret")))
        for index in range(12, len(raw)):
            tampered = bytearray(raw)
            tampered[index] ^= 0x01
            with pytest.raises(AuthenticationFailure):
                cipher.decrypt(base64.b64encode(bytes(tampered)).decode())

    def test_nonce_flip_detected(self, cipher):
        raw = bytearray(base64.b64decode(cipher.encrypt("top secret")))
        raw[0] ^= 0xFF
        with pytest.raises(AuthenticationFailure):
            cipher.decrypt(base64.b64encode(bytes(raw)).decode())

    def test_wrong_key(self, cipher, audit_logger):
        from credential_guard.vault.memory import InMemoryVault
        other = FieldCipher(VaultKeyProvider(InMemoryVault(), audit_logger=audit_logger),
                            audit_logger=audit_logger)
        with pytest.raises(AuthenticationFailure):
            other.decrypt(cipher.encrypt("secret"))

    @pytest.mark.parametrize("blob", ["", "not base64 at all!", base64.b64encode(b"\x00" * 27).decode()])
    def test_malformed_blob(self, cipher, blob):
        with pytest.raises(AuthenticationFailure):
            cipher.decrypt(blob)

    def test_failure_is_not_a_lookup_error(self, cipher):
        with pytest.raises(AuthenticationFailure) as exc:
            cipher.decrypt(base64.b64encode(b"\x00" * 40).decode())
        assert not isinstance(exc.value, (KeyError, LookupError))
        assert "tampered" in str(exc.value)

    def test_failure_audited_without_plaintext(self, cipher, audit_logger):
        raw = bytearray(base64.b64decode(cipher.encrypt("my-bank-pin-4711")))
        raw[-1] ^= 0x01
        with pytest.raises(AuthenticationFailure):
            cipher.decrypt(base64.b64encode(bytes(raw)).decode())
        content = audit_logger.log_file.read_text(encoding="utf-8")
        assert "cipher.decrypt.failed" in content
        assert "my-bank-pin-4711" not in content


class TestNonces:
    """Fresh random nonce for every call."""

    def test_10k_nonces_unique(self, cipher):
        nonces = {cipher.encrypt_blob("identical").nonce for _ in range(10_000)}
        assert len(nonces) == 10_000


class TestConcurrency:
    """No shared mutable state between calls."""

    def test_parallel_roundtrips(self, cipher):
        def roundtrip(i):
            text = f"secret-{i}"
            return cipher.decrypt(cipher.encrypt(text)) == text

        with ThreadPoolExecutor(max_workers=8) as pool:
            assert all(pool.map(roundtrip, range(500)))


class TestKeyUnavailable:
    """A lost keystore entry is fatal, not an authentication failure."""

    def test_deleted_key(self, cipher, key_provider):
        blob = cipher.encrypt("secret")
        key_provider.delete_key()
        with pytest.raises(KeyUnavailable):
            cipher.decrypt(blob)
