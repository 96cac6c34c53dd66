import os
import unittest

from stream_tag_bot.credentials import TokenCipher
from stream_tag_bot.credentials.cipher import derive_key
from stream_tag_bot.errors import DecryptionFailed


class TokenCipherTests(unittest.TestCase):
    def setUp(self) -> None:
        self._cipher = TokenCipher(os.urandom(32))

    def test_round_trip(self) -> None:
        for plaintext in ("", "\x00", "abc123", "tökén-ñ", "x" * 4096):
            value = self._cipher.encrypt(plaintext)
            self.assertEqual(plaintext, self._cipher.decrypt(value.ciphertext, value.iv))

    def test_each_encryption_uses_a_fresh_iv(self) -> None:
        first = self._cipher.encrypt("same")
        second = self._cipher.encrypt("same")
        self.assertEqual(12, len(first.iv))
        self.assertNotEqual(first.iv, second.iv)
        self.assertNotEqual(first.ciphertext, second.ciphertext)

    def test_tampered_ciphertext_is_rejected(self) -> None:
        value = self._cipher.encrypt("secret-token")
        tampered = bytes([value.ciphertext[0] ^ 0x01]) + value.ciphertext[1:]
        with self.assertRaises(DecryptionFailed):
            self._cipher.decrypt(tampered, value.iv)

    def test_tampered_iv_is_rejected(self) -> None:
        value = self._cipher.encrypt("secret-token")
        tampered_iv = bytes([value.iv[0] ^ 0x01]) + value.iv[1:]
        with self.assertRaises(DecryptionFailed):
            self._cipher.decrypt(value.ciphertext, tampered_iv)

    def test_wrong_key_is_rejected(self) -> None:
        value = self._cipher.encrypt("secret-token")
        with self.assertRaises(DecryptionFailed):
            TokenCipher(os.urandom(32)).decrypt(value.ciphertext, value.iv)

    def test_associated_data_must_match(self) -> None:
        value = self._cipher.encrypt("secret-token", associated_data=b"access_token")
        with self.assertRaises(DecryptionFailed):
            self._cipher.decrypt(value.ciphertext, value.iv, associated_data=b"refresh_token")

    def test_same_secret_derives_same_key(self) -> None:
        self.assertEqual(derive_key("hunter2", iterations=1000), derive_key("hunter2", iterations=1000))
        self.assertNotEqual(derive_key("hunter2", iterations=1000), derive_key("hunter3", iterations=1000))

        value = TokenCipher.from_secret("hunter2", iterations=1000).encrypt("tok")
        again = TokenCipher.from_secret("hunter2", iterations=1000)
        self.assertEqual("tok", again.decrypt(value.ciphertext, value.iv))

    def test_invalid_keys_are_refused(self) -> None:
        with self.assertRaises(ValueError):
            TokenCipher(b"short")
        with self.assertRaises(ValueError):
            TokenCipher.from_secret("")


if __name__ == "__main__":
    unittest.main()
