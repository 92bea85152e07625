from cryptography.fernet import Fernet


class TokenCipher:
    """Symmetric encryption for OAuth tokens at rest."""

    def __init__(self, key: str) -> None:
        self._fernet = Fernet(key.encode())

    def encrypt(self, value: str) -> str:
        """Encrypt a token"""
        return self._fernet.encrypt(value.encode()).decode()

    def decrypt(self, value: str) -> str:
        """Decrypt a token"""
        return self._fernet.decrypt(value.encode()).decode()
