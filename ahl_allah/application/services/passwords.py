from passlib.context import CryptContext


class PasswordHasher:
    """bcrypt hashing through passlib; verify() is constant time in the secret."""

    def __init__(self, rounds: int = 12):
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        try:
            return self._context.verify(password, hashed)
        except (ValueError, TypeError):
            # malformed stored hash
            return False

    def dummy_verify(self) -> bool:
        """Spend one bcrypt verify when there is no stored hash to check against."""
        return self._context.dummy_verify()
