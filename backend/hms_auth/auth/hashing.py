import secrets
from functools import lru_cache

from passlib.context import CryptContext

from ..models.Account import HashScheme

# Current scheme: argon2id, 64 MiB, 3 passes, 4 lanes
argon2_context = CryptContext(
    schemes=["argon2"],
    argon2__type="ID",
    argon2__memory_cost=65536,
    argon2__time_cost=3,
    argon2__parallelism=4,
)

# Legacy scheme: accounts imported from the old stack. Verify only.
bcrypt_context = CryptContext(schemes=["bcrypt"])

CURRENT_SCHEME = HashScheme.ARGON2


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return argon2_context.hash(secrets.token_hex(16))


class SecretHasher:
    """
    Hashes and verifies account secrets. The pepper is applied to the
    current scheme only; legacy bcrypt hashes were produced without it.
    """

    def __init__(self, pepper: str = ""):
        self.pepper = pepper

    def hash(self, secret: str) -> tuple[str, HashScheme]:
        return argon2_context.hash(secret + self.pepper), CURRENT_SCHEME

    def verify(self, scheme: HashScheme, hashed: str, candidate: str) -> bool:
        try:
            if scheme == HashScheme.ARGON2:
                return argon2_context.verify(candidate + self.pepper, hashed)
            if scheme == HashScheme.BCRYPT:
                return bcrypt_context.verify(candidate, hashed)
        except ValueError:
            # Malformed stored hash
            return False
        raise ValueError(f"Unsupported hash scheme: {scheme!r}")

    def verify_dummy(self, candidate: str) -> bool:
        """
        Runs a full current-scheme verify against a throwaway hash, so a
        lookup miss costs as much as a wrong secret. Always False.
        """
        argon2_context.verify(candidate + self.pepper, _dummy_hash())
        return False
