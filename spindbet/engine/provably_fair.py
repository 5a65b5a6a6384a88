"""
Provably Fair commitment scheme.

Commit-then-reveal with a CSPRNG server seed.

How it works:
─────────────────────────────────────────────────────────────────

1. Server seed:
   - secrets.token_hex(32), 256 bits of entropy
   - only its SHA-256 hash is published when the round opens

2. Client seed:
   - supplied by the player after seeing the hash
   - the house cannot pick a server seed that beats it

3. Derivation:
   - HMAC-SHA256(key=server_seed, msg="<domain_tag>:<client_seed>")
   - reduced to the range the game needs (coin point, reel stop)

4. Verification:
   - the server seed is revealed once the round is settled
   - sha256(server_seed) == published hash, and re-deriving with the
     same seeds gives the same outcome

─────────────────────────────────────────────────────────────────
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass

# 52 bits of the digest keep the value exactly representable as a float
_DERIVE_HEX_CHARS = 13


@dataclass(frozen=True)
class SeedCommitment:
    """Server seed with its public commitment."""

    server_seed: str  # private until settlement
    server_seed_hash: str  # published at round creation

    def to_public_dict(self) -> dict:
        return {"serverSeedHash": self.server_seed_hash}


class ProvablyFair:
    """Stateless commit / reveal / derive primitives."""

    SEED_BYTES = 32  # 256-bit

    @staticmethod
    def hash_seed(server_seed: str) -> str:
        return hashlib.sha256(server_seed.encode()).hexdigest()

    @staticmethod
    def commit() -> SeedCommitment:
        """
        Generate a server seed and its commitment.

        secrets.token_hex uses os.urandom (CSPRNG).
        """
        server_seed = secrets.token_hex(ProvablyFair.SEED_BYTES)
        return SeedCommitment(
            server_seed=server_seed,
            server_seed_hash=ProvablyFair.hash_seed(server_seed),
        )

    @staticmethod
    def reveal(commitment: SeedCommitment) -> str:
        """Return the secret for client-side verification."""
        return commitment.server_seed

    @staticmethod
    def verify_commitment(server_seed: str, server_seed_hash: str) -> bool:
        computed = ProvablyFair.hash_seed(server_seed)
        return hmac.compare_digest(computed, server_seed_hash)

    @staticmethod
    def derive(server_seed: str, client_seed: str, domain_tag: str) -> str:
        """
        Keyed hash of the client seed under the server seed.

        Args:
            server_seed: Secret committed at round creation
            client_seed: Player supplied seed
            domain_tag: Separates derivations inside one round
                (e.g. "coinflip", "slots:reel:1:row:2")

        Returns:
            64 hex chars

        Raises:
            ValueError: missing seed (programming error, callers check state first)
        """
        if not server_seed or not client_seed:
            raise ValueError("server_seed and client_seed are required to derive an outcome")

        message = f"{domain_tag}:{client_seed}"
        return hmac.new(
            key=server_seed.encode(),
            msg=message.encode(),
            digestmod=hashlib.sha256,
        ).hexdigest()

    @staticmethod
    def derive_int(
        server_seed: str,
        client_seed: str,
        domain_tag: str,
        modulus: int,
    ) -> int:
        """Derive an integer in [0, modulus)."""
        if modulus <= 0:
            raise ValueError("modulus must be positive")
        digest = ProvablyFair.derive(server_seed, client_seed, domain_tag)
        return int(digest[:_DERIVE_HEX_CHARS], 16) % modulus

    @staticmethod
    def generate_client_seed() -> str:
        """Client seed for players who do not supply one."""
        return secrets.token_hex(16)  # 128-bit
