"""
keg_gateway.auth.keys

Key material for signing and verifying credentials.

Responsibilities:
- Load the RSA private key (signing) and public key (verification) from PEM files.
- Reject a public key that does not belong to the loaded private key.
- Generate throwaway key pairs for local development and tests.

The loaded `KeyMaterial` is immutable and shared by all request handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from keg_gateway.observability.logging import get_logger

log = get_logger(__name__)

_KEY_BITS = 2048


class KeyMaterialError(Exception):
    pass


@dataclass(frozen=True, slots=True)
class KeyMaterial:
    public_key: rsa.RSAPublicKey
    # None for verify-only deployments that are only handed the public key.
    private_key: rsa.RSAPrivateKey | None = None

    @property
    def can_sign(self) -> bool:
        return self.private_key is not None

    @classmethod
    def load(cls, *, public_key_path: str, private_key_path: str | None = None) -> KeyMaterial:
        public_key = _load_public(Path(public_key_path))
        private_key = _load_private(Path(private_key_path)) if private_key_path else None
        if private_key is not None and not _same_key_pair(private_key, public_key):
            raise KeyMaterialError(
                f"public key {public_key_path} does not match private key {private_key_path}"
            )
        log.info(
            "key_material_loaded",
            public_key_path=public_key_path,
            can_sign=private_key is not None,
        )
        return cls(public_key=public_key, private_key=private_key)

    @classmethod
    def generate(cls) -> KeyMaterial:
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=_KEY_BITS)
        return cls(public_key=private_key.public_key(), private_key=private_key)

    def verify_only(self) -> KeyMaterial:
        return KeyMaterial(public_key=self.public_key)

    def write_pem(self, *, public_key_path: str, private_key_path: str | None = None) -> None:
        """Persist the pair (private key unencrypted, PKCS8) so it can be reloaded with `load`."""
        Path(public_key_path).write_bytes(
            self.public_key.public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        )
        if private_key_path and self.private_key is not None:
            Path(private_key_path).write_bytes(
                self.private_key.private_bytes(
                    encoding=serialization.Encoding.PEM,
                    format=serialization.PrivateFormat.PKCS8,
                    encryption_algorithm=serialization.NoEncryption(),
                )
            )


def _load_public(path: Path) -> rsa.RSAPublicKey:
    try:
        key = serialization.load_pem_public_key(path.read_bytes())
    except (OSError, ValueError) as e:
        raise KeyMaterialError(f"cannot load public key from {path}: {e}") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise KeyMaterialError(f"public key in {path} is not an RSA key")
    return key


def _load_private(path: Path) -> rsa.RSAPrivateKey:
    try:
        key = serialization.load_pem_private_key(path.read_bytes(), password=None)
    except (OSError, ValueError, TypeError) as e:
        raise KeyMaterialError(f"cannot load private key from {path}: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyMaterialError(f"private key in {path} is not an RSA key")
    return key


def _same_key_pair(private_key: rsa.RSAPrivateKey, public_key: rsa.RSAPublicKey) -> bool:
    return private_key.public_key().public_numbers() == public_key.public_numbers()


# --- Module Notes -----------------------------------------------------------
# Unlike a self-provisioning auth server, the gateway never generates keys at
# startup: a missing key file is a deployment error and fails app creation.
