# crypto/keys.py
"""RSA key pair loading and generation (PEM files)."""
from dataclasses import dataclass
from pathlib import Path
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from netfile.common.errors import CryptoError

PUBLIC_PEM = "public.pem"
PRIVATE_PEM = "private.pem"


@dataclass(frozen=True)
class KeyPair:
    public_key: rsa.RSAPublicKey
    private_key: rsa.RSAPrivateKey

    @property
    def modulus_bytes(self) -> int:
        return (self.public_key.key_size + 7) // 8


def load_keypair(public_path: Path, private_path: Path) -> KeyPair:
    try:
        pub = serialization.load_pem_public_key(Path(public_path).read_bytes())
        priv = serialization.load_pem_private_key(Path(private_path).read_bytes(), password=None)
    except OSError as e:
        raise CryptoError(f"cannot read key file: {e}") from e
    except ValueError as e:
        raise CryptoError(f"cannot parse key file: {e}") from e
    if not isinstance(pub, rsa.RSAPublicKey) or not isinstance(priv, rsa.RSAPrivateKey):
        raise CryptoError("key files must hold RSA keys")
    if pub.public_numbers() != priv.public_key().public_numbers():
        raise CryptoError(f"{public_path} does not belong to {private_path}")
    return KeyPair(pub, priv)


def generate_keypair(bits: int = 2048) -> KeyPair:
    key = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    return KeyPair(key.public_key(), key)


def write_keypair(keys: KeyPair, out_dir: Path):
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    pub_path = out_dir / PUBLIC_PEM
    priv_path = out_dir / PRIVATE_PEM
    with open(priv_path, "wb") as f:
        f.write(keys.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        ))
    with open(pub_path, "wb") as f:
        f.write(keys.public_key.public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        ))
    return pub_path, priv_path
