"""
Keys, addresses and hashes of the locker.

Callers and the authority are identified by 20-byte addresses derived from
their SECP256R1 public keys. Keccak-256 commits to the state root and names
signed calls.
"""
import hashlib
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives import serialization
from cryptography.exceptions import InvalidSignature

ADDRESS_LENGTH = 20
ZERO_ADDRESS = b'\x00' * ADDRESS_LENGTH


def generate_hash(data: bytes) -> bytes:
    """Keccak-256 digest, used for state roots and call ids."""
    from Crypto.Hash import keccak
    return keccak.new(digest_bits=256, data=data).digest()


def generate_key_pair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """New signing key for a caller or the authority."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_key = private_key.public_key()
    return private_key, public_key


def serialize_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """PEM text of a public key, as carried in a signed call."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')


def deserialize_public_key(pem_data: str) -> ec.EllipticCurvePublicKey:
    """Inverse of serialize_public_key."""
    return serialization.load_pem_public_key(pem_data.encode('utf-8'))


def serialize_private_key(private_key: ec.EllipticCurvePrivateKey) -> str:
    """Serializes a private key into unencrypted PKCS8 PEM."""
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    ).decode('utf-8')


def public_key_to_address(public_key_pem: str) -> bytes:
    """Caller address: first 20 bytes of sha256 over the DER public key."""
    public_key = deserialize_public_key(public_key_pem)
    der_bytes = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )
    address_hash = hashlib.sha256(der_bytes).digest()
    return address_hash[:ADDRESS_LENGTH]


def is_valid_address(address) -> bool:
    """True for a 20-byte, non-zero address."""
    return (
        isinstance(address, bytes)
        and len(address) == ADDRESS_LENGTH
        and address != ZERO_ADDRESS
    )


def sign(private_key: ec.EllipticCurvePrivateKey, data: bytes) -> bytes:
    """ECDSA/SHA256 signature over a call's signing data."""
    return private_key.sign(data, ec.ECDSA(hashes.SHA256()))


def verify_signature(public_key_pem: str, signature: bytes, data: bytes) -> bool:
    """False for any malformed key or signature rather than raising."""
    try:
        public_key = deserialize_public_key(public_key_pem)
        public_key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
        return True
    except (InvalidSignature, ValueError):
        return False
