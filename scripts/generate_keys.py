#!/usr/bin/env python3
"""
Generate an RSA key pair for signing access tokens.

Usage:
    python scripts/generate_keys.py --out-dir keys
    python scripts/generate_keys.py --out-dir keys --bits 4096

Then point JWT_PRIVATE_KEY_PATH / JWT_PUBLIC_KEY_PATH at the written files.
Services that only verify tokens need just the public key.
"""

import argparse
import os
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

PRIVATE_KEY_FILE = "jwt_private.pem"
PUBLIC_KEY_FILE = "jwt_public.pem"


def generate_key_pair(bits: int = 2048) -> tuple[bytes, bytes]:
    """
    Create a new RSA key pair.

    Returns:
        Tuple of (private key PEM, public key PEM)
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem, public_pem


def write_key_pair(out_dir: Path, bits: int, overwrite: bool = False) -> tuple[Path, Path]:
    """Write the key pair to out_dir; the private key is readable by the owner only."""
    private_path = out_dir / PRIVATE_KEY_FILE
    public_path = out_dir / PUBLIC_KEY_FILE
    if not overwrite and (private_path.exists() or public_path.exists()):
        raise FileExistsError(f"Key files already exist in {out_dir} (use --force)")

    private_pem, public_pem = generate_key_pair(bits)
    out_dir.mkdir(parents=True, exist_ok=True)
    private_path.write_bytes(private_pem)
    os.chmod(private_path, 0o600)
    public_path.write_bytes(public_pem)
    return private_path, public_path


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate an RS256 signing key pair")
    parser.add_argument("--out-dir", type=Path, default=Path("keys"))
    parser.add_argument("--bits", type=int, choices=[2048, 3072, 4096], default=2048)
    parser.add_argument("--force", action="store_true", help="Overwrite existing key files")
    args = parser.parse_args()

    private_path, public_path = write_key_pair(args.out_dir, args.bits, overwrite=args.force)
    print(f"✓ Private key: {private_path}")
    print(f"✓ Public key:  {public_path}")


if __name__ == "__main__":
    main()
