#!/usr/bin/env python3
"""
Generate an RSA key pair for JWT authentication, or mint a dev token.

Usage:
    python scripts/generate_keys.py
    python scripts/generate_keys.py --token <user-uuid> [--email designer@example.com]

Key output can be pasted into .env. ``--token`` signs an access token with
the keys already configured in the environment, for calling the API locally.
"""

import argparse
import sys
from uuid import UUID

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from forge.app.security import AuthenticationError, create_access_token


def generate_rsa_keypair(key_size: int = 2048) -> tuple[str, str]:
    """Return ``(private_pem, public_pem)`` for a fresh RSA key."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")

    return private_pem, public_pem


def print_keys(key_size: int) -> None:
    print("=" * 80)
    print(f"Generating {key_size}-bit RSA key pair for JWT authentication")
    print("=" * 80)
    print()

    private_key, public_key = generate_rsa_keypair(key_size)

    # Escaped newlines so each key fits on one .env line
    print('JWT_PRIVATE_KEY_PEM="' + private_key.replace("\n", "\\n") + '"')
    print()
    print('JWT_PUBLIC_KEY_PEM="' + public_key.replace("\n", "\\n") + '"')
    print()
    print("⚠️  Never commit the private key.")


def print_token(user_id: UUID, email: str | None) -> int:
    try:
        token = create_access_token(user_id, email)
    except AuthenticationError as e:
        print(f"❌ {e}")
        return 1
    print(token)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="JWT key and token helper")
    parser.add_argument("--key-size", type=int, default=2048, help="RSA key size in bits")
    parser.add_argument("--token", type=UUID, metavar="USER_ID", help="Mint an access token")
    parser.add_argument("--email", help="Email claim for --token")
    args = parser.parse_args()

    if args.token:
        return print_token(args.token, args.email)

    print_keys(args.key_size)
    return 0


if __name__ == "__main__":
    sys.exit(main())
