#!/usr/bin/env python3
"""
Generate VAPID keys for web push notifications, or check the configured ones.

    python scripts/generate_vapid.py            # print a new key pair
    python scripts/generate_vapid.py --check    # validate VAPID_* from the environment
"""

import argparse
import base64
import sys

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from gradebook_push.services.vapid import (
    PRIVATE_KEY_LENGTH,
    PUBLIC_KEY_LENGTH,
    validate_vapid_credentials,
)


def base64url_encode(data: bytes) -> str:
    """Encode bytes as base64url without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b'=').decode('ascii')


def generate_vapid_keys() -> tuple[str, str]:
    """Generate a new VAPID key pair for web push."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_key = private_key.public_key()

    # Private key as 32 raw bytes
    private_bytes = private_key.private_numbers().private_value.to_bytes(32, 'big')

    # Public key uncompressed: 0x04 + X + Y (65 bytes)
    public_bytes = public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )

    return base64url_encode(public_bytes), base64url_encode(private_bytes)


def check_configured_keys() -> int:
    from gradebook_push.settings import get_settings

    settings = get_settings()
    problems = validate_vapid_credentials(
        settings.vapid_email, settings.vapid_public_key, settings.vapid_private_key,
    )
    print(f"VAPID_EMAIL: {'SET' if settings.vapid_email else 'MISSING'}")
    print(f"VAPID_PUBLIC_KEY length: {len(settings.vapid_public_key or '')} (expected {PUBLIC_KEY_LENGTH})")
    print(f"VAPID_PRIVATE_KEY length: {len(settings.vapid_private_key or '')} (expected {PRIVATE_KEY_LENGTH})")
    if problems:
        print("\nVAPID configuration is invalid:")
        for problem in problems:
            print(f"  - {problem}")
        return 1
    print("\nAll VAPID checks passed")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--check", action="store_true", help="validate the configured keys instead")
    parser.add_argument("--email", default="admin@example.com", help="contact email to print")
    args = parser.parse_args(argv)

    if args.check:
        return check_configured_keys()

    public_key, private_key = generate_vapid_keys()
    print("\n=== VAPID Keys Generated ===\n")
    print("Add these to your environment variables:\n")
    print(f"VAPID_PUBLIC_KEY={public_key}")
    print(f"VAPID_PRIVATE_KEY={private_key}")
    print(f"VAPID_EMAIL={args.email}")
    print("\n============================\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
