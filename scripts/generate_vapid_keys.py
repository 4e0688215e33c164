#!/usr/bin/env python3
"""Generate a VAPID key pair for Web Push.

Prints both keys in base64url form, ready to export as environment
variables. The public key also goes to the browser-side subscribe call.

Usage:
    python scripts/generate_vapid_keys.py
"""

import sys
from pathlib import Path

# Ensure project root is on the path when run as a script
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.push.vapid import generate_key_pair


def main() -> None:
    private_key, public_key = generate_key_pair()
    print(f"VAPID_PRIVATE_KEY={private_key}")
    print(f"VAPID_PUBLIC_KEY={public_key}")


if __name__ == "__main__":
    main()
