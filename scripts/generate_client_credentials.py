#!/usr/bin/env python3
"""Print a fresh client id and secret for a confidential application.

The secret is shown once; store only ``client_secret_hash`` in
``oauth_applications.client_secret_hash``.
"""
import json
import sys

from ledgerauth.crypto.credentials import generate_client_credentials


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    count = int(args[0]) if args else 1
    if count < 1:
        print("count must be at least 1", file=sys.stderr)
        return 1

    for _ in range(count):
        creds = generate_client_credentials()
        print(json.dumps(creds.model_dump()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
