#!/usr/bin/env python3
"""Fetch a client-credentials bearer token and print it.

Usage:
  CLIENT_ID=... CLIENT_SECRET=... TOKEN_URL=https://oauth2.example.com/oauth2/token \
    python3 tools/get_token.py [jwt|opaque]

Env vars:
  - SCOPES (space separated, optional)
  - CLIENT_TIMEOUT_SECONDS (default 10)
  - INSECURE_SKIP_VERIFY=1 to accept self-signed certificates (test clusters only)
"""

from __future__ import annotations

import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from errors import TokenAcquisitionError  # noqa: E402
from tokens import ClientCredentials, get_access_token  # noqa: E402


def main(argv: list[str]) -> int:
    creds = ClientCredentials(
        client_id=os.environ["CLIENT_ID"],
        client_secret=os.environ["CLIENT_SECRET"],
        token_url=os.environ["TOKEN_URL"],
        scopes=tuple(os.environ.get("SCOPES", "").split()),
    )
    try:
        token = get_access_token(
            creds,
            client_timeout=float(os.environ.get("CLIENT_TIMEOUT_SECONDS", "10")),
            token_format=argv[0] if argv else None,
            verify_tls=os.environ.get("INSECURE_SKIP_VERIFY", "0") != "1",
        )
    except TokenAcquisitionError as e:
        print(f"[token] {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    print(token)
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
