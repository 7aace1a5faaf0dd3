"""Shared helpers for the flow scripts.

Tokens are minted locally with the configured JWT secret, so these scripts
only work against a development server.
"""

import json
import sys

import httpx

from loc3w.core.security import create_access_token

BASE_URL = "http://localhost:8000"


def token_for(user_id: str) -> str:
    return create_access_token({"sub": user_id})


def api_request(token: str, method: str, endpoint: str, data: dict | None = None) -> dict:
    """Make authenticated API request."""
    headers = {"Authorization": f"Bearer {token}"}
    url = f"{BASE_URL}{endpoint}"

    if method == "GET":
        response = httpx.get(url, headers=headers, timeout=10.0, follow_redirects=True)
    elif method == "POST":
        response = httpx.post(url, headers=headers, json=data or {}, timeout=10.0, follow_redirects=True)
    else:
        raise ValueError(f"Unknown method: {method}")

    return {"status": response.status_code, "data": response.json() if response.text else {}}


def print_step(step: int, title: str):
    """Print step header."""
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("="*60)


def print_result(result: dict, fields: list[str] | None = None):
    """Print result, optionally filtering fields."""
    if result["status"] >= 400:
        print(f"ERROR ({result['status']}): {json.dumps(result['data'], indent=2)}")
        return False

    print(f"Status: {result['status']}")
    data = result["data"]
    if fields and isinstance(data, dict):
        filtered = {k: data.get(k) for k in fields if k in data}
        print(json.dumps(filtered, indent=2))
    else:
        print(json.dumps(data, indent=2))
    return True


def require(result: dict, fields: list[str] | None = None) -> dict:
    if not print_result(result, fields):
        sys.exit(1)
    return result["data"]
