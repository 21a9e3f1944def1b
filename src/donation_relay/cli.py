"""Command-line client for interacting with a running donation relay."""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any, Dict, Optional

import httpx

from .models import Platform

DEFAULT_HOST = os.environ.get("RELAY_HOST", "127.0.0.1")
DEFAULT_PORT = int(os.environ.get("RELAY_PORT", "8080"))
DEFAULT_TIMEOUT = float(os.environ.get("RELAY_TIMEOUT", "10.0"))


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    base_url = _resolve_base_url(args.host, args.port)
    timeout = args.timeout

    if args.command == "send":
        return _request(
            "POST",
            f"{base_url}/donation/{args.key}/test/{args.platform}",
            timeout,
            headers=_tenant_headers(args.api_key),
        )

    if args.command == "status":
        return _show_status(base_url, args.key, args.api_key, timeout)

    if args.command == "clear":
        return _request(
            "DELETE",
            f"{base_url}/donation/{args.key}/clear",
            timeout,
            headers=_tenant_headers(args.api_key),
        )

    if args.command == "register":
        if not args.master_key:
            parser.error("--master-key (or RELAY_MASTER_KEY) is required")
        payload: Dict[str, Any] = {"name": args.name}
        if args.max_queue_size:
            payload["max_queue_size"] = args.max_queue_size
        return _request(
            "POST",
            f"{base_url}/admin/tenants",
            timeout,
            headers={"X-Master-Key": args.master_key},
            payload=payload,
        )

    parser.error("Unknown command")
    return 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="donation-relay-cli",
        description="Inspect and drive a donation relay from any terminal.",
    )
    parser.add_argument("--host", default=DEFAULT_HOST, help="Relay host (default: %(default)s)")
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help="Relay port (default: %(default)s)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help="HTTP timeout in seconds (default: %(default)s)",
    )
    parser.add_argument("--api-key", default=os.environ.get("RELAY_API_KEY"), help="Tenant API key")
    parser.add_argument("--master-key", default=os.environ.get("RELAY_MASTER_KEY"), help="Admin master key")

    subparsers = parser.add_subparsers(dest="command", required=True)

    send_parser = subparsers.add_parser("send", help="Inject a sample donation for a platform")
    send_parser.add_argument("key", help="Tenant key")
    send_parser.add_argument("platform", choices=[platform.value for platform in Platform])

    status_parser = subparsers.add_parser("status", help="Print the tenant's active donation and queue")
    status_parser.add_argument("key", help="Tenant key")

    clear_parser = subparsers.add_parser("clear", help="Retire the active donation")
    clear_parser.add_argument("key", help="Tenant key")

    register_parser = subparsers.add_parser("register", help="Register a new tenant")
    register_parser.add_argument("name", help="Tenant display name")
    register_parser.add_argument("--max-queue-size", type=int, default=None)

    return parser


def _resolve_base_url(host: str, port: int) -> str:
    if host.startswith("http://") or host.startswith("https://"):
        return host.rstrip("/")
    return f"http://{host}:{port}"


def _tenant_headers(api_key: Optional[str]) -> Dict[str, str]:
    return {"X-API-Key": api_key} if api_key else {}


def _request(
    method: str,
    url: str,
    timeout: float,
    headers: Optional[Dict[str, str]] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> int:
    try:
        response = httpx.request(method, url, headers=headers, json=payload, timeout=timeout)
        response.raise_for_status()
    except httpx.RequestError as exc:
        print(f"Request failed: {exc}", file=sys.stderr)
        return 1
    except httpx.HTTPStatusError as exc:
        detail = exc.response.text
        print(f"Server responded with error {exc.response.status_code}: {detail}", file=sys.stderr)
        return 1

    if response.content:
        print(json.dumps(response.json(), indent=2, ensure_ascii=False))
    return 0


def _show_status(base_url: str, key: str, api_key: Optional[str], timeout: float) -> int:
    try:
        response = httpx.get(
            f"{base_url}/donation/{key}/status",
            headers=_tenant_headers(api_key),
            timeout=timeout,
        )
        response.raise_for_status()
    except httpx.RequestError as exc:
        print(f"Request failed: {exc}", file=sys.stderr)
        return 1
    except httpx.HTTPStatusError as exc:
        print(f"Server responded with error {exc.response.status_code}: {exc.response.text}", file=sys.stderr)
        return 1

    payload = response.json()
    if not isinstance(payload, dict):
        print("Unexpected response payload", file=sys.stderr)
        return 1

    active = payload.get("active")
    print("Active donation:")
    if active:
        print(f"  Platform: {active.get('platform')}")
        print(f"  Donor: {active.get('donor_name')}")
        print(f"  Amount: {active.get('amount')}")
        print(f"  Message: {active.get('message')}")
    else:
        print("  None")

    print(f"\nQueue: {payload.get('queue_size')}/{payload.get('queue_limit')}")
    preview = payload.get("queue_preview", [])
    for idx, entry in enumerate(preview, start=1):
        donation = entry.get("donation", {})
        print(f"  {idx}. {donation.get('donor_name')} - {donation.get('amount')} ({donation.get('platform')})")

    stats = payload.get("stats", {})
    print(
        f"\nReceived: {stats.get('total_received')}  "
        f"Queued: {stats.get('total_queued')}  "
        f"Processed: {stats.get('total_processed')}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
