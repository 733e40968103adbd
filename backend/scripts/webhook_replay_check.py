"""Replay signed Stripe webhook deliveries against a running API.

Checks that the receiver rejects unsigned, badly signed and stale deliveries,
acknowledges redeliveries as duplicates, and records exactly one ledger row
when the same event arrives concurrently. Events use an unhandled type so no
booking is touched; ledger rows are removed afterwards unless --keep.

Usage examples:
  python backend/scripts/webhook_replay_check.py
  python backend/scripts/webhook_replay_check.py --base-url http://localhost:8000 --concurrency 8
  python backend/scripts/webhook_replay_check.py --env-file backend/.env --keep

The webhook secret is read from STRIPE_WEBHOOK_SECRET (or the env file).
"""

from __future__ import annotations

import argparse
import asyncio
import hashlib
import hmac
import json
import os
from pathlib import Path
import sys
import time
from typing import Optional

import httpx
from dotenv import dotenv_values
import ulid

BACKEND_DIR = Path(__file__).resolve().parents[1]
WEBHOOK_PATH = "/api/v1/webhooks/stripe"
REPLAY_EVENT_TYPE = "casaora.replay_check"
STALE_OFFSET_SECONDS = 3600

if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))


def _bootstrap_env(env_file: Optional[str]) -> None:
    path = Path(env_file).expanduser().resolve() if env_file else BACKEND_DIR / ".env"
    if env_file and not path.exists():
        print(f"Provided --env-file does not exist: {path}", file=sys.stderr)
        sys.exit(2)
    if path.exists():
        for key, value in dotenv_values(path).items():
            if value is not None:
                os.environ.setdefault(key.upper(), value)
    if not os.environ.get("STRIPE_WEBHOOK_SECRET"):
        print("STRIPE_WEBHOOK_SECRET is not set", file=sys.stderr)
        sys.exit(2)


def sign_payload(payload: str, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header value for ``payload``."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def build_event(event_id: Optional[str] = None) -> str:
    event = {
        "id": event_id or f"evt_replay_{ulid.ULID()}",
        "object": "event",
        "type": REPLAY_EVENT_TYPE,
        "created": int(time.time()),
        "data": {"object": {}},
    }
    return json.dumps(event, separators=(",", ":"))


async def _post(client: httpx.AsyncClient, payload: str, signature: Optional[str]) -> httpx.Response:
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["Stripe-Signature"] = signature
    return await client.post(WEBHOOK_PATH, content=payload.encode("utf-8"), headers=headers)


class ReplayCheck:
    def __init__(self, base_url: str, secret: str, concurrency: int):
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.concurrency = concurrency
        self.failures: list[str] = []
        self.event_ids: list[str] = []

    def _expect(self, label: str, condition: bool, detail: str = "") -> None:
        mark = "PASS" if condition else "FAIL"
        print(f"[{mark}] {label}{': ' + detail if detail else ''}")
        if not condition:
            self.failures.append(label)

    async def run(self) -> None:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=15.0) as client:
            await self._check_rejections(client)
            await self._check_redelivery(client)
            await self._check_concurrent(client)

    async def _check_rejections(self, client: httpx.AsyncClient) -> None:
        payload = build_event()
        response = await _post(client, payload, None)
        self._expect("missing signature rejected", response.status_code == 400, str(response.status_code))

        response = await _post(client, payload, sign_payload(payload, "whsec_wrong"))
        self._expect("bad signature rejected", response.status_code == 400, str(response.status_code))

        stale_ts = int(time.time()) - STALE_OFFSET_SECONDS
        response = await _post(client, payload, sign_payload(payload, self.secret, stale_ts))
        self._expect("stale signature rejected", response.status_code == 400, str(response.status_code))

    async def _check_redelivery(self, client: httpx.AsyncClient) -> None:
        payload = build_event()
        self.event_ids.append(json.loads(payload)["id"])

        first = await _post(client, payload, sign_payload(payload, self.secret))
        second = await _post(client, payload, sign_payload(payload, self.secret))
        self._expect("first delivery accepted", first.status_code == 200, first.text)
        self._expect(
            "redelivery acknowledged as duplicate",
            second.status_code == 200 and second.json().get("duplicate") is True,
            second.text,
        )

    async def _check_concurrent(self, client: httpx.AsyncClient) -> None:
        payload = build_event()
        self.event_ids.append(json.loads(payload)["id"])
        signature = sign_payload(payload, self.secret)

        responses = await asyncio.gather(
            *(_post(client, payload, signature) for _ in range(self.concurrency))
        )
        statuses = [r.status_code for r in responses]
        fresh = [r for r in responses if r.status_code == 200 and not r.json().get("duplicate")]
        self._expect("concurrent copies all acknowledged", all(s == 200 for s in statuses), str(statuses))
        self._expect("exactly one concurrent copy processed", len(fresh) == 1, f"{len(fresh)} processed")

    def verify_ledger(self, keep: bool) -> None:
        from casaora.core.constants import STRIPE_WEBHOOK_SOURCE
        from casaora.database import SessionLocal
        from casaora.services.webhook_ledger_service import WebhookLedgerService

        db = SessionLocal()
        try:
            ledger = WebhookLedgerService(db)
            for event_id in self.event_ids:
                row = ledger.get_event(STRIPE_WEBHOOK_SOURCE, event_id)
                self._expect(f"ledger row for {event_id}", row is not None)
            if not keep and self.event_ids:
                deleted = ledger.delete_events(STRIPE_WEBHOOK_SOURCE, self.event_ids)
                print(f"Cleaned up {deleted} ledger rows")
        finally:
            db.close()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--base-url", default="http://localhost:8000", help="API origin")
    parser.add_argument("--env-file", help="Env file providing STRIPE_WEBHOOK_SECRET and DATABASE_URL")
    parser.add_argument("--concurrency", type=int, default=5, help="Simultaneous copies of one event")
    parser.add_argument("--skip-ledger", action="store_true", help="Do not inspect the database")
    parser.add_argument("--keep", action="store_true", help="Leave replay ledger rows in place")
    args = parser.parse_args(argv)

    _bootstrap_env(args.env_file)
    check = ReplayCheck(args.base_url, os.environ["STRIPE_WEBHOOK_SECRET"], max(2, args.concurrency))
    try:
        asyncio.run(check.run())
    except httpx.HTTPError as exc:
        print(f"Could not reach {args.base_url}: {exc}", file=sys.stderr)
        return 2

    if not args.skip_ledger:
        check.verify_ledger(args.keep)

    if check.failures:
        print(f"{len(check.failures)} check(s) failed", file=sys.stderr)
        return 1
    print("All webhook replay checks passed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
