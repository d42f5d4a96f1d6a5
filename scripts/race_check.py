"""Race check: fire simultaneous opposite-direction connection requests.

For each pair (A, B) the script sends ``A -> B`` and ``B -> A`` at the same
moment against a running server, then verifies that both sides see exactly
one accepted connection.  Pairs must be distinct users with complete profiles
and no existing connection (a freshly seeded database with
``--connect-rate 0 --pending-rate 0 --disconnected-rate 0 --dismiss-rate 0``
works).

Usage: python -m scripts.race_check --users 3 4 5 6 [--base-url http://localhost:8000]
"""
import argparse
import asyncio
import statistics
import sys
import time
from typing import Any

import httpx


DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_HEADER = "X-User-Id"


async def send_request(
    client: httpx.AsyncClient,
    base_url: str,
    header: str,
    requester_id: int,
    target_id: int,
) -> tuple[int, dict[str, Any], float]:
    t0 = time.monotonic()
    resp = await client.post(
        f"{base_url}/api/v1/connections/{target_id}/request",
        headers={header: str(requester_id)},
    )
    dt = time.monotonic() - t0
    try:
        body = resp.json()
    except ValueError:
        body = {}
    return resp.status_code, body, dt


async def relationship(
    client: httpx.AsyncClient, base_url: str, header: str, user_id: int, other_id: int
) -> str | None:
    resp = await client.get(
        f"{base_url}/api/v1/connections/{other_id}",
        headers={header: str(user_id)},
    )
    if resp.status_code != 200:
        return None
    return resp.json().get("state")


async def check_pair(
    client: httpx.AsyncClient, base_url: str, header: str, a: int, b: int
) -> dict[str, Any]:
    """Race ``a -> b`` against ``b -> a`` and report the observed outcome."""
    (status_ab, body_ab, dt_ab), (status_ba, body_ba, dt_ba) = await asyncio.gather(
        send_request(client, base_url, header, a, b),
        send_request(client, base_url, header, b, a),
    )

    states = sorted(
        body.get("state") or body.get("error", f"http_{code}")
        for code, body in ((status_ab, body_ab), (status_ba, body_ba))
    )
    seen_by_a = await relationship(client, base_url, header, a, b)
    seen_by_b = await relationship(client, base_url, header, b, a)

    ok = seen_by_a == "accepted" and seen_by_b == "accepted"
    return {
        "pair": (a, b),
        "responses": states,
        "seen_by_a": seen_by_a,
        "seen_by_b": seen_by_b,
        "ok": ok,
        "timings": [dt_ab, dt_ba],
    }


async def run_race_check(base_url: str, header: str, users: list[int]) -> dict[str, Any]:
    pairs = [(users[i], users[i + 1]) for i in range(0, len(users) - 1, 2)]

    print(f"\n{'='*60}")
    print(f"Tandem race check — {len(pairs)} pairs")
    print(f"Target: {base_url}")
    print(f"{'='*60}\n")

    results: dict[str, Any] = {"total": len(pairs), "passed": 0, "failures": [], "timings": []}

    async with httpx.AsyncClient(timeout=30.0) as client:
        outcomes = await asyncio.gather(
            *(check_pair(client, base_url, header, a, b) for a, b in pairs)
        )

    for outcome in outcomes:
        results["timings"].extend(outcome["timings"])
        a, b = outcome["pair"]
        if outcome["ok"]:
            results["passed"] += 1
            print(f"  [OK]   {a} <-> {b}: {outcome['responses']}")
        else:
            results["failures"].append(outcome)
            print(
                f"  [FAIL] {a} <-> {b}: {outcome['responses']} "
                f"(a sees {outcome['seen_by_a']}, b sees {outcome['seen_by_b']})"
            )

    print(f"\n{'='*60}")
    print(f"Pairs accepted exactly once: {results['passed']}/{results['total']}")
    if results["timings"]:
        print(f"Request latency mean:  {statistics.mean(results['timings']):.3f}s")
        print(f"Request latency max:   {max(results['timings']):.3f}s")
    print(f"{'='*60}\n")
    return results


def main():
    parser = argparse.ArgumentParser(description="Tandem connection race check")
    parser.add_argument("--users", type=int, nargs="+", required=True,
                        help="User ids, consumed two at a time as racing pairs")
    parser.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API base URL")
    parser.add_argument("--header", type=str, default=DEFAULT_HEADER, help="Identity header name")
    args = parser.parse_args()

    if len(args.users) < 2 or len(set(args.users)) != len(args.users):
        parser.error("--users needs at least two distinct ids")

    results = asyncio.run(run_race_check(args.base_url, args.header, args.users))

    if results["passed"] != results["total"]:
        print(f"FAIL: {results['total'] - results['passed']} pair(s) not cleanly accepted")
        sys.exit(1)
    print("PASS: every pair ended with exactly one accepted connection")


if __name__ == "__main__":
    main()
