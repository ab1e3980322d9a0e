from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Hot-Reload Server CLI")
    p.add_argument("--api", default="http://localhost:3002", help="Server base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("status", help="Show database/listener status")
    sub.add_parser("reload", help="Re-read the .env file now")

    s_ev = sub.add_parser("events", help="Show lifecycle events")
    s_ev.add_argument("--limit", type=int, default=20)

    s_get = sub.add_parser("get", help="Fetch users/products/tasks/posts")
    s_get.add_argument("resource", choices=["users", "products", "tasks", "posts"])
    s_get.add_argument("--id", type=int, default=None)

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    try:
        if args.cmd == "status":
            r = requests.get(f"{base}/api/status", timeout=10)
        elif args.cmd == "reload":
            r = requests.post(f"{base}/api/reload-env", timeout=30)
        elif args.cmd == "events":
            r = requests.get(f"{base}/api/events", params={"limit": args.limit}, timeout=10)
        elif args.cmd == "get":
            path = f"/api/{args.resource}" if args.id is None else f"/api/{args.resource}/{args.id}"
            r = requests.get(f"{base}{path}", timeout=10)
        else:
            return 2
    except requests.RequestException as e:
        print(f"Cannot reach {base}: {e}", file=sys.stderr)
        return 1

    _print(r.json())
    if args.cmd == "reload" and r.ok:
        return 0 if r.json().get("success") else 1
    return 0 if r.ok else 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
