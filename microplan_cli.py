import argparse
import json
import sys
from typing import List, Optional

import httpx


DEFAULT_API_BASE = "http://127.0.0.1:8000"
BREAKDOWN_PATH = "/api/research-breakdown"


def _join_url(base: str, path: str) -> str:
    return base.rstrip("/") + path


def _print_breakdown(data: dict) -> None:
    tasks = data.get("breakdown") or []
    if not tasks:
        print("No micro-tasks returned.")
    total = 0
    for task in tasks:
        minutes = task.get("estimatedTime") or 0
        total += minutes
        deps = task.get("dependsOn") or []
        suffix = f" (after {', '.join(str(d) for d in deps)})" if deps else ""
        print(f"{task.get('id')}. [{task.get('priority')}] {task.get('text')} - {minutes} min{suffix}")
    if tasks:
        print(f"Total: {len(tasks)} tasks, {total} min")
    sources = data.get("sources") or []
    if sources:
        print("Sources:")
        for src in sources:
            print(f"- {src.get('title')}: {src.get('url')}")
    meta = data.get("meta") or {}
    if not meta.get("usedWebResearch"):
        print("(planned without web context)")


def run_breakdown(args: argparse.Namespace) -> int:
    base = args.base_url or DEFAULT_API_BASE
    task = " ".join(args.task).strip()
    if not task:
        print("A task description is required.")
        return 2
    with httpx.Client() as client:
        try:
            resp = client.post(_join_url(base, BREAKDOWN_PATH), json={"task": task}, timeout=args.timeout)
        except httpx.RequestError as exc:
            print(f"Request failed: {exc}")
            return 1
    try:
        data = resp.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    if resp.status_code >= 400:
        print(f"Breakdown failed: HTTP {resp.status_code} {data.get('error', '')}".rstrip())
        return 1
    if args.json:
        print(json.dumps(data, indent=2))
    else:
        _print_breakdown(data)
    return 0


def run_health(args: argparse.Namespace) -> int:
    base = args.base_url or DEFAULT_API_BASE
    with httpx.Client() as client:
        try:
            resp = client.get(_join_url(base, "/health"), timeout=10)
        except httpx.RequestError as exc:
            print(f"Request failed: {exc}")
            return 1
    if resp.status_code >= 400:
        print(f"Health check failed: HTTP {resp.status_code}")
        return 1
    data = resp.json()
    print(f"search: {data.get('search_provider')}, completion: {data.get('completion_backend')}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MicroPlan CLI")
    parser.add_argument("--base-url", default=DEFAULT_API_BASE, help="API base URL")
    subparsers = parser.add_subparsers(dest="command")

    breakdown = subparsers.add_parser("breakdown", help="Break a task into micro-tasks")
    breakdown.add_argument("--json", action="store_true", help="Print the raw JSON response")
    breakdown.add_argument("--timeout", type=float, default=180, help="Request timeout seconds")
    breakdown.add_argument("task", nargs="+", help="Task description")

    subparsers.add_parser("health", help="Show configured providers")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "breakdown":
        return run_breakdown(args)
    if args.command == "health":
        return run_health(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
