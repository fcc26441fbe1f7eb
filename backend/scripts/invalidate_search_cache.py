"""CLI tool to sweep the search response cache via the admin endpoint.

Venue write paths call the same endpoint after a mutation; this script is the
manual escape hatch.

Usage example:
    python invalidate_search_cache.py --token <admin-jwt> --reason "bulk import"
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger("invalidate_search_cache")


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")


def _build_headers(token: Optional[str]) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


async def _invalidate(
    *,
    base_url: str,
    headers: Dict[str, str],
    reason: Optional[str],
    venue_id: Optional[str],
    dry_run: bool,
) -> Dict[str, Any]:
    payload = {"reason": reason, "venue_id": venue_id}
    if dry_run:
        logger.info("[dry-run] Would POST /admin/cache/search/invalidate with %s", payload)
        return {"removed": 0, "available": None}

    async with httpx.AsyncClient(base_url=base_url, timeout=15.0) as client:
        status_response = await client.get("/admin/cache/search/status", headers=headers)
        if status_response.status_code != 200:
            raise RuntimeError(f"Unexpected status {status_response.status_code}: {status_response.text}")
        logger.debug("Cache status before sweep: %s", status_response.json())

        response = await client.post("/admin/cache/search/invalidate", json=payload, headers=headers)
        if response.status_code != 200:
            raise RuntimeError(f"Unexpected status {response.status_code}: {response.text}")
        return response.json()


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Invalidate cached venue search responses via admin API")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL for the backend service (default: http://localhost:8000)",
    )
    parser.add_argument("--token", help="Admin bearer token to authorize requests")
    parser.add_argument("--reason", help="Free-form reason recorded in the service logs")
    parser.add_argument("--venue-id", help="Venue whose mutation triggered the sweep")
    parser.add_argument("--dry-run", action="store_true", help="Log actions without performing HTTP requests")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv or sys.argv[1:])
    _configure_logging(args.verbose)
    headers = _build_headers(args.token)

    try:
        result = asyncio.run(
            _invalidate(
                base_url=args.base_url,
                headers=headers,
                reason=args.reason,
                venue_id=args.venue_id,
                dry_run=args.dry_run,
            )
        )
    except Exception as exc:
        logger.error("Cache invalidation failed: %s", exc)
        return 1

    if result.get("available") is False:
        logger.warning("Cache backend is unavailable; nothing was removed")
    logger.info("Cache invalidation completed (%s entries removed)", result.get("removed"))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
