import argparse
import asyncio
import json
import logging
import sys

from auth.session_expiry import SessionExpiredContext
from errors import ApiError, SessionExpiredError
from session_manager import SessionManager

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
log = logging.getLogger(__name__)


def _on_session_expired(ctx: SessionExpiredContext):
    log.warning("Session expired (%s), please log in again", ctx.reason)


def _reset_to_login(ctx: SessionExpiredContext):
    log.info("Returning to login screen")


async def run(method: str, endpoint: str, body=None, timeout: float | None = None) -> int:
    """Perform one call through a fresh session manager. Returns an exit code."""
    async with SessionManager.create() as manager:
        manager.on_session_expired(_on_session_expired)
        manager.on_navigation_reset(_reset_to_login)
        try:
            resp = await manager.api.call(endpoint, method, json=body, timeout=timeout)
        except SessionExpiredError:
            return 1
        except ApiError as e:
            log.error("%s", e)
            return 1

    if isinstance(resp.data, (dict, list)):
        print(json.dumps(resp.data, indent=2, ensure_ascii=False))
    elif resp.data is not None:
        print(resp.data)
    return 0


def _parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Call the referral API with the stored session.")
    parser.add_argument("method", help="HTTP method, e.g. GET")
    parser.add_argument("endpoint", help="path under the API base URL, e.g. /users/profile")
    parser.add_argument("--data", help="JSON request body")
    parser.add_argument("--timeout", type=float, help="seconds (default from settings)")
    args = parser.parse_args(argv)
    args.body = None
    if args.data:
        try:
            args.body = json.loads(args.data)
        except ValueError as e:
            parser.error(f"--data is not valid JSON: {e}")
    return args


def cli():
    args = _parse_args()
    sys.exit(asyncio.run(run(args.method, args.endpoint, args.body, args.timeout)))


if __name__ == "__main__":
    cli()
