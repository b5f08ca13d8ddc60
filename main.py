import sys
import argparse
import asyncio
import logging
from pathlib import Path

# Add src to path
current_dir = Path(__file__).parent.resolve()
src_path = current_dir / "src"
sys.path.append(str(src_path))

# Force UTF-8 for Windows console
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding='utf-8')
    sys.stderr.reconfigure(encoding='utf-8')

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("sportsbook_client.log", encoding='utf-8')
    ]
)

from sportsbook_client.client import SessionClient
from sportsbook_client.config import STATE_DB_PATH, DATA_DIR, POLL_INTERVAL_SECONDS
from sportsbook_client.context import SessionContext
from sportsbook_client.polling import HealthMonitor, PeriodicRefresher
from sportsbook_client.profile import BetHistory, load_profile
from sportsbook_client.storage import TokenStore


def build_context() -> SessionContext:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    client = SessionClient(TokenStore(STATE_DB_PATH))
    return SessionContext(client, navigate=lambda path: logging.info(f"Navigate -> {path}"))


async def run_health():
    context = build_context()
    monitor = HealthMonitor(context.client)

    async def report():
        for service in await monitor.check():
            print(f"{service.name:<20} {service.status}" + (f"  ({service.error})" if service.error else ""))

    async with PeriodicRefresher(report, POLL_INTERVAL_SECONDS, name="health"):
        await asyncio.Event().wait()


async def run_login(email: str, password: str) -> int:
    context = build_context()
    await context.initialize()
    if await context.login(email, password):
        print(f"Logged in as {context.user.full_name} (balance {context.user.balance:.2f})")
        return 0
    print("Login failed")
    return 1


async def run_profile() -> int:
    context = build_context()
    await context.initialize()
    if not context.is_authenticated:
        print("Not logged in")
        return 1
    summary, recent = await load_profile(context.client, context.user)
    print(f"{summary.name} {summary.username} [{summary.badge}]")
    print(f"Balance: {summary.balance:.2f}  Bets: {summary.total_bets}  Win rate: {summary.win_rate}%")
    for bet in recent:
        print(f"  {bet['match']:<40} {bet['market']:<15} {bet['result']:<8} {bet['profit']:+.2f}")
    return 0


async def run_bets(status: str, pages: int) -> int:
    context = build_context()
    await context.initialize()
    if not context.is_authenticated:
        print("Not logged in")
        return 1
    history = BetHistory(context.client)
    if not await history.load(status):
        print("Failed to load bets")
        return 1
    while history.page < pages and await history.load_more():
        pass
    for bet in history.rows():
        print(f"  {bet['match']:<40} {bet['market']:<15} {bet['result']:<8} {bet['profit']:+.2f}")
    if history.has_more:
        print("  ... more available")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Sportsbook session client")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("health", help="Poll gateway and service health")
    login = sub.add_parser("login", help="Log in and cache the session")
    login.add_argument("email")
    login.add_argument("password")
    sub.add_parser("profile", help="Show the cached user's profile and recent bets")
    bets = sub.add_parser("bets", help="List bet history")
    bets.add_argument("--status", default="all", help="all, active, won, lost")
    bets.add_argument("--pages", type=int, default=1)
    sub.add_parser("logout", help="Forget the cached session")
    args = parser.parse_args()

    try:
        if args.command == "health":
            asyncio.run(run_health())
        elif args.command == "login":
            sys.exit(asyncio.run(run_login(args.email, args.password)))
        elif args.command == "profile":
            sys.exit(asyncio.run(run_profile()))
        elif args.command == "bets":
            sys.exit(asyncio.run(run_bets(args.status, args.pages)))
        elif args.command == "logout":
            build_context().client.logout()
            print("Logged out")
    except KeyboardInterrupt:
        print("\nStopping...")
    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)


if __name__ == "__main__":
    main()
