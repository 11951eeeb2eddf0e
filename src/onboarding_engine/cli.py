"""Onboarding operations command line interface.

Provides operational tools for:
- Expiring overdue sessions (suitable for cron)
- Listing sessions about to expire
- Per-organization onboarding statistics

Usage:
    onboarding-ops sweep-expired
    onboarding-ops expiring-soon --hours 48
    onboarding-ops stats --organization-id X
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from onboarding_engine.api.app import build_emitter
from onboarding_engine.config import Settings, get_settings
from onboarding_engine.database import dispose_db, init_db
from onboarding_engine.services import OnboardingService, OnboardingSessionStore

logger = logging.getLogger(__name__)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class OnboardingCli:
    """Onboarding Command Line Interface."""

    def __init__(
        self,
        settings: Settings | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="onboarding-ops",
            description="Onboarding operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser(
            "sweep-expired",
            help="Mark in-progress sessions past their expiry as expired",
        )

        expiring = subparsers.add_parser(
            "expiring-soon",
            help="List in-progress sessions expiring soon",
        )
        expiring.add_argument(
            "--hours",
            type=int,
            default=24,
            help="Look-ahead window in hours (default: 24)",
        )
        expiring.add_argument(
            "--organization-id",
            type=parse_uuid,
            help="Restrict to one organization",
        )

        stats = subparsers.add_parser(
            "stats",
            help="Onboarding counts for an organization",
        )
        stats.add_argument(
            "--organization-id",
            type=parse_uuid,
            required=True,
            help="Organization to report on",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
            "sweep-expired": self._cmd_sweep_expired,
            "expiring-soon": self._cmd_expiring_soon,
            "stats": self._cmd_stats,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1
        return asyncio.run(self._run_handler(handler, parsed))

    async def _run_handler(
        self,
        handler: Callable[[argparse.Namespace], Awaitable[int]],
        args: argparse.Namespace,
    ) -> int:
        owns_database = self.session_factory is None
        if self.session_factory is None:
            _, self.session_factory = init_db()
        try:
            return await handler(args)
        finally:
            if owns_database:
                await dispose_db()
                self.session_factory = None

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        if self.session_factory is None:
            raise RuntimeError("Database is not initialized")
        return self.session_factory

    def _settings(self) -> Settings:
        return self.settings or get_settings()

    async def _cmd_sweep_expired(self, args: argparse.Namespace) -> int:
        """Expire overdue sessions and emit the sweep event."""
        settings = self._settings()
        factory = self._sessions()
        emitter = build_emitter(settings, factory)
        async with factory() as session:
            service = OnboardingService(session, settings=settings, emitter=emitter)
            count = await service.sweep_expired()
        logger.info("Expired %d onboarding sessions", count)
        _print_json({"expired": count})
        return 0

    async def _cmd_expiring_soon(self, args: argparse.Namespace) -> int:
        """List sessions expiring within the window."""
        if args.hours <= 0:
            print("--hours must be positive", file=sys.stderr)
            return 1
        factory = self._sessions()
        async with factory() as session:
            sessions = await OnboardingSessionStore(session).find_expiring_soon(
                hours=args.hours, organization_id=args.organization_id
            )
            rows = [
                {
                    "session_id": str(s.id),
                    "employee_id": str(s.employee_id),
                    "employee_name": s.employee.user.full_name,
                    "expires_at": s.expires_at.isoformat(),
                }
                for s in sessions
            ]
        _print_json({"count": len(rows), "sessions": rows})
        return 0

    async def _cmd_stats(self, args: argparse.Namespace) -> int:
        """Print onboarding counts for an organization."""
        factory = self._sessions()
        async with factory() as session:
            stats = await OnboardingSessionStore(session).organization_stats(args.organization_id)
        _print_json(
            {
                "organization_id": str(args.organization_id),
                "total": stats.total,
                "in_progress": stats.in_progress,
                "completed": stats.completed,
                "expired": stats.expired,
                "cancelled": stats.cancelled,
                "completion_rate": stats.completion_rate,
            }
        )
        return 0


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2))


def main(args: list[str] | None = None) -> int:
    """CLI entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return OnboardingCli(settings=settings).run(args)


if __name__ == "__main__":
    sys.exit(main())
