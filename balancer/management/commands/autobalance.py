"""Run an auto-balance session against a stored configuration."""

from __future__ import annotations

from dataclasses import replace

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from balancer.services import (
    DEFAULT_CONFIG_KEY,
    ConfigDocumentError,
    StaleConfigRevisionError,
    add_session,
    load_config,
    save_config,
)
from balancing.archetypes import DEFAULT_TIERS
from balancing.autobalance import run_auto_balance_session
from balancing.combat import DuelEvaluator
from balancing.dto import AutoBalanceOptions


class Command(BaseCommand):
    """Retune stat weights from round-robin efficiencies."""

    help = "Run an auto-balance session; --write stores the session and the tuned weights."

    def add_arguments(self, parser) -> None:
        """Add command arguments."""

        parser.add_argument("--config", default=DEFAULT_CONFIG_KEY, help="Configuration store key.")
        parser.add_argument("--max-iterations", type=int, default=None, help="Iteration budget.")
        parser.add_argument("--trials", type=int, default=None, help="Trials per matchup.")
        parser.add_argument("--seed", type=int, default=None, help="Base seed for the session.")
        parser.add_argument(
            "--tier",
            dest="tiers",
            type=float,
            action="append",
            default=None,
            help="Point tier to exercise (repeatable; defaults to 25, 50, 75 and 100).",
        )
        parser.add_argument("--session-id", default=None, help="Optional session identifier.")
        parser.add_argument(
            "--check",
            action="store_true",
            help="Dry-run: report suggested weights without writing.",
        )
        parser.add_argument(
            "--write",
            action="store_true",
            help="Store the session history and save the tuned configuration.",
        )

    def handle(self, *args, **options) -> str | None:
        """Run the command."""

        check: bool = options["check"]
        write: bool = options["write"]
        if check and write:
            raise CommandError("Use either --check or --write, not both.")
        if not check and not write:
            raise CommandError("Refusing to run without explicit intent; pass --check or --write.")

        defaults = AutoBalanceOptions()
        opts = replace(
            defaults,
            max_iterations=(
                options["max_iterations"]
                if options["max_iterations"] is not None
                else settings.BALANCER_MAX_ITERATIONS
            ),
            iterations_per_tier=(
                options["trials"] if options["trials"] is not None else settings.BALANCER_DEFAULT_TRIALS
            ),
            seed=options["seed"] if options["seed"] is not None else settings.BALANCER_DEFAULT_SEED,
            session_id=options["session_id"],
            tiers=tuple(options["tiers"] or DEFAULT_TIERS),
        )
        if opts.max_iterations <= 0:
            raise CommandError("--max-iterations must be > 0.")
        if opts.iterations_per_tier <= 0:
            raise CommandError("--trials must be > 0.")

        key: str = options["config"]
        try:
            loaded = load_config(key)
        except ConfigDocumentError as exc:
            raise CommandError(str(exc)) from exc

        result = run_auto_balance_session(loaded.config, DuelEvaluator(), opts)
        session = result.session

        for run in session.runs:
            self.stdout.write(
                f"{run.id}: balance score {run.balance_score:.4f} "
                f"(OP: {', '.join(run.overpowered) or '-'}; UP: {', '.join(run.underpowered) or '-'})"
            )
        for stat_id, stat in result.final_config.stats.items():
            before = loaded.config.stats.get(stat_id)
            if before is not None and before.weight != stat.weight:
                self.stdout.write(f"  {stat_id}: weight {before.weight:.4f} -> {stat.weight:.4f}")

        if check:
            self.stdout.write(f"Dry-run: {len(session.runs)} run(s); nothing written.")
            return None

        try:
            with transaction.atomic():
                saved = save_config(
                    key,
                    result.final_config,
                    description=f"Auto-balance {session.session_id}",
                    expected_revision=loaded.revision,
                )
                add_session(session, config_key=key)
        except StaleConfigRevisionError as exc:
            raise CommandError(str(exc)) from exc
        self.stdout.write(
            self.style.SUCCESS(
                f"Stored session {session.session_id} ({len(session.runs)} run(s)); "
                f"configuration {key!r} at revision {saved.revision}."
            )
        )
        return None
