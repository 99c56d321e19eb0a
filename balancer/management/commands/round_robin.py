"""Run a single-tier round robin and print per-stat efficiencies."""

from __future__ import annotations

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from balancer.services import DEFAULT_CONFIG_KEY, ConfigDocumentError, load_config
from balancing.combat import DuelEvaluator
from balancing.tournament import run_round_robin_tests


class Command(BaseCommand):
    """Run single-stat archetypes of one tier against each other."""

    help = "Run a round-robin tournament for one point tier and print stat efficiencies."

    def add_arguments(self, parser) -> None:
        """Add command arguments."""

        parser.add_argument("--config", default=DEFAULT_CONFIG_KEY, help="Configuration store key.")
        parser.add_argument("--tier", type=float, default=25.0, help="Points allocated per tested stat.")
        parser.add_argument(
            "--trials",
            type=int,
            default=None,
            help="Trials per matchup (defaults to BALANCER_DEFAULT_TRIALS).",
        )
        parser.add_argument(
            "--seed",
            type=int,
            default=None,
            help="Tournament seed (defaults to BALANCER_DEFAULT_SEED).",
        )
        parser.add_argument("--turn-limit", type=int, default=100, help="Maximum rounds per duel.")

    def handle(self, *args, **options) -> str | None:
        """Run the command."""

        trials: int = (
            options["trials"] if options["trials"] is not None else settings.BALANCER_DEFAULT_TRIALS
        )
        seed: int = options["seed"] if options["seed"] is not None else settings.BALANCER_DEFAULT_SEED
        if trials <= 0:
            raise CommandError("--trials must be > 0.")
        if options["turn_limit"] <= 0:
            raise CommandError("--turn-limit must be > 0.")

        try:
            loaded = load_config(options["config"])
        except ConfigDocumentError as exc:
            raise CommandError(str(exc)) from exc

        results = run_round_robin_tests(
            loaded.config,
            options["tier"],
            trials,
            seed,
            DuelEvaluator(turn_limit=options["turn_limit"]),
        )

        self.stdout.write(
            f"Tier {results.tier:g}: {len(results.matchups)} matchups x {results.trials} trials (seed {seed})"
        )
        for entry in results.efficiencies:
            self.stdout.write(
                f"{entry.rank:>3}. {entry.stat_id:<16} {entry.efficiency * 100:6.1f}%  "
                f"W{entry.wins}/L{entry.losses}/D{entry.draws}  {entry.assessment}"
            )
        return None
