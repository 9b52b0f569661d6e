from __future__ import annotations

from datetime import timedelta

from django.core.management.base import BaseCommand, CommandError

from modules.core.authentication import Role, issue_token


class Command(BaseCommand):
    help = "Print a bearer token for a subject and role (local development)."

    def add_arguments(self, parser):
        parser.add_argument("subject", help="User id placed in the 'sub' claim.")
        parser.add_argument("role", choices=Role.values)
        parser.add_argument(
            "--minutes",
            type=int,
            default=None,
            help="Lifetime in minutes (defaults to JWT_ACCESS_TOKEN_LIFETIME).",
        )

    def handle(self, *args, **options):
        minutes = options["minutes"]
        if minutes is not None and minutes <= 0:
            raise CommandError("--minutes must be positive.")
        expires_in = timedelta(minutes=minutes) if minutes else None
        token = issue_token(options["subject"], options["role"], expires_in=expires_in)
        self.stdout.write(token)
