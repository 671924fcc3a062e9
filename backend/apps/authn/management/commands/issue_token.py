"""
Django management command to issue an access token.

Usage:
    python manage.py issue_token alice
    python manage.py issue_token alice --days 30
"""
import secrets
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from apps.authn.models import AccessToken
from apps.authn.tokens import get_token_cache


class Command(BaseCommand):
    help = 'Issue a bearer access token for a user (created if missing)'

    def add_arguments(self, parser):
        parser.add_argument('username')
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Days until the token expires (default: never)',
        )

    def handle(self, *args, **options):
        days = options['days']
        if days is not None and days <= 0:
            raise CommandError('--days must be greater than zero')

        user, created = get_user_model().objects.get_or_create(username=options['username'])
        if created:
            self.stdout.write(f"Created user {user.username} (id={user.pk})")

        expires_at = timezone.now() + timedelta(days=days) if days else None
        token = AccessToken.objects.create(
            user=user,
            token=secrets.token_urlsafe(32),
            expires_at=expires_at,
        )

        # Only affects this process; running servers pick it up on restart
        get_token_cache().invalidate()

        self.stdout.write(self.style.SUCCESS(token.token))
