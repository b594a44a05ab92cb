from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from apps.core.models import StaffToken
from apps.core.services.members import is_staff_member


class Command(BaseCommand):
    help = 'Issue a bearer token for a mess staff scanner device'

    def add_arguments(self, parser):
        parser.add_argument('username', help='Mess staff user the token acts as')
        parser.add_argument('--label', default='Scanner', help='Device label')
        parser.add_argument(
            '--days',
            type=int,
            default=settings.STAFF_TOKEN_EXPIRY_DAYS,
            help='Days until the token expires (0 for no expiry)',
        )

    def handle(self, *args, **options):
        user = get_user_model().objects.filter(username=options['username']).first()
        if user is None:
            raise CommandError(f"User {options['username']} does not exist")
        if not is_staff_member(user):
            raise CommandError(f"User {options['username']} is not mess staff")

        staff_token, token = StaffToken.create_token(options['label'], user, expires_days=options['days'])

        self.stdout.write(self.style.SUCCESS(f"Created token '{staff_token.label}' for {user.get_username()}"))
        if staff_token.expires_at:
            self.stdout.write(f"Expires: {staff_token.expires_at:%Y-%m-%d %H:%M}")
        # Only the hash is stored; this is the one chance to copy it
        self.stdout.write(token)
