from datetime import datetime

from django.utils import timezone


class Clock:
    """Single source of "now" in the mess's civil timezone"""

    def now(self):
        return timezone.localtime(timezone.now())

    def today(self):
        return self.now().date()

    def combine(self, on_date, time_of_day):
        """Aware instant for a civil date and time-of-day"""
        return timezone.make_aware(datetime.combine(on_date, time_of_day))


class FrozenClock(Clock):
    """Settable clock for tests and replays"""

    def __init__(self, at):
        if timezone.is_naive(at):
            at = timezone.make_aware(at)
        self._at = at

    def now(self):
        return timezone.localtime(self._at)

    def set(self, at):
        if timezone.is_naive(at):
            at = timezone.make_aware(at)
        self._at = at

    def advance(self, **kwargs):
        self._at = self._at + timezone.timedelta(**kwargs)


default_clock = Clock()
