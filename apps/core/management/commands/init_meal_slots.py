from django.core.management.base import BaseCommand

from apps.core.services.schedule import seed_default_slots


class Command(BaseCommand):
    help = 'Create the default meal slots when the schedule is empty'

    def handle(self, *args, **options):
        created = seed_default_slots()
        if not created:
            self.stdout.write(self.style.WARNING('Meal slots already exist, nothing to do.'))
            return

        for slot in created:
            self.stdout.write(f"  {slot} (cost {slot.per_meal_cost}, deadline {slot.confirmation_deadline_hours}h before)")
        self.stdout.write(self.style.SUCCESS(f"Created {len(created)} meal slots"))
