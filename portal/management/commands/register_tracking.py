from django.core.management.base import BaseCommand

from portal.services.tracking import register_all_tracking_numbers


class Command(BaseCommand):
    help = "Register every undelivered delivery's tracking number with 17track."

    def handle(self, *args, **options):
        results = register_all_tracking_numbers()
        for err in results['errors']:
            self.stdout.write(self.style.WARNING(err))
        self.stdout.write(self.style.SUCCESS(
            f"registered {results['registered']}, failed {results['failed']} of {results['total']}"
        ))
