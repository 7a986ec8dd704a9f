"""
Management command to check the ledger against its invariants and caches.

Usage:
    python manage.py verify_ledger
    python manage.py verify_ledger --product TIRE-1 --product TIRE-2
    python manage.py verify_ledger --rebuild
"""

from django.core.management.base import BaseCommand, CommandError

from kardex import kardex


class Command(BaseCommand):
    """Verify ledger command."""

    help = 'Replays the ledger and reports inconsistencies'

    def add_arguments(self, parser):
        parser.add_argument(
            '--product',
            action='append',
            dest='products',
            help='Restrict the check to this product (repeatable)'
        )
        parser.add_argument(
            '--rebuild',
            action='store_true',
            help='Regenerate cached balances from the ledger before checking'
        )

    def handle(self, *args, **options):
        products = options['products']

        if options['rebuild']:
            count = kardex.rebuild(products)
            self.stdout.write(f'{count} product(s) rebuilt')

        findings = kardex.audit(products)
        for finding in findings:
            self.stderr.write(str(finding))

        if findings:
            raise CommandError(f'{len(findings)} inconsistency(ies) found')

        self.stdout.write(self.style.SUCCESS('Ledger is consistent'))
