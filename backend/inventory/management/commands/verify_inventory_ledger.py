"""
Replay the stock ledger and compare it with stored branch inventory.
"""
from django.core.management.base import BaseCommand, CommandError

from branches.models import Branch
from inventory.services import InventoryService


class Command(BaseCommand):
    help = "Verify that every branch inventory row matches a replay of its ledger"

    def add_arguments(self, parser):
        parser.add_argument(
            "--branch",
            type=int,
            help="Only verify the branch with this id",
        )

    def handle(self, *args, **options):
        branch = None
        if options.get("branch"):
            branch = Branch.objects.filter(pk=options["branch"]).first()
            if branch is None:
                raise CommandError(f"Branch {options['branch']} does not exist")

        results = InventoryService.verify_ledger(branch=branch)
        mismatches = [result for result in results if not result.is_consistent]

        for result in mismatches:
            self.stdout.write(
                self.style.ERROR(
                    f"branch={result.branch_id} ingredient={result.ingredient_id}: "
                    f"replayed {result.replayed_stock}, stored {result.current_stock}, "
                    f"chain breaks {result.chain_breaks}"
                )
            )

        if mismatches:
            raise CommandError(f"{len(mismatches)} of {len(results)} inventory rows do not match their ledger")

        self.stdout.write(self.style.SUCCESS(f"Verified {len(results)} inventory rows"))
