from celery import chain
from django.core.management.base import BaseCommand

from lending.tasks import ingest_customers_from_excel, ingest_loans_from_excel


class Command(BaseCommand):
    help = "Import an existing loan book (customers, then loans) from Excel files in DATA_DIR."

    def add_arguments(self, parser):
        parser.add_argument("--customers-file", default="customer_data.xlsx")
        parser.add_argument("--loans-file", default="loan_data.xlsx")
        parser.add_argument(
            "--sync",
            action="store_true",
            help="Run the import in this process instead of enqueueing it on the Celery broker.",
        )

    def handle(self, *args, **options):
        if options["sync"]:
            customers = ingest_customers_from_excel(options["customers_file"])
            loans = ingest_loans_from_excel(options["loans_file"])
            self.stdout.write(
                self.style.SUCCESS(
                    f"Imported customers created={customers['created']} skipped={customers['skipped']}; "
                    f"loans created={loans['created']} skipped={loans['skipped']}"
                )
            )
            return

        workflow = chain(
            ingest_customers_from_excel.si(options["customers_file"]),
            ingest_loans_from_excel.si(options["loans_file"]),
        )
        result = workflow.apply_async()
        self.stdout.write(self.style.SUCCESS(f"Enqueued ingestion chain: {result.id}"))
