# asc_core/common/management/commands/ensure_roles.py

from django.core.management.base import BaseCommand, CommandError

from asc_core.iam.capabilities import Role as RoleCode
from asc_core.iam.models import Role
from asc_core.tenants.models import Tenant


class Command(BaseCommand):
    help = "Ensure the standard role rows exist for every tenant (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--tenant", help="Only seed the tenant with this code.")

    def handle(self, *args, **options):
        tenants = Tenant.objects.all().order_by("code")
        if options.get("tenant"):
            tenants = tenants.filter(code=options["tenant"])
            if not tenants.exists():
                raise CommandError(f"Unknown tenant: {options['tenant']}")

        created = 0
        for tenant in tenants:
            for code in RoleCode.ALL:
                _, was_created = Role.objects.get_or_create(
                    tenant=tenant,
                    code=code,
                    defaults={"name": code.replace("_", " ").title(), "is_active": True},
                )
                created += 1 if was_created else 0

        self.stdout.write(self.style.SUCCESS(f"Roles ensured. Newly created: {created}"))
