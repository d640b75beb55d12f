from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from portal.models import (
    Agency,
    AgencyUser,
    FamilyMember,
    Patient,
    ROLE_AGENCY_ADMIN,
    ROLE_AGENCY_STAFF,
    ROLE_FAMILY_ADMIN,
    ROLE_FAMILY_MEMBER,
    ROLE_SUPER_ADMIN,
)

User = get_user_model()

DEMO_AGENCY = "Demo Hospice"
DEMO_SET = [
    ("super@demo.test", ROLE_SUPER_ADMIN),
    ("admin@demo.test", ROLE_AGENCY_ADMIN),
    ("staff@demo.test", ROLE_AGENCY_STAFF),
    ("family.admin@demo.test", ROLE_FAMILY_ADMIN),
    ("family@demo.test", ROLE_FAMILY_MEMBER),
]


class Command(BaseCommand):
    help = "Ensure a demo agency with one user per role exists (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--password", default="demo12345")

    @transaction.atomic
    def handle(self, *args, **opts):
        password = opts["password"]
        agency, _ = Agency.objects.get_or_create(
            name=DEMO_AGENCY, defaults={"email": "admin@demo.test", "onboarding_completed": True},
        )
        patient, _ = Patient.objects.get_or_create(
            agency=agency, first_name="Demo", last_name="Patient", defaults={"status": "active"},
        )

        for email, role in DEMO_SET:
            u, created = User.objects.get_or_create(
                username=email,
                defaults={"email": email, "role": role, "full_name": role.replace("_", " ").title()},
            )
            # reset password, role and tenant on every run
            u.set_password(password)
            u.role = role
            u.is_active = True
            u.needs_password_setup = False
            u.agency = None if role == ROLE_SUPER_ADMIN else agency
            u.is_staff = u.is_superuser = role == ROLE_SUPER_ADMIN
            u.save()

            if role in (ROLE_AGENCY_ADMIN, ROLE_AGENCY_STAFF):
                AgencyUser.objects.update_or_create(user=u, agency=agency, defaults={"role": role})
            elif role in (ROLE_FAMILY_ADMIN, ROLE_FAMILY_MEMBER):
                FamilyMember.objects.update_or_create(
                    patient=patient, email=email,
                    defaults={"user": u, "name": u.full_name, "role": role, "status": "active"},
                )
            self.stdout.write(self.style.SUCCESS(f"{'created' if created else 'ok'}: {email} ({role})"))
        self.stdout.write(self.style.SUCCESS("All demo users ensured."))
