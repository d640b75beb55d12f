"""
Database models for the hospice family portal.

An :class:`Agency` is the tenant.  Staff belong to an agency through
:class:`AgencyUser`; family members are linked to a single
:class:`Patient` through :class:`FamilyMember`.  Everything else
(visits, supply requests, deliveries, messages) hangs off a patient and
is therefore scoped to the patient's agency.
"""
from __future__ import annotations

import uuid

from django.contrib.auth.models import AbstractUser, UserManager
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
ROLE_FAMILY_ADMIN = 'family_admin'
ROLE_FAMILY_MEMBER = 'family_member'
ROLE_AGENCY_ADMIN = 'agency_admin'
ROLE_AGENCY_STAFF = 'agency_staff'
ROLE_SUPER_ADMIN = 'super_admin'

ROLE_CHOICES = [
    (ROLE_FAMILY_ADMIN, 'Family Administrator'),
    (ROLE_FAMILY_MEMBER, 'Family Member'),
    (ROLE_AGENCY_ADMIN, 'Agency Administrator'),
    (ROLE_AGENCY_STAFF, 'Agency Staff'),
    (ROLE_SUPER_ADMIN, 'Super Administrator'),
]

STAFF_ROLES = {ROLE_AGENCY_ADMIN, ROLE_AGENCY_STAFF, ROLE_SUPER_ADMIN}
FAMILY_ROLES = {ROLE_FAMILY_ADMIN, ROLE_FAMILY_MEMBER}


class Agency(models.Model):
    """A hospice agency (facility).  Every agency is a separate tenant."""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('suspended', 'Suspended'),
    ]
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    address = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    state = models.CharField(max_length=50, blank=True)
    zip_code = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='active', db_index=True)
    subscription_tier = models.CharField(max_length=32, default='standard')
    max_patients = models.PositiveIntegerField(default=100)
    max_staff = models.PositiveIntegerField(default=50)
    onboarding_completed = models.BooleanField(default=False)
    admin_user = models.ForeignKey(
        'User', null=True, blank=True, on_delete=models.SET_NULL, related_name='administered_agencies'
    )
    # Address of an invited admin who has not completed setup yet
    admin_email_pending = models.EmailField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'agencies'
        ordering = ['name']

    def __str__(self) -> str:
        return self.name


class PortalUserManager(UserManager):
    """Users log in with their email address, which doubles as username."""

    def create_user(self, username=None, email=None, password=None, **extra_fields):
        username = username or email
        return super().create_user(username, email=email, password=password, **extra_fields)


class User(AbstractUser):
    """Global identity with a portal role.

    ``agency`` is the user's primary tenant.  Staff additionally carry an
    :class:`AgencyUser` membership row; family users reach their agency
    through the patient they are linked to.
    """
    full_name = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_FAMILY_MEMBER, db_index=True)
    agency = models.ForeignKey(
        Agency, null=True, blank=True, on_delete=models.SET_NULL, related_name='users'
    )
    needs_password_setup = models.BooleanField(default=False)
    onboarding_completed = models.BooleanField(default=False)

    objects = PortalUserManager()

    @property
    def display_name(self) -> str:
        return self.full_name or self.get_full_name() or self.email or self.username

    @property
    def is_staff_role(self) -> bool:
        return self.role in STAFF_ROLES

    def __str__(self) -> str:
        return f"{self.email or self.username} ({self.role})"


class AgencyUser(models.Model):
    """Membership of a staff user in an agency."""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='memberships')
    agency = models.ForeignKey(Agency, on_delete=models.CASCADE, related_name='members')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_AGENCY_STAFF)
    job_role = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['user', 'agency'], name='uniq_agency_user'),
        ]

    def __str__(self) -> str:
        return f"{self.user} in {self.agency} as {self.role}"


class Patient(models.Model):
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('discharged', 'Discharged'),
        ('deceased', 'Deceased'),
        ('archived', 'Archived'),
        ('inactive', 'Inactive'),
    ]
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    agency = models.ForeignKey(Agency, on_delete=models.CASCADE, related_name='patients')
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    date_of_birth = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='active', db_index=True)
    admission_date = models.DateField(null=True, blank=True)
    discharge_date = models.DateField(null=True, blank=True)
    address = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    email = models.EmailField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['last_name', 'first_name']
        indexes = [models.Index(fields=['agency', 'status'])]

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self) -> str:
        return self.full_name


class FamilyMember(models.Model):
    """A family contact of a patient, invited into the portal."""
    STATUS_CHOICES = [
        ('invited', 'Invited'),
        ('active', 'Active'),
    ]
    ROLE_CHOICES = [
        (ROLE_FAMILY_ADMIN, 'Family Administrator'),
        (ROLE_FAMILY_MEMBER, 'Family Member'),
    ]
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='family_members')
    user = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='family_links')
    name = models.CharField(max_length=255)
    email = models.EmailField()
    phone = models.CharField(max_length=32, blank=True)
    relationship = models.CharField(max_length=64, blank=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_FAMILY_MEMBER)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='invited')
    invite_token = models.CharField(max_length=64, unique=True, null=True, blank=True)
    invite_expires_at = models.DateTimeField(null=True, blank=True)
    is_primary_contact = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['patient', 'email'], name='uniq_family_email_per_patient'),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.relationship}) for {self.patient_id}"


class Visit(models.Model):
    STATUS_CHOICES = [
        ('scheduled', 'Scheduled'),
        ('en_route', 'En route'),
        ('in_progress', 'In progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
        ('rescheduled', 'Rescheduled'),
    ]
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='visits')
    staff_name = models.CharField(max_length=255, blank=True)
    discipline = models.CharField(max_length=64, blank=True)
    scheduled_date = models.DateField()
    scheduled_time = models.TimeField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='scheduled', db_index=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['scheduled_date', 'scheduled_time']
        indexes = [models.Index(fields=['patient', 'scheduled_date'])]

    def __str__(self) -> str:
        return f"{self.discipline or 'visit'} {self.scheduled_date} ({self.status})"


class VisitFeedback(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey(Visit, on_delete=models.CASCADE, related_name='feedback')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='visit_feedback')
    submitted_by = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='visit_feedback')
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    comment = models.TextField(blank=True)
    flagged = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"feedback {self.rating}/5 on {self.visit_id}"


class SupplyItem(models.Model):
    """Catalog entry.  ``agency`` is null for platform-wide items."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    agency = models.ForeignKey(Agency, null=True, blank=True, on_delete=models.CASCADE, related_name='supply_items')
    key = models.SlugField(max_length=64)
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=100, blank=True)
    sizes = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['category', 'name']
        constraints = [
            models.UniqueConstraint(fields=['agency', 'key'], name='uniq_supply_item_key'),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.key})"


class SupplyRequest(models.Model):
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
        ('fulfilled', 'Fulfilled'),
        ('cancelled', 'Cancelled'),
    ]
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='supply_requests')
    requested_by = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='supply_requests')
    # {item_key: quantity}
    items = models.JSONField(default=dict)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='pending', db_index=True)
    notes = models.TextField(blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='approved_supply_requests'
    )
    fulfilled_at = models.DateTimeField(null=True, blank=True)
    fulfilled_by_name = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:
        return f"supply request {self.id} ({self.status})"


class Delivery(models.Model):
    STATUS_ORDERED = 'ordered'
    STATUS_DELIVERED = 'delivered'
    STATUS_CHOICES = [
        ('ordered', 'Ordered'),
        ('shipped', 'Shipped'),
        ('in_transit', 'In transit'),
        ('out_for_delivery', 'Out for delivery'),
        ('delivered', 'Delivered'),
        ('exception', 'Exception'),
    ]
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='deliveries')
    supply_request = models.ForeignKey(
        SupplyRequest, null=True, blank=True, on_delete=models.SET_NULL, related_name='deliveries'
    )
    item_name = models.CharField(max_length=1024)
    carrier = models.CharField(max_length=64, blank=True)
    tracking_number = models.CharField(max_length=64, blank=True, db_index=True)
    tracking_url = models.URLField(max_length=1024, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ORDERED, db_index=True)
    estimated_delivery = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    last_update = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'deliveries'
        ordering = ['-created_at']

    def __str__(self) -> str:
        return f"{self.item_name} [{self.status}]"


class Message(models.Model):
    """Direct, patient-scoped message between agency staff and family."""
    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('normal', 'Normal'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]
    STATUS_CHOICES = [
        ('sent', 'Sent'),
        ('delivered', 'Delivered'),
        ('read', 'Read'),
    ]
    SENDER_TYPE_CHOICES = [
        ('staff', 'Staff'),
        ('family', 'Family'),
    ]
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='messages')
    sender = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='sent_messages')
    recipient = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='received_messages'
    )
    sender_type = models.CharField(max_length=10, choices=SENDER_TYPE_CHOICES, default='staff')
    subject = models.CharField(max_length=255, blank=True)
    body = models.TextField()
    topic_tag = models.CharField(max_length=64, blank=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='normal')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='sent')
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    parent = models.ForeignKey('self', null=True, blank=True, on_delete=models.SET_NULL, related_name='replies')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [models.Index(fields=['patient', 'created_at'])]

    def __str__(self) -> str:
        return f"msg {self.id} patient={self.patient_id}"


class MessageThread(models.Model):
    CATEGORY_INTERNAL = 'internal'
    CATEGORY_FAMILY = 'family'
    CATEGORY_CHOICES = [
        (CATEGORY_INTERNAL, 'Internal'),
        (CATEGORY_FAMILY, 'Family'),
    ]
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    agency = models.ForeignKey(Agency, on_delete=models.CASCADE, related_name='threads')
    patient = models.ForeignKey(Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='threads')
    category = models.CharField(max_length=10, choices=CATEGORY_CHOICES, default=CATEGORY_FAMILY)
    subject = models.CharField(max_length=255, blank=True)
    is_group = models.BooleanField(default=False)
    created_by = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='created_threads')
    archived_at = models.DateTimeField(null=True, blank=True)
    last_message_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['agency', 'category', 'last_message_at'])]

    def __str__(self) -> str:
        return f"thread {self.subject or self.id} ({self.category})"


class ThreadParticipant(models.Model):
    thread = models.ForeignKey(MessageThread, on_delete=models.CASCADE, related_name='participants')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='thread_participations')
    joined_at = models.DateTimeField(auto_now_add=True)
    last_read_at = models.DateTimeField(null=True, blank=True)
    is_admin = models.BooleanField(default=False)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['thread', 'user'], name='uniq_thread_participant'),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} in {self.thread_id}"


class ThreadMessage(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    thread = models.ForeignKey(MessageThread, on_delete=models.CASCADE, related_name='messages')
    sender = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='thread_messages')
    body = models.TextField()
    attachments = models.JSONField(default=list, blank=True)
    edited_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']
        indexes = [models.Index(fields=['thread', 'created_at'])]

    def __str__(self) -> str:
        return f"tmsg {self.id} thread={self.thread_id}"


class MessageReadReceipt(models.Model):
    message = models.ForeignKey(ThreadMessage, on_delete=models.CASCADE, related_name='receipts')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='read_receipts')
    read_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['message', 'user'], name='uniq_read_receipt'),
        ]


class TeamInvitation(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    agency = models.ForeignKey(Agency, on_delete=models.CASCADE, related_name='team_invitations')
    email = models.EmailField()
    full_name = models.CharField(max_length=255, blank=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_AGENCY_STAFF)
    job_role = models.CharField(max_length=100, blank=True)
    token = models.CharField(max_length=64, unique=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    expires_at = models.DateTimeField()
    invited_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='sent_invitations')
    invited_by_name = models.CharField(max_length=255, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [models.Index(fields=['agency', 'email', 'status'])]

    def __str__(self) -> str:
        return f"invite {self.email} -> {self.agency_id} ({self.status})"


class FacilityInvite(models.Model):
    """Invitation for the first administrator of a newly created agency."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    agency = models.ForeignKey(Agency, on_delete=models.CASCADE, related_name='facility_invites')
    email = models.EmailField()
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_AGENCY_ADMIN)
    token = models.UUIDField(default=uuid.uuid4, unique=True)
    expires_at = models.DateTimeField()
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    accepted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:
        return f"facility invite {self.email} -> {self.agency_id}"


class Notification(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, null=True, blank=True, on_delete=models.CASCADE, related_name='notifications')
    patient = models.ForeignKey(Patient, null=True, blank=True, on_delete=models.CASCADE, related_name='notifications')
    type = models.CharField(max_length=32, db_index=True)
    title = models.CharField(max_length=255)
    body = models.TextField(blank=True)
    is_read = models.BooleanField(default=False)
    reference_id = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [models.Index(fields=['user', 'is_read', 'created_at'])]

    def __str__(self) -> str:
        return f"{self.type}: {self.title}"


class OnboardingProgress(models.Model):
    """Admin onboarding checklist for an agency."""
    agency = models.OneToOneField(Agency, on_delete=models.CASCADE, related_name='onboarding_progress')
    steps_completed = models.JSONField(default=list, blank=True)
    current_step = models.PositiveSmallIntegerField(default=1)
    completed = models.BooleanField(default=False)
    completed_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"onboarding {self.agency_id}: step {self.current_step}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    agency = models.ForeignKey(Agency, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_events')
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.CharField(max_length=64, blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['object_type', 'object_id', 'created_at']),
        ]

    def __str__(self):
        return f"{self.action}:{self.user_id}@{self.created_at:%F %T}"
