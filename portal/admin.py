"""
Django admin registrations for the portal models.

Superusers can inspect agencies, patients and their activity under
``/admin/``.  Configuration is kept minimal.
"""
from django.contrib import admin

from .models import (
    Agency,
    AgencyUser,
    AuditEvent,
    Delivery,
    FacilityInvite,
    FamilyMember,
    Message,
    MessageThread,
    Notification,
    OnboardingProgress,
    Patient,
    SupplyItem,
    SupplyRequest,
    TeamInvitation,
    ThreadMessage,
    ThreadParticipant,
    User,
    Visit,
    VisitFeedback,
)


@admin.register(Agency)
class AgencyAdmin(admin.ModelAdmin):
    list_display = ('name', 'status', 'subscription_tier', 'onboarding_completed', 'created_at')
    list_filter = ('status', 'onboarding_completed')
    search_fields = ('name', 'email')


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('email', 'full_name', 'role', 'agency', 'needs_password_setup', 'is_active')
    list_filter = ('role', 'agency')
    search_fields = ('email', 'username', 'full_name')


@admin.register(AgencyUser)
class AgencyUserAdmin(admin.ModelAdmin):
    list_display = ('user', 'agency', 'role', 'job_role')
    list_filter = ('agency', 'role')
    search_fields = ('user__email', 'agency__name')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('last_name', 'first_name', 'agency', 'status', 'admission_date')
    list_filter = ('agency', 'status')
    search_fields = ('first_name', 'last_name', 'email')


@admin.register(FamilyMember)
class FamilyMemberAdmin(admin.ModelAdmin):
    list_display = ('name', 'email', 'patient', 'role', 'status')
    list_filter = ('role', 'status')
    search_fields = ('name', 'email')


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    list_display = ('patient', 'discipline', 'staff_name', 'scheduled_date', 'status')
    list_filter = ('status', 'discipline')


@admin.register(VisitFeedback)
class VisitFeedbackAdmin(admin.ModelAdmin):
    list_display = ('visit', 'rating', 'flagged', 'created_at')
    list_filter = ('flagged',)


@admin.register(SupplyItem)
class SupplyItemAdmin(admin.ModelAdmin):
    list_display = ('key', 'name', 'category', 'agency', 'is_active')
    list_filter = ('category', 'is_active')
    search_fields = ('key', 'name')


@admin.register(SupplyRequest)
class SupplyRequestAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'status', 'created_at')
    list_filter = ('status',)


@admin.register(Delivery)
class DeliveryAdmin(admin.ModelAdmin):
    list_display = ('item_name', 'patient', 'carrier', 'tracking_number', 'status', 'last_update')
    list_filter = ('status', 'carrier')
    search_fields = ('tracking_number', 'item_name')


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ('patient', 'sender', 'recipient', 'subject', 'is_read', 'created_at')
    list_filter = ('sender_type', 'priority', 'is_read')


@admin.register(MessageThread)
class MessageThreadAdmin(admin.ModelAdmin):
    list_display = ('subject', 'agency', 'category', 'is_group', 'last_message_at', 'archived_at')
    list_filter = ('category', 'agency')


admin.site.register(ThreadParticipant)
admin.site.register(ThreadMessage)


@admin.register(TeamInvitation)
class TeamInvitationAdmin(admin.ModelAdmin):
    list_display = ('email', 'agency', 'role', 'status', 'expires_at')
    list_filter = ('status', 'role')
    search_fields = ('email',)


@admin.register(FacilityInvite)
class FacilityInviteAdmin(admin.ModelAdmin):
    list_display = ('email', 'agency', 'expires_at', 'accepted_at')
    search_fields = ('email',)


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('type', 'title', 'user', 'patient', 'is_read', 'created_at')
    list_filter = ('type', 'is_read')


admin.site.register(OnboardingProgress)


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'object_type', 'object_id', 'user', 'agency', 'created_at')
    list_filter = ('action', 'object_type')
    search_fields = ('object_id',)
