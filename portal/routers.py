"""
URL mappings for the portal API.

Paths carry no trailing slash (``APPEND_SLASH`` is off).  Fixed segments
such as ``api/threads/recipients`` are listed before the ``<uuid>``
routes they would otherwise shadow.
"""
from django.urls import include, path

from .auth_views import auth_callback, jwt_logout_view, jwt_refresh_view, login_view, me_view
from .views import (
    dashboard,
    deliveries,
    facilities,
    health,
    messages,
    notifications,
    onboarding,
    patients,
    supplies,
    team,
    threads,
    visits,
    webhooks,
)


urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz),

    # Authentication
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view),
    path('api/auth/logout', jwt_logout_view),
    path('api/auth/me', me_view, name='me_view'),
    path('auth/callback', auth_callback, name='auth_callback'),

    # Patients & family
    path('api/patients', patients.patients),
    path('api/patients/<uuid:patient_id>', patients.patient_detail),
    path('api/patients/<uuid:patient_id>/family', patients.family_members),
    path('api/family-members/<uuid:member_id>', patients.family_member_detail),
    path('api/family-members/<uuid:member_id>/resend', patients.family_member_resend),

    # Visits
    path('api/visits', visits.visits),
    path('api/visits/<uuid:visit_id>', visits.visit_detail),
    path('api/visits/<uuid:visit_id>/feedback', visits.visit_feedback),

    # Deliveries & tracking
    path('api/deliveries', deliveries.deliveries),
    path('api/deliveries/<uuid:delivery_id>', deliveries.delivery_detail),
    path('api/tracking', deliveries.tracking_lookup),
    path('api/tracking/register', deliveries.tracking_register),

    # Supplies
    path('api/supplies/requests', supplies.supply_requests),
    path('api/supplies/requests/<uuid:request_id>', supplies.supply_request_detail),
    path('api/supplies/requests/<uuid:request_id>/delivery', supplies.supply_request_delivery),
    path('api/supplies/catalog', supplies.supply_catalog),

    # Webhooks
    path('api/webhooks/17track', webhooks.tracking_webhook),
    path('api/webhooks/notifications', webhooks.notifications_webhook),

    # Direct messages
    path('api/messages', messages.messages),
    path('api/messages/<uuid:message_id>', messages.message_detail),
    path('api/messages/<uuid:message_id>/read', messages.message_read),

    # Threads
    path('api/threads', threads.threads),
    path('api/threads/recipients', threads.thread_recipients),
    path('api/threads/<uuid:thread_id>', threads.thread_detail),
    path('api/threads/<uuid:thread_id>/messages', threads.thread_messages),
    path('api/threads/<uuid:thread_id>/read', threads.thread_read),
    path('api/threads/<uuid:thread_id>/archive', threads.thread_archive),
    path('api/threads/<uuid:thread_id>/unarchive', threads.thread_unarchive),
    path('api/threads/<uuid:thread_id>/participants', threads.thread_participants),

    # Notifications
    path('api/notifications', notifications.notifications),
    path('api/notifications/read-all', notifications.notifications_read_all),
    path('api/notifications/<uuid:notification_id>/read', notifications.notification_read),

    # Team
    path('api/team/members', team.team_members),
    path('api/team/members/<int:user_id>', team.team_member_detail),
    path('api/team/invitations', team.team_invitations),
    path('api/team/invitations/<uuid:invitation_id>/resend', team.team_invitation_resend),
    path('api/team/invitations/<uuid:invitation_id>/cancel', team.team_invitation_cancel),
    path('api/invitations/validate', team.invitation_validate),
    path('api/invitations/accept', team.invitation_accept),

    # Facility setup wizard & onboarding checklist
    path('api/facility-setup', onboarding.setup_state),
    path('api/facility-setup/password', onboarding.setup_password),
    path('api/facility-setup/facility', onboarding.setup_facility),
    path('api/facility-setup/staff', onboarding.setup_staff),
    path('api/facility-setup/complete', onboarding.setup_complete),
    path('api/onboarding/progress', onboarding.onboarding_progress),
    path('api/onboarding/progress/reset', onboarding.onboarding_reset),

    # Super admin
    path('api/facilities', facilities.facilities),
    path('api/facilities/<uuid:facility_id>', facilities.facility_detail),
    path('api/facilities/<uuid:facility_id>/stats', facilities.facility_stats),
    path('api/facilities/<uuid:facility_id>/staff', facilities.facility_staff),
    path('api/facilities/<uuid:facility_id>/staff/<int:user_id>', facilities.facility_staff_remove),
    path('api/facilities/<uuid:facility_id>/resend-invite', facilities.facility_resend_invite),

    # Dashboard & audit
    path('api/admin/dashboard', dashboard.admin_dashboard),
    path('api/audit-logs', dashboard.audit_logs),
]
