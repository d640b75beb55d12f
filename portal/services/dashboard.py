from __future__ import annotations

from django.utils import timezone

from portal.models import AgencyUser, Delivery, Patient, SupplyRequest, Visit
from portal.services.access import get_agency_id, is_super
from portal.services.messaging import unread_count

IN_TRANSIT = ('shipped', 'in_transit', 'out_for_delivery')


def agency_dashboard(user) -> dict:
    """Headline counts for the agency admin landing page."""
    agency_id = get_agency_id(user)
    if not agency_id and not is_super(user):
        raise ValueError('No agency found')

    patients = Patient.objects.all()
    if agency_id:
        patients = patients.filter(agency_id=agency_id)
    today = timezone.localdate()
    visits = Visit.objects.filter(patient__in=patients)
    members = AgencyUser.objects.filter(agency_id=agency_id) if agency_id else AgencyUser.objects.all()

    return {
        'activePatients': patients.filter(status='active').count(),
        'visitsToday': visits.filter(scheduled_date=today).exclude(status='cancelled').count(),
        'upcomingVisits': visits.filter(scheduled_date__gt=today, status='scheduled').count(),
        'pendingSupplyRequests': SupplyRequest.objects.filter(patient__in=patients, status='pending').count(),
        'deliveriesInTransit': Delivery.objects.filter(patient__in=patients, status__in=IN_TRANSIT).count(),
        'unreadMessages': unread_count(user, agency_id),
        'teamSize': members.count(),
    }
