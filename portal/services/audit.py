from typing import Optional, Any, Dict

from django.contrib.auth import get_user_model

from portal.models import AuditEvent

User = get_user_model()


def log_action(*, user: Optional[User], action: str, object_type: Optional[str]=None, object_id: Any=None,
               detail: Optional[Dict[str, Any]]=None, agency_id=None) -> AuditEvent:
    if agency_id is None and getattr(user, 'agency_id', None):
        agency_id = user.agency_id
    return AuditEvent.objects.create(
        user=user if isinstance(user, User) and user.pk else None,
        agency_id=agency_id,
        action=action,
        object_type=object_type,
        object_id=str(object_id) if object_id is not None else None,
        detail=detail or {},
    )


def list_events(user, *, action: Optional[str]=None, page: int=1, page_size: int=50):
    qs = AuditEvent.objects.select_related('user')
    if getattr(user, 'role', '') != 'super_admin':
        qs = qs.filter(agency_id=getattr(user, 'agency_id', None))
    if action:
        qs = qs.filter(action=action)
    total = qs.count()
    page = max(1, int(page or 1))
    page_size = min(200, max(1, int(page_size or 50)))
    start = (page-1)*page_size
    items = [{
        'id': e.id,
        'action': e.action,
        'objectType': e.object_type,
        'objectId': e.object_id,
        'detail': e.detail,
        'userId': e.user_id,
        'userName': e.user.display_name if e.user else None,
        'createdAt': e.created_at.isoformat(),
    } for e in qs[start:start+page_size]]
    return items, total
