"""
Transactional email through the Brevo HTTP API.

Senders return ``True``/``False``; a failed email never fails the
operation that triggered it.
"""
from __future__ import annotations

import logging
from html import escape
from typing import Optional
from urllib.parse import urlencode

import requests
from django.conf import settings

from portal.models import ROLE_AGENCY_ADMIN, ROLE_FAMILY_ADMIN, ROLE_FAMILY_MEMBER

logger = logging.getLogger(__name__)


def send_email(to_email: str, subject: str, html: str, *, to_name: Optional[str] = None,
               text: Optional[str] = None) -> bool:
    if not settings.BREVO_API_KEY:
        logger.warning("BREVO_API_KEY not set, not sending '%s' to %s", subject, to_email)
        return False
    recipient = {'email': to_email}
    if to_name:
        recipient['name'] = to_name
    payload = {
        'sender': {'email': settings.BREVO_SENDER_EMAIL, 'name': settings.BREVO_SENDER_NAME},
        'to': [recipient],
        'subject': subject,
        'htmlContent': html,
    }
    if text:
        payload['textContent'] = text
    try:
        r = requests.post(
            settings.BREVO_API_URL,
            json=payload,
            headers={'api-key': settings.BREVO_API_KEY, 'accept': 'application/json'},
            timeout=settings.EMAIL_TIMEOUT,
        )
        r.raise_for_status()
    except requests.RequestException as e:
        logger.warning("email '%s' to %s failed: %s", subject, to_email, e)
        return False
    logger.info("email '%s' sent to %s", subject, to_email)
    return True


def _layout(title: str, body_html: str, cta_label: str, cta_url: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<body style="margin:0;padding:0;background:#f5f5f0;font-family:Arial,Helvetica,sans-serif;">
  <table width="100%" cellpadding="0" cellspacing="0" border="0">
    <tr><td align="center" style="padding:32px 16px;">
      <table width="560" cellpadding="0" cellspacing="0" border="0" style="background:#ffffff;border-radius:12px;">
        <tr><td style="background:#7A9B8E;padding:24px 32px;border-radius:12px 12px 0 0;">
          <h1 style="margin:0;color:#ffffff;font-size:22px;">{escape(title)}</h1>
        </td></tr>
        <tr><td style="padding:24px 32px;color:#333333;font-size:15px;line-height:1.5;">
          {body_html}
          <p style="margin:28px 0;text-align:center;">
            <a href="{escape(cta_url)}" style="background:#7A9B8E;color:#ffffff;padding:12px 28px;border-radius:24px;text-decoration:none;">{escape(cta_label)}</a>
          </p>
          <p style="font-size:12px;color:#888888;">If the button does not work, copy this link into your browser:<br>{escape(cta_url)}</p>
        </td></tr>
      </table>
    </td></tr>
  </table>
</body>
</html>"""


def invite_url(token: str, email: str) -> str:
    return f"{settings.SITE_URL}/accept-invite?{urlencode({'token': token, 'email': email})}"


def role_label(role: str) -> str:
    if role == ROLE_FAMILY_ADMIN:
        return 'Family Administrator'
    if role == ROLE_FAMILY_MEMBER:
        return 'Family Member'
    return 'Administrator' if role == ROLE_AGENCY_ADMIN else 'Staff Member'


def send_team_invitation(*, email: str, token: str, role: str, agency_name: str,
                         inviter_name: str, full_name: Optional[str] = None) -> bool:
    url = invite_url(token, email)
    greeting = f"Hi {escape(full_name)}," if full_name else "Hello,"
    body = (
        f"<p>{greeting}</p>"
        f"<p><strong>{escape(inviter_name)}</strong> has invited you to join "
        f"<strong>{escape(agency_name)}</strong> as a <strong>{role_label(role)}</strong>.</p>"
        f"<p>This invitation expires in {settings.INVITE_EXPIRY_DAYS} days.</p>"
    )
    subject = f"{inviter_name} invited you to join {agency_name}"
    text = f"{inviter_name} invited you to join {agency_name} as a {role_label(role)}. Accept: {url}"
    return send_email(email, subject, _layout('You have been invited', body, 'Accept Invitation', url),
                      to_name=full_name, text=text)


def send_facility_invite(*, email: str, agency_name: str, login_url: str) -> bool:
    body = (
        "<p>Hello,</p>"
        f"<p>A Family Portal account has been created for <strong>{escape(agency_name)}</strong> "
        "and you have been named its administrator.</p>"
        "<p>Use the link below to sign in, set your password and finish setting up your facility.</p>"
    )
    subject = f"Set up {agency_name} on Family Portal"
    return send_email(email, subject, _layout('Welcome to Family Portal', body, 'Set Up Facility', login_url),
                      text=f"Set up {agency_name}: {login_url}")


def send_family_invite(*, email: str, name: str, patient_name: str, agency_name: str, token: str) -> bool:
    url = invite_url(token, email)
    body = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>{escape(agency_name)} has invited you to follow the care of "
        f"<strong>{escape(patient_name)}</strong> on Family Portal.</p>"
    )
    return send_email(email, f"You're invited to {patient_name}'s care portal",
                      _layout('Family Portal Invitation', body, 'Join Family Portal', url), to_name=name)
