"""
Transactional email client (Resend HTTP API).

Mirrors the other outbound notification clients: every failure is logged and
swallowed so an email outage never breaks the workflow that triggered it.
"""

import logging
from html import escape

import requests

from app.core.config import settings

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


def send_email(to: str, subject: str, html: str) -> bool:
    """Send one email. Returns True on success, False on any error."""
    if not settings.email_enabled:
        return False
    if not to or not settings.resend_api_key:
        return False
    try:
        resp = requests.post(
            RESEND_URL,
            headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            json={"from": settings.email_from, "to": to, "subject": subject, "html": html},
            timeout=10,
        )
        if resp.status_code in (200, 201):
            return True
        logger.warning("Resend returned %d: %s", resp.status_code, resp.text[:200])
        return False
    except Exception as exc:
        logger.warning("Email send failed (to=%s): %s", to, exc)
        return False


# ── Templates ─────────────────────────────────────────────────────────────────

_CELL = 'style="padding:8px;border:1px solid #e5e7eb"'


def submission_email(
    client_name: str,
    client_email: str,
    company_name: str,
    month: str,
    year: int,
    statements: list[dict],
) -> tuple[str, str]:
    rows = "".join(
        f"<tr><td {_CELL}>{escape(s['institution_name'])}</td>"
        f"<td {_CELL}>••••{escape(s['account_last4'])}</td>"
        f"<td {_CELL}>{escape(s['institution_type'])}</td>"
        f"<td {_CELL}>{escape(s['file_name'])}</td></tr>"
        for s in statements
    )
    html = f"""
    <div style="font-family:sans-serif;max-width:600px;margin:0 auto">
      <h2 style="color:#991b1b">New Monthly Statements Submitted</h2>
      <p><strong>Client:</strong> {escape(client_name)} ({escape(client_email)})</p>
      <p><strong>Company:</strong> {escape(company_name)}</p>
      <p><strong>Period:</strong> {month} {year}</p>
      <p><strong>Statements ({len(statements)}):</strong></p>
      <table style="border-collapse:collapse;width:100%">
        <thead><tr style="background:#f3f4f6">
          <th {_CELL}>Institution</th><th {_CELL}>Acct #</th>
          <th {_CELL}>Type</th><th {_CELL}>File</th>
        </tr></thead>
        <tbody>{rows}</tbody>
      </table>
      <p style="margin-top:16px;color:#6b7280;font-size:14px">Log in to your dashboard to begin categorization.</p>
    </div>
    """
    subject = f"{company_name} — {month} {year} Statements Ready"
    return subject, html


def completion_email(
    client_name: str, company_name: str, month: str, year: int
) -> tuple[str, str]:
    html = f"""
    <div style="font-family:sans-serif;max-width:600px;margin:0 auto">
      <h2 style="color:#991b1b">Your Bookkeeping is Complete!</h2>
      <p>Hi {escape(client_name) or "there"},</p>
      <p>Your bookkeeping for <strong>{month} {year}</strong> has been completed by the MyBookkeepers.com team.</p>
      <p><strong>Company:</strong> {escape(company_name)}</p>
      <p><strong>Period:</strong> {month} {year}</p>
      <p style="margin-top:16px;color:#6b7280;font-size:14px">— The MyBookkeepers.com Team</p>
    </div>
    """
    subject = f"Your bookkeeping for {month} {year} is complete — {company_name}"
    return subject, html


def sign_in_email(link: str) -> tuple[str, str]:
    html = f"""
    <div style="font-family:sans-serif;max-width:600px;margin:0 auto">
      <h2 style="color:#991b1b">Sign in to MyBookkeepers.com</h2>
      <p><a href="{escape(link)}">Click here to sign in</a>. This link can be used once and expires in
      {settings.magic_link_expire_minutes} minutes.</p>
    </div>
    """
    return "Your MyBookkeepers.com sign-in link", html
