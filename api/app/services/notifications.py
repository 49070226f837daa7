"""
Notification service: lifecycle emails delivered by Celery tasks.

The lifecycle engine never sends mail itself.  It returns PendingNotification
values describing what should be sent; routers call dispatch_notifications()
only after the database transaction has committed.  Dispatch and delivery
failures are logged and swallowed; a notification can never fail the
operation that triggered it.

Tasks:
  send_submission_notice   client submitted a month (to the bookkeeping inbox)
  send_completion_notice   bookkeeper marked a month finished (to the client)
  send_sign_in_link        magic sign-in link (to the user signing in)
"""

import logging
from dataclasses import dataclass, field
from typing import Literal

from app.core.config import settings
from app.models.monthly_package import MonthlyPackage, Statement
from app.models.user import User
from app.services import email
from app.worker import celery_app

logger = logging.getLogger(__name__)

MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

NoticeKind = Literal["submission", "completion", "sign_in"]


def month_name(month: int) -> str:
    return MONTHS[month - 1] if 1 <= month <= 12 else "Unknown"


@dataclass(frozen=True)
class PendingNotification:
    kind: NoticeKind
    payload: dict = field(default_factory=dict)


# ── Builders (called by the lifecycle engine) ─────────────────────────────────

def submission_notice(
    user: User, package: MonthlyPackage, statements: list[Statement]
) -> PendingNotification:
    return PendingNotification(
        kind="submission",
        payload={
            "client_name": user.name or "Unknown",
            "client_email": user.email,
            "company_name": user.company_name or "Unknown",
            "month": month_name(package.month),
            "year": package.year,
            "statements": [
                {
                    "institution_name": s.institution_name,
                    "account_last4": s.account_last4,
                    "institution_type": s.institution_type.value,
                    "file_name": s.file_name,
                }
                for s in statements
            ],
        },
    )


def completion_notice(user: User, package: MonthlyPackage) -> PendingNotification:
    return PendingNotification(
        kind="completion",
        payload={
            "client_name": user.name or "",
            "client_email": user.email,
            "company_name": user.company_name or "",
            "month": month_name(package.month),
            "year": package.year,
        },
    )


def sign_in_notice(email_address: str, link: str) -> PendingNotification:
    return PendingNotification(kind="sign_in", payload={"email": email_address, "link": link})


# ── Tasks ─────────────────────────────────────────────────────────────────────

@celery_app.task(name="app.services.notifications.send_submission_notice")
def send_submission_notice(
    client_name: str,
    client_email: str,
    company_name: str,
    month: str,
    year: int,
    statements: list[dict],
):
    """Tell the bookkeeping team a client's month is ready for categorization."""
    logger.info("Sending submission notice for %s: %s %s", company_name, month, year)
    subject, html = email.submission_email(
        client_name, client_email, company_name, month, year, statements
    )
    email.send_email(settings.notification_email, subject, html)


@celery_app.task(name="app.services.notifications.send_completion_notice")
def send_completion_notice(
    client_name: str,
    client_email: str,
    company_name: str,
    month: str,
    year: int,
):
    logger.info("Sending completion notice to %s: %s %s", client_email, month, year)
    subject, html = email.completion_email(client_name, company_name, month, year)
    email.send_email(client_email, subject, html)


@celery_app.task(name="app.services.notifications.send_sign_in_link")
def send_sign_in_link(email_address: str, link: str):
    subject, html = email.sign_in_email(link)
    email.send_email(email_address, subject, html)


# ── Dispatch ──────────────────────────────────────────────────────────────────

def _enqueue(notice: PendingNotification) -> None:
    if notice.kind == "submission":
        send_submission_notice.delay(**notice.payload)
    elif notice.kind == "completion":
        send_completion_notice.delay(**notice.payload)
    elif notice.kind == "sign_in":
        send_sign_in_link.delay(notice.payload["email"], notice.payload["link"])
    else:
        raise ValueError(f"Unknown notification kind: {notice.kind}")


def dispatch_notifications(pending: list[PendingNotification]) -> int:
    """Queue each notice after commit. Returns the number successfully queued."""
    queued = 0
    for notice in pending:
        try:
            _enqueue(notice)
            queued += 1
        except Exception:
            logger.exception("Failed to queue %s notification", notice.kind)
    return queued
