# =============================================================================
# Contact Tickets — Contact Form, Admin Replies & Inbound Email Threading
# =============================================================================
#
# FLOW:
#   1. A visitor submits the contact form → ContactSubmission (status new)
#   2. An admin replies → TicketMessage(sender_type="admin") and an email
#      whose subject ends with "[#<ticket uuid>]"
#   3. The requester answers by email. The mail provider's inbound-parse
#      webhook posts it here; the ticket id is read back out of the subject,
#      quoted history and signatures are cut, and the rest is stored as
#      TicketMessage(sender_type="user"). A resolved ticket reopens to
#      in_progress.
#
# Inbound mail that cannot be matched is ignored, not rejected; the webhook
# always answers 200 so the provider does not retry.
# =============================================================================

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from trustcenter.db.models import (
    AdminUser,
    ContactSubmission,
    TicketMessage,
    TicketStatus,
)
from trustcenter.errors import InvalidInputError, NotFoundError, TrustCenterError
from trustcenter.logging_config import mask_email
from trustcenter.services.email import send_email

logger = logging.getLogger(__name__)

SENDER_ADMIN = "admin"
SENDER_USER = "user"

TICKET_ID_PATTERN = re.compile(r"\[#([a-f0-9-]{36})\]", re.IGNORECASE)
SENDER_PATTERN = re.compile(r'^"?([^"<]+)"?\s*<(.+)>$')

# A line matching any of these starts quoted history or a signature
_CUT_MARKERS = [
    re.compile(r"^>"),
    re.compile(r"^On .+ wrote:$", re.IGNORECASE),
    re.compile(r"^-{3,}"),
    re.compile(r"^_{3,}"),
    re.compile(r"^--\s*$"),
    re.compile(r"^Sent from my", re.IGNORECASE),
    re.compile(r"^Get Outlook", re.IGNORECASE),
]


# ---------------------------------------------------------------------------
# Email parsing (pure)
# ---------------------------------------------------------------------------


def extract_ticket_id(subject: str | None) -> str | None:
    """`Re: Question [#<uuid>]` → `<uuid>` (lower-cased)."""
    if not subject:
        return None
    match = TICKET_ID_PATTERN.search(subject)
    return match.group(1).lower() if match else None


def parse_sender(raw: str) -> tuple[str | None, str]:
    """`"Jane Doe" <jane@acme.io>` → ("Jane Doe", "jane@acme.io")."""
    match = SENDER_PATTERN.match(raw.strip())
    if match is None:
        return None, raw.strip()
    return match.group(1).strip(), match.group(2).strip()


def html_to_text(body: str) -> str:
    text = re.sub(r"<style[^>]*>.*?</style>", "", body, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<script[^>]*>.*?</script>", "", text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<[^>]+>", "\n", text)
    text = html.unescape(text).replace("\xa0", " ")
    return re.sub(r"\n\s*\n", "\n\n", text).strip()


def extract_message_body(text: str | None, html_body: str | None = None) -> str:
    """
    The new part of a reply: plain text (or text recovered from HTML),
    truncated at the first quote or signature marker.
    """
    message = text or ""
    if not message and html_body:
        message = html_to_text(html_body)

    kept = []
    for line in message.split("\n"):
        if any(marker.match(line) for marker in _CUT_MARKERS):
            break
        kept.append(line)
    return "\n".join(kept).strip()


def reply_subject(ticket: ContactSubmission) -> str:
    return f"Re: {ticket.subject} [#{ticket.id}]"


# ---------------------------------------------------------------------------
# Contact form
# ---------------------------------------------------------------------------


async def submit_contact_form(
    session: AsyncSession,
    *,
    name: str | None,
    email: str | None,
    subject: str | None,
    message: str | None,
    organization: str | None = None,
) -> ContactSubmission:
    """Raises InvalidInputError unless name, email, subject and message are all set."""
    if not all(v and v.strip() for v in (name, email, subject, message)):
        raise InvalidInputError("Name, email, subject, and message are required")
    if "@" not in email:
        raise InvalidInputError("Invalid email address")

    ticket = ContactSubmission(
        name=name.strip(),
        email=email.strip(),
        organization=(organization or "").strip() or None,
        subject=subject.strip(),
        message=message.strip(),
        status=TicketStatus.NEW,
    )
    session.add(ticket)
    await session.flush()
    logger.info("Contact ticket %s opened by %s", ticket.id, mask_email(ticket.email))
    return ticket


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


async def list_tickets(
    session: AsyncSession, status: TicketStatus | None = None
) -> list[ContactSubmission]:
    stmt = select(ContactSubmission).order_by(
        ContactSubmission.created_at.desc(), ContactSubmission.id
    )
    if status is not None:
        stmt = stmt.where(ContactSubmission.status == status)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_ticket(
    session: AsyncSession, ticket_id: str, with_messages: bool = False
) -> ContactSubmission:
    options = [selectinload(ContactSubmission.messages)] if with_messages else []
    ticket = await session.get(ContactSubmission, ticket_id.lower(), options=options)
    if ticket is None:
        raise NotFoundError("Ticket not found")
    return ticket


@dataclass
class ReplyResult:
    message: TicketMessage
    email_sent: bool
    email_error: str | None = None


def render_reply_email(ticket: ContactSubmission, body: str, admin_name: str) -> str:
    paragraphs = "".join(
        f"<p>{html.escape(p)}</p>" for p in body.split("\n\n") if p.strip()
    )
    return f"""<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <p>Hello {html.escape(ticket.name)},</p>
  {paragraphs}
  <p>{html.escape(admin_name)}</p>
  <p style="color:#666;font-size:13px;">
    Reply to this email to continue the conversation. Keep the reference
    [#{ticket.id}] in the subject line.
  </p>
</body>
</html>"""


async def reply_to_ticket(
    session: AsyncSession, ticket_id: str, admin: AdminUser, body: str
) -> ReplyResult:
    """
    Store an admin reply and email it to the requester.

    The message is kept even when delivery fails; the result says so.
    """
    ticket = await get_ticket(session, ticket_id)
    admin_name = admin.full_name or admin.email
    message = TicketMessage(
        ticket_id=ticket.id,
        sender_type=SENDER_ADMIN,
        sender_id=admin.id,
        sender_name=admin_name,
        message=body.strip(),
    )
    session.add(message)
    if ticket.status == TicketStatus.NEW:
        ticket.status = TicketStatus.IN_PROGRESS
    await session.flush()

    try:
        await send_email(
            to=ticket.email,
            subject=reply_subject(ticket),
            html=render_reply_email(ticket, message.message, admin_name),
        )
    except TrustCenterError as e:
        logger.warning("Reply on ticket %s not emailed: %s", ticket.id, e.message)
        return ReplyResult(message=message, email_sent=False, email_error=e.message)
    return ReplyResult(message=message, email_sent=True)


# ---------------------------------------------------------------------------
# Inbound email
# ---------------------------------------------------------------------------


@dataclass
class InboundOutcome:
    """What happened to one inbound email. `message` is set when it was stored."""

    note: str
    ticket_id: str | None = None
    message: TicketMessage | None = None


async def record_inbound_reply(
    session: AsyncSession,
    *,
    sender: str,
    subject: str,
    text: str | None,
    html_body: str | None,
) -> InboundOutcome:
    ticket_id = extract_ticket_id(subject)
    if ticket_id is None:
        logger.info("Inbound email without ticket reference ignored")
        return InboundOutcome("No ticket ID found, email ignored")

    ticket = await session.get(ContactSubmission, ticket_id)
    if ticket is None:
        logger.info("Inbound email for unknown ticket %s ignored", ticket_id)
        return InboundOutcome("Ticket not found, email ignored", ticket_id=ticket_id)

    body = extract_message_body(text, html_body)
    if not body:
        return InboundOutcome("Empty message, email ignored", ticket_id=ticket_id)

    sender_name, sender_email = parse_sender(sender)
    message = TicketMessage(
        ticket_id=ticket.id,
        sender_type=SENDER_USER,
        sender_id=None,
        sender_name=sender_name or ticket.name,
        message=body,
    )
    session.add(message)
    if ticket.status == TicketStatus.RESOLVED:
        ticket.status = TicketStatus.IN_PROGRESS
        logger.info("Ticket %s reopened by requester reply", ticket.id)
    await session.flush()

    logger.info("Reply from %s stored on ticket %s", mask_email(sender_email), ticket.id)
    return InboundOutcome("Message recorded", ticket_id=ticket.id, message=message)
