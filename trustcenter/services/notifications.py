# =============================================================================
# Notification Emails — Magic Link & Rejection
# =============================================================================
#
# Builds and sends the two requester-facing emails. All interpolated values
# are HTML-escaped.
#
#   send_magic_link_email()  approval/auto-approval; raises on failure so
#                            the caller can report `email_sent=false`
#   send_rejection_email()   denial; never raises (returns success flag)
# =============================================================================

from __future__ import annotations

import html
import logging
from dataclasses import dataclass

from trustcenter.config import settings
from trustcenter.errors import TrustCenterError
from trustcenter.logging_config import mask_email
from trustcenter.services.email import send_email

logger = logging.getLogger(__name__)

MAGIC_LINK_SUBJECT = "Your Document Request Has Been Approved"
REJECTION_SUBJECT = "Document Request Status Update"


@dataclass
class LinkedDocument:
    id: int
    title: str


def access_page_url(token: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}/access/{token}"


def download_url(token: str, document_id: int) -> str:
    return f"{settings.api_url.rstrip('/')}/api/access/{token}/download/{document_id}"


def render_magic_link_email(
    requester_name: str,
    token: str,
    documents: list[LinkedDocument],
    expiry_days: int,
) -> str:
    items = "\n".join(
        f'<li style="margin-bottom:8px;"><a href="{html.escape(download_url(token, d.id))}">'
        f"{html.escape(d.title)}</a></li>"
        for d in documents
    )
    return f"""<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <h2>Document Access Approved</h2>
  <p>Hello {html.escape(requester_name)},</p>
  <p>Your request for the following documents has been approved:</p>
  <ul>
{items}
  </ul>
  <p>
    <a href="{html.escape(access_page_url(token))}"
       style="background:#2563eb;color:#fff;padding:10px 18px;text-decoration:none;border-radius:4px;">
      View all documents
    </a>
  </p>
  <p style="color:#666;font-size:13px;">
    This link expires in {expiry_days} days. Do not forward it: anyone with the
    link can view these documents.
  </p>
</body>
</html>"""


def render_rejection_email(requester_name: str, reason: str | None) -> str:
    reason_block = (
        f"<p><strong>Reason:</strong> {html.escape(reason)}</p>" if reason else ""
    )
    return f"""<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <h2>Document Request Update</h2>
  <p>Hello {html.escape(requester_name)},</p>
  <p>Thank you for your interest. After review, we are unable to approve your
  document request at this time.</p>
  {reason_block}
  <p>If you have questions, please reply to this email.</p>
</body>
</html>"""


async def send_magic_link_email(
    to: str,
    requester_name: str,
    token: str,
    documents: list[LinkedDocument],
    expiry_days: int | None = None,
) -> None:
    """Raises InvalidInputError / EmailDeliveryError on failure."""
    body = render_magic_link_email(
        requester_name,
        token,
        documents,
        expiry_days if expiry_days is not None else settings.magic_link_ttl_days,
    )
    await send_email(to=to, subject=MAGIC_LINK_SUBJECT, html=body)


async def send_rejection_email(
    to: str, requester_name: str, reason: str | None = None
) -> bool:
    try:
        await send_email(
            to=to,
            subject=REJECTION_SUBJECT,
            html=render_rejection_email(requester_name, reason),
        )
    except TrustCenterError as e:
        logger.warning("Rejection email to %s not sent: %s", mask_email(to), e.message)
        return False
    return True
