"""
Notification email templates.

Each builder returns an ``EmailMessageSpec`` with subject and HTML body;
the plain-text part is derived by stripping tags.
"""
import html
import re
from dataclasses import dataclass
from typing import Optional

from quotereview.core.config import settings

_BUTTON_STYLE = (
    "background-color: #2563eb; color: white; padding: 12px 24px; "
    "text-decoration: none; border-radius: 5px; display: inline-block;"
)


@dataclass(frozen=True)
class EmailMessageSpec:
    subject: str
    html: str

    @property
    def text(self) -> str:
        return html.unescape(re.sub(r"<[^>]*>", "", self.html)).strip()


def _wrap(title: str, body: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: #2563eb;">{title}</h2>'
        "<p>Hello,</p>"
        f"{body}"
        "</div>"
    )


def _button(link: str, label: str) -> str:
    return (
        '<p style="margin: 30px 0;">'
        f'<a href="{html.escape(link, quote=True)}" style="{_BUTTON_STYLE}">{label}</a>'
        "</p>"
    )


def _copy_link(link: str) -> str:
    return (
        "<p>Or copy and paste this link into your browser:</p>"
        f'<p style="color: #666; font-size: 12px; word-break: break-all;">{html.escape(link)}</p>'
    )


def quotation_link(quotation_id: int) -> str:
    return f"{settings.FRONTEND_URL}/quotation/{quotation_id}"


def new_quotation_version(title: str, version: str, quotation_id: int) -> EmailMessageSpec:
    body = (
        f"<p>A new version ({html.escape(version)}) of the quotation "
        f"<strong>\"{html.escape(title)}\"</strong> has been uploaded.</p>"
        + _button(quotation_link(quotation_id), "Review Quotation")
    )
    return EmailMessageSpec(
        subject=f"New Version Uploaded: {title}",
        html=_wrap("New Quotation Version", body),
    )


def quotation_status_change(
    title: str, status: str, comments: Optional[str], quotation_id: int
) -> EmailMessageSpec:
    body = (
        f"<p>The status of your quotation <strong>\"{html.escape(title)}\"</strong> "
        f"has been updated to <strong>{html.escape(status)}</strong>.</p>"
    )
    if comments:
        body += (
            "<p><strong>Comments:</strong></p>"
            '<p style="background-color: #f3f4f6; padding: 15px; border-radius: 5px;">'
            f"{html.escape(comments)}</p>"
        )
    body += _button(quotation_link(quotation_id), "View Quotation")
    return EmailMessageSpec(
        subject=f"Quotation Status Updated: {status}",
        html=_wrap("Quotation Status Update", body),
    )


def supplier_invitation(buyer_name: str, invitation_link: str) -> EmailMessageSpec:
    body = (
        f"<p><strong>{html.escape(buyer_name)}</strong> has invited you to join as a supplier "
        "on the Quotation Review System.</p>"
        "<p>Click the link below to complete your registration:</p>"
        + _button(invitation_link, "Complete Registration")
        + _copy_link(invitation_link)
        + '<p style="color: #999; font-size: 12px; margin-top: 30px;">'
        f"This invitation will expire in {settings.INVITATION_EXPIRE_DAYS} days.</p>"
    )
    return EmailMessageSpec(
        subject="Invitation to Join Quotation Review System",
        html=_wrap("You've been invited!", body),
    )


def password_reset(reset_link: str) -> EmailMessageSpec:
    hours = settings.PASSWORD_RESET_EXPIRE_HOURS
    body = (
        "<p>You requested to reset your password. Click the link below to reset it:</p>"
        + _button(reset_link, "Reset Password")
        + _copy_link(reset_link)
        + '<p style="color: #999; font-size: 12px; margin-top: 30px;">'
        f"This link will expire in {hours} hour{'s' if hours != 1 else ''}. "
        "If you didn't request this, please ignore this email.</p>"
    )
    return EmailMessageSpec(subject="Password Reset Request", html=_wrap("Password Reset", body))


def email_verification(verification_link: str) -> EmailMessageSpec:
    body = (
        "<p>Please verify your email address by clicking the link below:</p>"
        + _button(verification_link, "Verify Email")
        + _copy_link(verification_link)
    )
    return EmailMessageSpec(subject="Verify Your Email Address", html=_wrap("Verify Your Email", body))
