"""
Email messages produced by moderation and scheduled jobs.

Composition is pure: every function returns an OutboundEmail and never sends.
Names shown to readers always go through the records' display properties so
anonymous submissions never leak the real name.
"""

from dataclasses import dataclass, field
from html import escape

from ..models import Prayer, PrayerStatus, PrayerUpdate

ADMIN_ALERT_SUBJECTS = {
    "prayer": "New Prayer Request",
    "update": "New Prayer Update",
    "deletion_request": "Deletion Request",
    "status_change_request": "Status Change Request",
    "update_deletion_request": "Update Deletion Request",
}


@dataclass
class OutboundEmail:
    """A fully rendered email waiting for dispatch."""
    recipients: list[str]
    subject: str
    text_body: str
    html_body: str | None = None
    reply_to: str | None = None
    tags: dict[str, str] = field(default_factory=dict)


# =============================================================================
# HTML LAYOUT
# =============================================================================


def _render_html(heading: str, accent: str, body: str, footer: str, app_url: str | None) -> str:
    button = ""
    if app_url:
        button = f"""
        <div style="margin-top: 30px; text-align: center;">
            <a href="{escape(app_url, quote=True)}" style="background: {accent}; color: white; padding: 12px 24px;
               text-decoration: none; border-radius: 6px; display: inline-block; font-weight: 600;">View Prayers</a>
        </div>"""

    return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
             line-height: 1.6; color: #374151; max-width: 600px; margin: 0 auto; padding: 20px;">

    <div style="background-color: {accent}; color: white; padding: 16px; border-radius: 8px 8px 0 0;">
        <h1 style="margin: 0; font-size: 20px;">{escape(heading)}</h1>
    </div>

    <div style="border: 1px solid #E5E7EB; border-top: none; padding: 24px; border-radius: 0 0 8px 8px;">
        {body}
        {button}
    </div>

    <p style="margin-top: 20px; text-align: center; color: #6B7280; font-size: 14px;">{escape(footer)}</p>
</body>
</html>
"""


def _quote_block(text: str, accent: str) -> str:
    return (
        f'<p style="background: #F9FAFB; padding: 15px; border-radius: 6px; '
        f'border-left: 4px solid {accent};">{escape(text)}</p>'
    )


GREEN = "#059669"
BLUE = "#3B82F6"
RED = "#DC2626"
AMBER = "#F59E0B"


# =============================================================================
# ADMIN ALERTS (new items awaiting moderation)
# =============================================================================


def compose_admin_alert(
    kind: str,
    prayer_title: str,
    summary_lines: list[str],
    recipients: list[str],
    app_url: str | None = None,
) -> OutboundEmail:
    """Tell moderators that a new item is waiting in the queue."""
    label = ADMIN_ALERT_SUBJECTS.get(kind, "New Admin Action Required")
    subject = f"{label}: {prayer_title}"

    text_body = "\n".join(
        ["A new item is awaiting review.", "", f"Prayer: {prayer_title}", *summary_lines]
    )
    details = "".join(f'<p style="margin: 5px 0;">{escape(line)}</p>' for line in summary_lines)
    html_body = _render_html(
        heading=label,
        accent=AMBER,
        body=f'<h2 style="margin-top: 0;">{escape(prayer_title)}</h2>{details}',
        footer="Please review this item in the admin portal.",
        app_url=app_url,
    )
    return OutboundEmail(
        recipients=recipients,
        subject=subject,
        text_body=text_body,
        html_body=html_body,
        tags={"type": "admin_alert", "kind": kind},
    )


# =============================================================================
# APPROVALS
# =============================================================================


def compose_prayer_broadcast(
    prayer: Prayer,
    recipients: list[str],
    app_url: str | None = None,
) -> OutboundEmail:
    """Announce a newly approved prayer to every active subscriber."""
    requester = prayer.display_requester
    subject = f"New Prayer Request: {prayer.title}"
    text_body = (
        "A new prayer request has been approved and is now live.\n\n"
        f"Title: {prayer.title}\n"
        f"For: {prayer.prayer_for}\n"
        f"Requested by: {requester}\n\n"
        f"Description: {prayer.description}"
    )
    html_body = _render_html(
        heading="New Prayer Request",
        accent=GREEN,
        body=(
            f'<h2 style="margin-top: 0;">{escape(prayer.title)}</h2>'
            f'<p style="margin: 5px 0;"><strong>For:</strong> {escape(prayer.prayer_for)}</p>'
            f'<p style="margin: 5px 0;"><strong>Requested by:</strong> {escape(requester)}</p>'
            f'<p style="margin: 5px 0;"><strong>Status:</strong> {escape(prayer.status.value)}</p>'
            f"{_quote_block(prayer.description, GREEN)}"
        ),
        footer="This prayer has been approved and is now active. Join us in prayer!",
        app_url=app_url,
    )
    return OutboundEmail(
        recipients=recipients,
        subject=subject,
        text_body=text_body,
        html_body=html_body,
        tags={"type": "prayer_approved"},
    )


def compose_requester_confirmation(prayer: Prayer, app_url: str | None = None) -> OutboundEmail | None:
    """Personal note to the requester that their prayer is live."""
    if not prayer.email:
        return None

    greeting = prayer.display_requester
    subject = f"Your Prayer Request Has Been Approved: {prayer.title}"
    text_body = (
        f"Hi {greeting},\n\n"
        f'Your prayer request "{prayer.title}" has been approved and is now visible '
        "to the prayer team.\n\n"
        "You will receive occasional reminders to share how things are going."
    )
    html_body = _render_html(
        heading="Prayer Request Approved",
        accent=GREEN,
        body=(
            f"<p>Hi {escape(greeting)},</p>"
            f'<p>Your prayer request <strong>{escape(prayer.title)}</strong> has been '
            "approved and is now visible to the prayer team.</p>"
        ),
        footer="Thank you for sharing your request with us.",
        app_url=app_url,
    )
    return OutboundEmail(
        recipients=[prayer.email],
        subject=subject,
        text_body=text_body,
        html_body=html_body,
        tags={"type": "requester_confirmation"},
    )


def compose_update_broadcast(
    prayer: Prayer,
    prayer_update: PrayerUpdate,
    recipients: list[str],
    app_url: str | None = None,
) -> OutboundEmail:
    """Announce a newly approved update to every active subscriber."""
    author = prayer_update.display_author
    if prayer_update.mark_as_answered:
        subject = f"Prayer Answered: {prayer.title}"
        lead = "A prayer has been marked as answered."
    else:
        subject = f"Prayer Update: {prayer.title}"
        lead = "A new update has been posted for a prayer."

    text_body = (
        f"{lead}\n\n"
        f"Prayer: {prayer.title}\n"
        f"Update by: {author}\n\n"
        f"Content: {prayer_update.content}"
    )
    html_body = _render_html(
        heading="Prayer Answered" if prayer_update.mark_as_answered else "Prayer Update",
        accent=GREEN,
        body=(
            f'<h2 style="margin-top: 0;">Update for: {escape(prayer.title)}</h2>'
            f'<p style="margin: 5px 0 15px 0;"><strong>Posted by:</strong> {escape(author)}</p>'
            f"{_quote_block(prayer_update.content, GREEN)}"
        ),
        footer="A new update has been added to this prayer request.",
        app_url=app_url,
    )
    return OutboundEmail(
        recipients=recipients,
        subject=subject,
        text_body=text_body,
        html_body=html_body,
        tags={"type": "update_approved"},
    )


REQUEST_RESULT_LABELS = {
    "deletion_request": "Deletion Request",
    "status_change_request": "Status Change Request",
    "update_deletion_request": "Update Deletion Request",
}


def compose_request_result(
    kind: str,
    email: str | None,
    requested_by: str,
    prayer_title: str,
    approved: bool,
    detail: str | None = None,
    app_url: str | None = None,
) -> OutboundEmail | None:
    """Tell whoever filed a deletion or status-change request how it was resolved."""
    if not email:
        return None

    label = REQUEST_RESULT_LABELS.get(kind, "Request")
    outcome = "Approved" if approved else "Not Approved"
    subject = f"{label} {outcome}: {prayer_title}"

    lines = [
        f"Hi {requested_by},",
        "",
        f'Your {label.lower()} for "{prayer_title}" was {outcome.lower()}.',
    ]
    if detail:
        lines += ["", detail]
    text_body = "\n".join(lines)

    detail_html = _quote_block(detail, GREEN if approved else RED) if detail else ""
    html_body = _render_html(
        heading=f"{label} {outcome}",
        accent=GREEN if approved else RED,
        body=(
            f"<p>Hi {escape(requested_by)},</p>"
            f"<p>Your {escape(label.lower())} for <strong>{escape(prayer_title)}</strong> "
            f"was {escape(outcome.lower())}.</p>{detail_html}"
        ),
        footer="If you have questions, please contact the administrator.",
        app_url=app_url,
    )
    return OutboundEmail(
        recipients=[email],
        subject=subject,
        text_body=text_body,
        html_body=html_body,
        tags={"type": "request_result", "kind": kind},
    )


# =============================================================================
# DENIALS
# =============================================================================


def compose_prayer_denial(prayer: Prayer, reason: str) -> OutboundEmail | None:
    if not prayer.email:
        return None

    subject = f"Prayer Request Not Approved: {prayer.title}"
    text_body = (
        "Unfortunately, your prayer request could not be approved at this time.\n\n"
        f"Title: {prayer.title}\n"
        f"Requested by: {prayer.display_requester}\n\n"
        f"Reason: {reason}\n\n"
        "If you have questions, please contact the administrator."
    )
    html_body = _render_html(
        heading="Prayer Request Status",
        accent=RED,
        body=(
            f'<h2 style="margin-top: 0;">{escape(prayer.title)}</h2>'
            "<p>Thank you for submitting your prayer request. After careful review, "
            "we are unable to approve this request at this time.</p>"
            f"<p><strong>Reason:</strong></p>{_quote_block(reason, RED)}"
        ),
        footer="If you have questions, please contact the administrator.",
        app_url=None,
    )
    return OutboundEmail(
        recipients=[prayer.email],
        subject=subject,
        text_body=text_body,
        html_body=html_body,
        tags={"type": "prayer_denied"},
    )


def compose_update_denial(prayer: Prayer, prayer_update: PrayerUpdate, reason: str) -> OutboundEmail | None:
    if not prayer_update.author_email:
        return None

    subject = f"Prayer Update Not Approved: {prayer.title}"
    text_body = (
        f'Unfortunately, your update for "{prayer.title}" could not be approved at this time.\n\n'
        f"Update by: {prayer_update.display_author}\n\n"
        f"Reason: {reason}\n\n"
        "If you have questions, please contact the administrator."
    )
    html_body = _render_html(
        heading="Prayer Update Status",
        accent=RED,
        body=(
            f'<h2 style="margin-top: 0;">{escape(prayer.title)}</h2>'
            "<p>We are unable to approve your update at this time.</p>"
            f"<p><strong>Reason:</strong></p>{_quote_block(reason, RED)}"
            f"<p><strong>Your Submission:</strong></p>{_quote_block(prayer_update.content, BLUE)}"
        ),
        footer="If you have questions, please contact the administrator.",
        app_url=None,
    )
    return OutboundEmail(
        recipients=[prayer_update.author_email],
        subject=subject,
        text_body=text_body,
        html_body=html_body,
        tags={"type": "update_denied"},
    )


# =============================================================================
# REMINDERS
# =============================================================================


def compose_reminder(
    prayer: Prayer,
    days_inactive: int,
    app_url: str | None = None,
) -> OutboundEmail:
    """Ask the requester for an update on a prayer that has gone quiet."""
    greeting = prayer.display_requester
    subject = f"How is your prayer going? {prayer.title}"
    text_body = (
        f"Hi {greeting},\n\n"
        f'It has been {days_inactive} days since there was any news on "{prayer.title}" '
        f"(praying for {prayer.prayer_for}).\n\n"
        "Please consider posting an update, or marking the prayer as answered."
    )
    if app_url:
        text_body += f"\n\n{app_url}"

    html_body = _render_html(
        heading="Prayer Update Reminder",
        accent=BLUE,
        body=(
            f"<p>Hi {escape(greeting)},</p>"
            f"<p>It has been {days_inactive} days since there was any news on "
            f"<strong>{escape(prayer.title)}</strong> (praying for {escape(prayer.prayer_for)}).</p>"
            "<p>Please consider posting an update, or marking the prayer as answered.</p>"
        ),
        footer="You are receiving this because you submitted this prayer request.",
        app_url=app_url,
    )
    return OutboundEmail(
        recipients=[prayer.email] if prayer.email else [],
        subject=subject,
        text_body=text_body,
        html_body=html_body,
        tags={"type": "prayer_reminder"},
    )


def status_label(status: PrayerStatus) -> str:
    return status.value.capitalize()
