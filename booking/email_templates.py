"""
HTML Email Templates
Plain inline-styled HTML; every interpolated value is escaped
"""

from html import escape
from typing import Optional

from .config import CONTACT_EMAIL, FRONTEND_URL

THEME = {
    "primary": "#14b8a6",
    "background": "#f5f5f5",
    "text_primary": "#333333",
    "text_muted": "#666666",
    "warning_bg": "#fff3cd",
    "warning": "#856404",
    "danger": "#ef4444",
}


def _e(value) -> str:
    return escape(str(value)) if value not in (None, "") else "&mdash;"


def _panel(title: str, rows: str, background: str = THEME["background"]) -> str:
    return f"""
    <div style="background-color: {background}; padding: 20px; border-radius: 8px; margin: 20px 0;">
      <h3 style="color: {THEME['text_primary']}; margin-top: 0;">{title}</h3>
      {rows}
    </div>"""


def get_base_template(heading: str, content_sections: str, heading_color: str = THEME["primary"]) -> str:
    """Base wrapper for all emails"""
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: {heading_color};">{heading}</h2>
  {content_sections}
  <hr style="border: none; border-top: 1px solid #ddd; margin: 30px 0;">
  <p style="font-size: 12px; color: {THEME['text_muted']};">
    This is an automated notification from the New Era Hockey registration system.
  </p>
</div>"""


def _player_rows(players: Optional[list[str]], player_age: Optional[str] = None) -> str:
    rows = "".join(f"<p><strong>Name:</strong> {_e(name)}</p>" for name in (players or []))
    if player_age:
        rows += f"<p><strong>Age:</strong> {_e(player_age)}</p>"
    return rows or "<p>&mdash;</p>"


def guardian_confirmation_template(
    event_summary: Optional[str] = None,
    guardian_first_name: Optional[str] = None,
    players: Optional[list[str]] = None,
    event_start: Optional[str] = None,
    amount_paid: Optional[float] = None,
    **_,
) -> str:
    player_names = ", ".join(players or []) or "your player"
    content = f"""
  <p style="font-size: 16px; line-height: 1.6;">Hi {_e(guardian_first_name)},</p>
  <p style="font-size: 16px; line-height: 1.6;">
    Thank you for registering {escape(player_names)} for <strong>{_e(event_summary)}</strong>!
    We're excited to have them join us on the ice.
  </p>"""
    details = ""
    if event_start:
        details += f"<p><strong>When:</strong> {_e(event_start)}</p>"
    if amount_paid is not None:
        details += f"<p><strong>Amount Paid:</strong> ${amount_paid:.2f}</p>"
    if details:
        content += _panel("Registration Details", details)
    content += f"""
  <p style="font-size: 14px;">
    Questions? Reply to this email or contact <a href="mailto:{escape(CONTACT_EMAIL)}">{escape(CONTACT_EMAIL)}</a>.
  </p>
  <p style="font-size: 14px;"><a href="{escape(FRONTEND_URL)}">{escape(FRONTEND_URL)}</a></p>"""
    return get_base_template("Registration Confirmed!", content)


def admin_registration_template(
    event_summary: Optional[str] = None,
    event_id: Optional[str] = None,
    event_type: Optional[str] = None,
    amount_paid: Optional[float] = None,
    players: Optional[list[str]] = None,
    player_age: Optional[str] = None,
    guardian_first_name: Optional[str] = None,
    guardian_last_name: Optional[str] = None,
    guardian_email: Optional[str] = None,
    guardian_phone: Optional[str] = None,
    emergency_contact_name: Optional[str] = None,
    emergency_contact_phone: Optional[str] = None,
    medical_notes: Optional[str] = None,
    current_registrations: Optional[int] = None,
    max_capacity: Optional[int] = None,
    **_,
) -> str:
    amount = f"${amount_paid:.2f}" if amount_paid is not None else "&mdash;"
    content = _panel(
        "Event Details",
        f"""<p><strong>Event:</strong> {_e(event_summary)}</p>
      <p><strong>Event ID:</strong> {_e(event_id)}</p>
      <p><strong>Type:</strong> {_e(event_type)}</p>
      <p><strong>Amount Paid:</strong> {amount}</p>
      <p><strong>Registrations:</strong> {_e(current_registrations)} / {_e(max_capacity)}</p>""",
    )
    content += _panel("Player Information", _player_rows(players, player_age))
    content += _panel(
        "Guardian Information",
        f"""<p><strong>Name:</strong> {_e(guardian_first_name)} {escape(guardian_last_name or '')}</p>
      <p><strong>Email:</strong> {_e(guardian_email)}</p>
      <p><strong>Phone:</strong> {_e(guardian_phone)}</p>""",
    )
    if emergency_contact_name or emergency_contact_phone:
        content += _panel(
            "Emergency Contact",
            f"""<p><strong>Name:</strong> {_e(emergency_contact_name)}</p>
      <p><strong>Phone:</strong> {_e(emergency_contact_phone)}</p>""",
            background="#ffffff",
        )
    if medical_notes:
        content += _panel(
            "Medical Notes",
            f'<p style="color: {THEME["warning"]}; white-space: pre-wrap;">{_e(medical_notes)}</p>',
            background=THEME["warning_bg"],
        )
    return get_base_template("New Event Registration", content)


def oversell_alert_template(
    event_summary: Optional[str] = None,
    event_id: Optional[str] = None,
    registration_id: Optional[str] = None,
    guardian_email: Optional[str] = None,
    amount_paid: Optional[float] = None,
    current_registrations: Optional[int] = None,
    max_capacity: Optional[int] = None,
    **_,
) -> str:
    amount = f"${amount_paid:.2f}" if amount_paid is not None else "&mdash;"
    content = f"""
  <p style="font-size: 16px; line-height: 1.6;">
    A payment was completed for an event that was already full. The registration was
    <strong>not</strong> recorded. Please contact the family and issue a refund or add a spot.
  </p>"""
    content += _panel(
        "Details",
        f"""<p><strong>Event:</strong> {_e(event_summary)}</p>
      <p><strong>Event ID:</strong> {_e(event_id)}</p>
      <p><strong>Payment Session:</strong> {_e(registration_id)}</p>
      <p><strong>Guardian Email:</strong> {_e(guardian_email)}</p>
      <p><strong>Amount Paid:</strong> {amount}</p>
      <p><strong>Capacity:</strong> {_e(current_registrations)} / {_e(max_capacity)}</p>""",
        background=THEME["warning_bg"],
    )
    return get_base_template("Oversold Event", content, heading_color=THEME["danger"])
