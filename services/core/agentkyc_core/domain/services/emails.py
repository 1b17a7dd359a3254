"""Transactional email bodies sent during the verification workflow.

Each builder returns ``(subject, html)``. User-supplied values are escaped.
"""

from html import escape
from typing import Optional


_FOOTER = (
    '<hr style="border: none; border-top: 1px solid #eee; margin: 24px 0;" />'
    '<p style="color: #999; font-size: 12px;">'
    "AgentKYC - The Trust Layer for the Agent Economy</p>"
)


def _wrap(body: str) -> str:
    return (
        '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">'
        f"{body}{_FOOTER}</div>"
    )


def verification_email(
    base_url: str, token: str, agent_name: str, ttl_hours: int = 24
) -> tuple[str, str]:
    """Email-confirmation message with the one-time link."""
    verify_url = f"{base_url.rstrip('/')}/verify/confirm?token={token}"
    name = escape(agent_name)
    body = (
        "<h1>Verify Your Agent</h1>"
        f"<p>Thanks for applying to get <strong>{name}</strong> verified on AgentKYC!</p>"
        "<p>Confirm your email to continue the verification process:</p>"
        f'<p><a href="{escape(verify_url)}">{escape(verify_url)}</a></p>'
        f'<p style="color: #666; font-size: 14px;">This link expires in {ttl_hours} hours.</p>'
    )
    return f"Verify your agent: {agent_name}", _wrap(body)


def test_task_email(
    agent_name: str, owner_name: Optional[str], task: str
) -> tuple[str, str]:
    """Behavioral test task sent by a reviewer."""
    body = (
        f"<h1>Test Task for {escape(agent_name)}</h1>"
        f"<p>Hi {escape(owner_name or 'there')},</p>"
        "<p>As part of the AgentKYC verification process, please have your agent "
        "complete this task:</p>"
        '<div style="background: #f4f4f4; padding: 16px; border-radius: 8px; margin: 16px 0;">'
        f"<p><strong>{escape(task)}</strong></p></div>"
        "<p>Reply to this email with the result within 72 hours.</p>"
    )
    return f"AgentKYC Test Task for {agent_name}", _wrap(body)


def reminder_email(agent_name: str) -> tuple[str, str]:
    """Nudge for owners who have not answered a test task."""
    body = (
        f"<h1>Reminder: test task for {escape(agent_name)}</h1>"
        "<p>We sent your agent a verification test task and have not received a "
        "result yet.</p>"
        "<p>Reply to the original email with the result to finish verification.</p>"
    )
    return f"Reminder: AgentKYC test task for {agent_name}", _wrap(body)
