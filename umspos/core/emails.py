"""
Outbound email through the Resend REST API.

Bodies are short HTML snippets; user-supplied values are escaped with format_html.
"""
import logging

import requests
from django.conf import settings
from django.utils.html import format_html

from .exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

EMAIL_TIMEOUT = 10


def send_email(to, subject, html):
    """Send one email; returns False when no API key is configured"""
    api_key = settings.RESEND_API_KEY
    if not api_key:
        logger.warning(f"RESEND_API_KEY not configured, skipping email '{subject}' to {to}")
        return False

    try:
        response = requests.post(
            settings.RESEND_API_URL,
            headers={
                'Authorization': f'Bearer {api_key}',
                'Content-Type': 'application/json',
            },
            json={
                'from': settings.EMAIL_FROM,
                'to': [to],
                'subject': subject,
                'html': html,
            },
            timeout=EMAIL_TIMEOUT,
        )
    except requests.exceptions.Timeout:
        logger.error(f"Timed out sending email to {to}")
        raise EmailDeliveryError('Email provider timed out')
    except requests.exceptions.RequestException as e:
        logger.error(f"Error sending email to {to}: {str(e)}")
        raise EmailDeliveryError(f'Failed to send email: {str(e)}')

    if response.status_code >= 400:
        try:
            detail = response.json().get('message', response.text)
        except ValueError:
            detail = response.text
        logger.error(f"Resend rejected email to {to}: {response.status_code} {detail}")
        raise EmailDeliveryError(f'Failed to send email: {detail or "Unknown error"}')

    logger.info(f"Sent email '{subject}' to {to}")
    return True


def build_signup_url(token):
    return f"{settings.APP_URL.rstrip('/')}/signup?token={token}"


def send_invitation_email(email, role, signup_url):
    html = format_html(
        '<p>You have been invited to join UMS POS as <strong>{}</strong>.</p>'
        '<p><a href="{}">Accept the invitation</a></p>'
        '<p>This link expires in {} days.</p>',
        role, signup_url, settings.INVITATION_TTL_DAYS,
    )
    return send_email(email, 'Invitation to join UMS POS', html)


def send_welcome_email(email, name):
    html = format_html(
        '<p>Welcome to UMS POS, {}.</p>'
        '<p>Sign in at <a href="{}">{}</a>.</p>',
        name or email, settings.APP_URL, settings.APP_URL,
    )
    return send_email(email, 'Welcome to UMS POS', html)
