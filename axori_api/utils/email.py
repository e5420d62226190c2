"""Transactional email through AWS SES"""
import logging
from urllib.parse import urlencode

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app
from markupsafe import escape

from axori_api.utils.permissions import get_role_label

logger = logging.getLogger(__name__)


def get_ses_client():
    """Get SES client"""
    return boto3.client('ses', region_name=current_app.config.get('AWS_REGION'))


def is_email_configured():
    return bool(current_app.config.get('SES_SENDER_EMAIL'))


def build_invitation_url(token):
    base = current_app.config.get('APP_URL', '').rstrip('/')
    return f"{base}/invitation/accept?{urlencode({'token': token})}"


def render_invitation_email(portfolio_name, inviter_name, role, accept_url, expires_at):
    role_label = get_role_label(role)
    expires = expires_at.strftime('%B %d, %Y')
    subject = f"{inviter_name} invited you to {portfolio_name} on Axori"
    text = (
        f"{inviter_name} has invited you to join the portfolio \"{portfolio_name}\" as {role_label}.\n\n"
        f"Accept the invitation: {accept_url}\n\n"
        f"This link expires on {expires}. If you weren't expecting this email you can ignore it."
    )
    html = (
        f"<p><strong>{escape(inviter_name)}</strong> has invited you to join the portfolio "
        f"<strong>{escape(portfolio_name)}</strong> as {escape(role_label)}.</p>"
        f"<p><a href=\"{escape(accept_url)}\">Accept invitation</a></p>"
        f"<p>This link expires on {expires}. If you weren't expecting this email you can ignore it.</p>"
    )
    return subject, text, html


def send_invitation_email(to_email, token, portfolio_name, inviter_name, role, expires_at):
    """Send the invitation; returns ``(sent, error)`` and never raises"""
    if not is_email_configured():
        logger.warning(f"Email not configured; invitation for {to_email} was not sent")
        return False, 'Email not configured'

    subject, text, html = render_invitation_email(
        portfolio_name, inviter_name, role, build_invitation_url(token), expires_at
    )
    try:
        get_ses_client().send_email(
            Source=current_app.config['SES_SENDER_EMAIL'],
            Destination={'ToAddresses': [to_email]},
            Message={
                'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                'Body': {
                    'Text': {'Data': text, 'Charset': 'UTF-8'},
                    'Html': {'Data': html, 'Charset': 'UTF-8'}
                }
            }
        )
    except ClientError as e:
        message = e.response['Error']['Message']
        logger.error(f"SES rejected invitation email to {to_email}: {message}")
        return False, message
    except BotoCoreError as e:
        logger.error(f"Could not reach SES for {to_email}: {e}")
        return False, str(e)

    logger.info(f"Invitation email sent to {to_email}")
    return True, None
