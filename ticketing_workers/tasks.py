"""
Email notification tasks using Celery.
Renders and sends ticket confirmations queued by the ticketing API.
"""

import logging
from typing import Dict, Any, List
from datetime import datetime
from html import escape

from celery.signals import after_setup_logger

from ticketing_workers.celery_config import create_celery_app, EMAIL_MAX_RETRIES, EMAIL_RETRY_DELAY
from ticketing_workers.mailer import email_service
from ticketing_workers.task_logging import (
    setup_logging,
    log_task_start,
    log_task_success,
    log_task_error,
    log_email_sent,
    log_email_failed,
)

logger = logging.getLogger(__name__)

celery_app = create_celery_app()

SEND_TICKET_CONFIRMATION = 'ticketing_workers.tasks.send_ticket_confirmation'

WORKER_LOGGER = 'ticketing_workers'


@after_setup_logger.connect
def configure_worker_logging(logger=None, loglevel=logging.INFO, **kwargs):
    """Give the worker's own loggers the standard worker format once Celery has set up logging."""
    level = loglevel if isinstance(loglevel, str) else logging.getLevelName(loglevel or logging.INFO)
    worker_logger = setup_logging(level, WORKER_LOGGER)
    worker_logger.propagate = False
    return worker_logger


def render_ticket_confirmation(data: Dict[str, Any]) -> Dict[str, str]:
    """
    Build subject, HTML and text bodies for a purchase confirmation.

    Args:
        data: Payload built by the API's notification service

    Returns:
        Dict with subject, html and text keys
    """
    event_title = data.get('eventTitle', 'Event')
    user_name = data.get('userName', 'there')
    event_date = data.get('eventDate') or 'TBA'
    event_time = data.get('eventTime') or ''
    venue = data.get('venue') or 'TBA'
    reference = data.get('purchaseReference') or 'N/A'
    tickets: List[Dict[str, Any]] = data.get('tickets') or []

    subject = f"Your tickets for {event_title}"

    ticket_rows = "".join(
        f"<li><strong>Ticket {escape(str(ticket.get('id')))}</strong>"
        f"<br><code>{escape(str(ticket.get('credential')))}</code></li>"
        for ticket in tickets
    )

    html_content = f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: #2c3e50;">Tickets Confirmed!</h2>

            <p>Hello {escape(user_name)},</p>

            <p>Your purchase is complete. Present the code below at the entrance.</p>

            <div style="background-color: #f8f9fa; padding: 20px; border-radius: 5px; margin: 20px 0;">
                <h3 style="color: #2c3e50; margin-top: 0;">{escape(event_title)}</h3>
                <p><strong>Date:</strong> {escape(event_date)} {escape(event_time)}</p>
                <p><strong>Venue:</strong> {escape(venue)}</p>
                <p><strong>Reference:</strong> {escape(reference)}</p>
                <p><strong>Tickets:</strong> {len(tickets)}</p>
                <ul>{ticket_rows}</ul>
            </div>

            <p>Best regards,<br>The Evently Team</p>
        </div>
    </body>
    </html>
    """

    ticket_lines = "\n".join(
        f"  - Ticket {ticket.get('id')}: {ticket.get('credential')}" for ticket in tickets
    )

    text_content = f"""
    Tickets Confirmed!

    Hello {user_name},

    Your purchase is complete. Present the code below at the entrance.

    Event: {event_title}
    Date: {event_date} {event_time}
    Venue: {venue}
    Reference: {reference}
    Tickets: {len(tickets)}
{ticket_lines}

    Best regards,
    The Evently Team
    """

    return {'subject': subject, 'html': html_content, 'text': text_content}


@celery_app.task(bind=True, name=SEND_TICKET_CONFIRMATION)
def send_ticket_confirmation(self, user_email: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Send the ticket confirmation email for one purchase.

    Args:
        user_email: Recipient address
        data: Purchase payload

    Returns:
        Task result dictionary
    """
    task_id = self.request.id
    log_task_start(SEND_TICKET_CONFIRMATION, task_id, user_email)

    try:
        if not user_email:
            return {
                'success': False,
                'error': 'Recipient email missing',
                'timestamp': datetime.now().isoformat()
            }

        content = render_ticket_confirmation(data)
        success = email_service.send_email(
            to_email=user_email,
            subject=content['subject'],
            html_content=content['html'],
            text_content=content['text']
        )

        if success:
            log_email_sent(user_email, content['subject'], SEND_TICKET_CONFIRMATION)
        else:
            log_email_failed(user_email, content['subject'], 'SMTP delivery failed', SEND_TICKET_CONFIRMATION)

        result = {
            'success': success,
            'email': user_email,
            'purchase_reference': data.get('purchaseReference'),
            'ticket_count': len(data.get('tickets') or []),
            'timestamp': datetime.now().isoformat()
        }
        log_task_success(SEND_TICKET_CONFIRMATION, task_id, result)
        return result

    except Exception as e:
        log_task_error(SEND_TICKET_CONFIRMATION, task_id, str(e), self.request.retries)

        if self.request.retries < EMAIL_MAX_RETRIES:
            logger.info(f"Retrying ticket confirmation (attempt {self.request.retries + 1}/{EMAIL_MAX_RETRIES})")
            raise self.retry(countdown=EMAIL_RETRY_DELAY, exc=e)

        return {
            'success': False,
            'error': str(e),
            'email': user_email,
            'timestamp': datetime.now().isoformat()
        }
