"""
Notification Service for Ticketing Service.
Hands purchase confirmations to the Celery email worker after commit.
"""
import ssl
import logging
from typing import Optional, Dict, Any, List

from celery import Celery

from ticketing.core.config import config

logger = logging.getLogger(__name__)

PURCHASE_CONFIRMATION_TASK = "ticketing_workers.tasks.send_ticket_confirmation"


class NotificationService:
    """
    Notification dispatch over Celery.
    Every public method returns a bool and never raises: a purchase has
    already committed by the time it is notified.
    """

    def __init__(self):
        self.enabled = True
        self.queue = "email_notifications"
        self._celery_app: Optional[Celery] = None
        self._initialized = False

    async def _initialize_celery(self):
        """Initialize Celery app for task dispatch."""
        try:
            if self._initialized:
                return

            notification_config = await config.get_notification_config()
            self.enabled = notification_config["enabled"]
            self.queue = notification_config["queue"]

            self._celery_app = Celery('ticketing')
            redis_url = await config.get_redis_url()

            conf = dict(
                broker_url=redis_url,
                result_backend=redis_url,
                task_serializer='json',
                result_serializer='json',
                accept_content=['json'],
                task_routes={
                    'ticketing_workers.tasks.*': {'queue': self.queue},
                },
            )
            if redis_url.startswith("rediss://"):
                conf.update(
                    broker_use_ssl={'ssl_cert_reqs': ssl.CERT_NONE},
                    redis_backend_use_ssl={'ssl_cert_reqs': ssl.CERT_NONE},
                )
            self._celery_app.conf.update(**conf)

            self._initialized = True
            logger.info("Celery app initialized for notification dispatch")

        except Exception as e:
            logger.error(f"Failed to initialize Celery app: {e}")
            self._celery_app = None
            self._initialized = False

    async def _send_email_task(self, task_name: str, user_email: str, data: Dict[str, Any]) -> bool:
        """
        Send email task to Celery workers.

        Args:
            task_name: Name of the Celery task
            user_email: Recipient address
            data: Task data

        Returns:
            True if task sent successfully, False otherwise
        """
        try:
            if not self._initialized:
                await self._initialize_celery()

            if not self._celery_app:
                logger.error("Celery app not initialized, cannot send email task")
                return False

            task = self._celery_app.send_task(
                task_name,
                args=[user_email, data],
                queue=self.queue
            )

            logger.info(f"Email task {task_name} sent to {user_email} with ID: {task.id}")
            return True

        except Exception as e:
            logger.error(f"Failed to send email task {task_name}: {e}")
            return False

    @staticmethod
    def build_purchase_payload(event, tickets: List, user_name: Optional[str] = None) -> Dict[str, Any]:
        """Shape the confirmation data the email worker renders."""
        return {
            "userName": user_name or "there",
            "eventTitle": event.title,
            "eventDate": event.event_date.isoformat() if event.event_date else None,
            "eventTime": event.event_time,
            "venue": event.venue,
            "purchaseReference": tickets[0].purchase_reference if tickets else None,
            "tickets": [
                {
                    "id": ticket.id,
                    "credential": ticket.credential,
                    "price": float(ticket.price) if ticket.price is not None else 0.0,
                }
                for ticket in tickets
            ],
        }

    async def send_purchase_confirmation(self, user_email: Optional[str], data: Dict[str, Any]) -> bool:
        """
        Send purchase confirmation via the email worker.

        Args:
            user_email: Recipient address
            data: Output of build_purchase_payload

        Returns:
            True if the task was queued (or notifications are disabled), False otherwise
        """
        try:
            if not self._initialized:
                await self._initialize_celery()

            if not self.enabled:
                logger.info("Notification service disabled, skipping purchase confirmation")
                return True

            if not user_email:
                logger.warning("No recipient address for purchase confirmation, skipping")
                return False

            logger.info(f"Sending purchase confirmation for {data.get('purchaseReference')} to {user_email}")
            return await self._send_email_task(PURCHASE_CONFIRMATION_TASK, user_email, data)

        except Exception as e:
            logger.error(f"Failed to send purchase confirmation: {e}")
            return False


# Global notification service instance
notification_service = NotificationService()
