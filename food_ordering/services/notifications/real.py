"""
Real Notification Service

Production implementation using:
- Twilio for SMS
- SendGrid for Email
"""

import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from food_ordering.core.config import get_settings
from food_ordering.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
    OrderNotice,
)

logger = logging.getLogger(__name__)
settings = get_settings()


class RealNotificationService(BaseNotificationService):
    """Production notification service using Twilio and SendGrid."""

    def __init__(self):
        # Initialize Twilio
        if settings.twilio_account_sid and settings.twilio_auth_token:
            self.twilio_client = TwilioClient(
                settings.twilio_account_sid,
                settings.twilio_auth_token
            )
            self.twilio_from_number = settings.twilio_phone_number
        else:
            self.twilio_client = None
            logger.warning("Twilio credentials not configured")

        # Initialize SendGrid
        if settings.sendgrid_api_key:
            self.sendgrid_client = SendGridAPIClient(settings.sendgrid_api_key)
            self.sendgrid_from_email = settings.sendgrid_from_email
        else:
            self.sendgrid_client = None
            logger.warning("SendGrid credentials not configured")

        logger.info("RealNotificationService initialized")

    @property
    def provider_name(self) -> str:
        return "real"

    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send SMS via Twilio."""
        if not self.twilio_client:
            return NotificationResult(
                success=False,
                error_message="Twilio not configured",
                provider="twilio"
            )

        try:
            result = self.twilio_client.messages.create(
                body=message,
                from_=self.twilio_from_number,
                to=to_phone
            )

            logger.info(f"SMS sent to {to_phone}: {result.sid}")

            return NotificationResult(
                success=True,
                message_id=result.sid,
                provider="twilio"
            )

        except TwilioException as e:
            logger.error(f"Twilio error: {e}")
            return NotificationResult(
                success=False,
                error_message=str(e),
                provider="twilio"
            )

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        """Send email via SendGrid."""
        if not self.sendgrid_client:
            return NotificationResult(
                success=False,
                error_message="SendGrid not configured",
                provider="sendgrid"
            )

        try:
            message = Mail(
                from_email=self.sendgrid_from_email,
                to_emails=to_email,
                subject=subject,
                html_content=body_html,
                plain_text_content=body_text
            )

            response = self.sendgrid_client.send(message)

            logger.info(f"Email sent to {to_email}: {response.status_code}")

            return NotificationResult(
                success=response.status_code in [200, 201, 202],
                message_id=response.headers.get('X-Message-Id'),
                provider="sendgrid"
            )

        except Exception as e:
            logger.error(f"SendGrid error: {e}")
            return NotificationResult(
                success=False,
                error_message=str(e),
                provider="sendgrid"
            )

    async def send_order_confirmation(self, notice: OrderNotice) -> NotificationResult:
        message = self.customer_message(notice, settings.restaurant_name)
        items_html = "".join(f"<li>{line}</li>" for line in notice.lines)

        email_html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h1 style="color: #ff4757;">Order Placed!</h1>
            <p>Hi {notice.customer_name},</p>
            <p>Thank you for your order. Your order <strong>#{notice.order_id}</strong>
               was placed on {notice.placed_at}.</p>
            <div style="background: #f8f9fa; padding: 15px; border-radius: 8px; margin: 20px 0;">
                <p><strong>{notice.fulfilment_details}</strong></p>
                <ul>{items_html}</ul>
                <p>Total: <strong>R{notice.total_amount:.2f}</strong></p>
            </div>
            <p>We will notify you once your order is processed.</p>
            <p>Thank you for choosing {settings.restaurant_name}!</p>
        </div>
        """
        email_result = await self.send_email(
            to_email=notice.customer_email,
            subject=f"Order Confirmation #{notice.order_id} - {settings.restaurant_name}",
            body_html=email_html,
            body_text=f"{message}\n\n{notice.summary}",
        )

        sms_result = None
        if notice.customer_phone:
            sms_result = await self.send_sms(notice.customer_phone, message)

        return NotificationResult(
            success=email_result.success or bool(sms_result and sms_result.success),
            message_id=email_result.message_id,
            provider="real"
        )

    async def send_operator_alert(self, notice: OrderNotice) -> NotificationResult:
        body = self.operator_message(notice)
        return await self.send_email(
            to_email=settings.operator_email,
            subject=f"New Order #{notice.order_id} - {settings.restaurant_name}",
            body_html=f"<pre style=\"font-family: Arial, sans-serif;\">{body}</pre>",
            body_text=body,
        )

    async def health_check(self) -> bool:
        """Check that both providers are configured and Twilio answers."""
        if not (self.twilio_client and self.sendgrid_client):
            return False
        try:
            self.twilio_client.api.accounts(settings.twilio_account_sid).fetch()
            return True
        except TwilioException as e:
            logger.warning(f"Twilio health check failed: {e}")
            return False
