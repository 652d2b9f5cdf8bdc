import boto3
from botocore.exceptions import BotoCoreError, ClientError
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
import logging

from booking_core.utils.email_templates import NotificationTemplate, render

logger = logging.getLogger(__name__)


class NotificationService:
    """Sends templated emails through SES.

    Delivery is best effort: failures are logged and never raised, so a
    booking flow does not depend on an email going out.
    """

    def __init__(self, sender: str, region="ap-south-1"):
        self.ses = boto3.client("ses", region_name=region)
        self.sender = sender

    def send(self, recipient: str, template: NotificationTemplate, payload: dict) -> bool:
        if not recipient:
            logger.warning(f"No recipient for {template.value} notification, skipping")
            return False

        subject, body = render(template, payload)

        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))

        try:
            self.ses.send_raw_email(
                Source=self.sender,
                Destinations=[recipient],
                RawMessage={"Data": msg.as_string()},
            )
        except (ClientError, BotoCoreError):
            logger.exception(f"Failed to send {template.value} notification to {recipient}")
            return False

        logger.info(f"Sent {template.value} notification to {recipient}")
        return True
