from libs.common.logging import get_logger

logger = get_logger(__name__)


async def send_email(to_email: str, subject: str, body: str) -> bool:
    """
    Mock email sender.
    In production, this would use SMTP or an email service provider (SendGrid, AWS SES, etc.).
    """
    logger.info("========== MOCK EMAIL ==========")
    logger.info("To: %s", to_email)
    logger.info("Subject: %s", subject)
    logger.info("Body: %s", body)
    logger.info("================================")
    return True
