from akeed.models.integration import Integration, IntegrationMonthlyUsage  # noqa: F401
from akeed.models.order import Order  # noqa: F401
from akeed.models.verification import Verification, VerificationStatus  # noqa: F401
from akeed.models.webhook_event import WebhookEvent  # noqa: F401
