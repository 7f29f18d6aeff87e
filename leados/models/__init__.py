# Models package: import all models here so Alembic can discover them.

from leados.models.user import User  # noqa: F401
from leados.models.lead import Lead  # noqa: F401
from leados.models.contact import Contact  # noqa: F401
from leados.models.interaction import Interaction  # noqa: F401
from leados.models.opportunity import Opportunity  # noqa: F401
from leados.models.campaign import Campaign, CampaignScript  # noqa: F401
from leados.models.knowledge import CampaignKnowledge  # noqa: F401
from leados.models.content import GeneratedContent  # noqa: F401
from leados.models.proposal import Proposal  # noqa: F401
from leados.models.meeting import ScheduledMeeting  # noqa: F401
from leados.models.whatsapp import WhatsAppConfig, WhatsAppMessage  # noqa: F401
from leados.models.sentiment import (  # noqa: F401
    HumanRedirectNotification,
    SentimentAnalysis,
)
from leados.models.billing import BillingCustomer, BillingSubscription  # noqa: F401
from leados.models.stripe_event import StripeEvent  # noqa: F401
from leados.models.audit import AuditEvent  # noqa: F401
