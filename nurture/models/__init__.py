"""SQLAlchemy models for leads and their interaction history."""

from nurture.models.appointment import Appointment
from nurture.models.base import Base
from nurture.models.call_outcome import CallOutcome
from nurture.models.communication import Communication
from nurture.models.conversation_outcome import ConversationOutcome
from nurture.models.lead import Lead
from nurture.models.lead_activity import LeadActivity

__all__ = [
    "Appointment",
    "Base",
    "CallOutcome",
    "Communication",
    "ConversationOutcome",
    "Lead",
    "LeadActivity",
]
