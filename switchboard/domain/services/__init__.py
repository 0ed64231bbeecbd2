"""Domain services."""

from switchboard.domain.services.assignment_service import AssignmentPolicy, AssignmentService
from switchboard.domain.services.conversation_state import ConversationStateMachine
from switchboard.domain.services.ingestion_service import IngestResult, MessageIngestionPipeline
from switchboard.domain.services.lead_service import LeadService
from switchboard.domain.services.tag_service import TagService
from switchboard.domain.services.whatsapp_event_service import WhatsAppEventService
from switchboard.domain.services.widget_service import WidgetService

__all__ = [
    "AssignmentPolicy",
    "AssignmentService",
    "ConversationStateMachine",
    "IngestResult",
    "LeadService",
    "MessageIngestionPipeline",
    "TagService",
    "WhatsAppEventService",
    "WidgetService",
]
