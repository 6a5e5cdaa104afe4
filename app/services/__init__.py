from app.services.conversation_service import ConversationService
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.profile_service import ProfileService
from app.services.realtime_gateway import RealtimeGateway

__all__ = [
    "ConversationService",
    "NotificationDispatcher",
    "ProfileService",
    "RealtimeGateway",
]
