from app.models.conversation import Conversation
from app.models.message import Message, MessageAttachment
from app.models.profile import BuyerProfile, ManufacturerProfile

__all__ = [
    "BuyerProfile",
    "Conversation",
    "ManufacturerProfile",
    "Message",
    "MessageAttachment",
]
