from .complaint import Complaint
from .conversation import Conversation
from .message import Message
from .product import Product

__all__ = ["Complaint", "Conversation", "Message", "Product"]
