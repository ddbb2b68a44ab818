from .contacts import SENTINEL_EMAIL, Contact, ContactDirectory
from .delivery import Delivery, deliver

__all__ = ["SENTINEL_EMAIL", "Contact", "ContactDirectory", "Delivery", "deliver"]
