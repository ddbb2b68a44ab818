from .service import OrderNotificationService, OrderResult

__all__ = ["OrderNotificationService", "OrderResult"]
