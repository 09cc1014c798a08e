from .expiry_reminders import router as expiry_reminders_router

__all__ = ["expiry_reminders_router"]
