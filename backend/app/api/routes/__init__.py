# API Routes Module
from app.api.routes import auth, subscriptions

__all__ = [
    "auth",
    "subscriptions",
]
