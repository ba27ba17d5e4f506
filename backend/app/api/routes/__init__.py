# API Routes Module
from app.api.routes import jobs, subscriptions

__all__ = [
    "jobs",
    "subscriptions",
]
