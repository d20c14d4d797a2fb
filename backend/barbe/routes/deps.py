"""
Request-scoped access to the components built in create_app
"""
from fastapi import Request

from ..config import Settings
from ..database import SupabaseClient
from ..services.cleanup import CleanupSweep
from ..services.dispatcher import NotificationDispatcher
from ..services.notifications import TelegramNotifier
from ..services.schedule import ScheduleService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> SupabaseClient:
    return request.app.state.store


def get_notifier(request: Request) -> TelegramNotifier:
    return request.app.state.notifier


def get_schedule(request: Request) -> ScheduleService:
    return request.app.state.schedule


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_cleanup(request: Request) -> CleanupSweep:
    return request.app.state.cleanup
