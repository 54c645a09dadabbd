"""Alert models and category table."""

import enum
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class AlertCategory(enum.StrEnum):
    user_connected = "user-connected"
    user_disconnected = "user-disconnected"
    user_reconnected = "user-reconnected"
    user_time_expired = "time-expired"
    wireless_client_connected = "wireless-client-connected"
    wireless_client_disconnected = "wireless-client-disconnected"
    interface_up = "interface-up"
    interface_down = "interface-down"
    system_warning = "system-warning"
    system_error = "system-error"


class AlertPriority(enum.StrEnum):
    medium = "medium"
    high = "high"
    critical = "critical"


@dataclass(frozen=True)
class CategoryConfig:
    name: str
    icon: str
    subject: str
    priority: AlertPriority


CATEGORY_CONFIG: dict[AlertCategory, CategoryConfig] = {
    AlertCategory.user_connected: CategoryConfig(
        "User Connected", "🔗", "🆕 New User Connected", AlertPriority.high
    ),
    AlertCategory.user_disconnected: CategoryConfig(
        "User Disconnected", "🔌", "🔌 User Disconnected", AlertPriority.medium
    ),
    AlertCategory.user_reconnected: CategoryConfig(
        "User Reconnected", "🔄", "🔄 User Reconnected", AlertPriority.medium
    ),
    AlertCategory.user_time_expired: CategoryConfig(
        "User Time Expired", "⏰", "⏰ User Time Expired", AlertPriority.high
    ),
    AlertCategory.wireless_client_connected: CategoryConfig(
        "Wireless Client Connected", "📶", "📶 Wireless Client Connected", AlertPriority.medium
    ),
    AlertCategory.wireless_client_disconnected: CategoryConfig(
        "Wireless Client Disconnected", "📶", "📶 Wireless Client Disconnected", AlertPriority.medium
    ),
    AlertCategory.interface_up: CategoryConfig(
        "Interface Up", "🟢", "🟢 Interface Up", AlertPriority.medium
    ),
    AlertCategory.interface_down: CategoryConfig(
        "Interface Down", "🔴", "🔴 Interface Down", AlertPriority.critical
    ),
    AlertCategory.system_warning: CategoryConfig(
        "System Warning", "⚠️", "⚠️ System Warning", AlertPriority.high
    ),
    AlertCategory.system_error: CategoryConfig(
        "System Error", "🚨", "🚨 System Error", AlertPriority.critical
    ),
}


def _new_alert_id() -> str:
    return f"alert_{uuid.uuid4().hex}"


class Alert(BaseModel):
    """A notification about one router or client event."""

    id: str = Field(default_factory=_new_alert_id)
    category: AlertCategory
    title: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    priority: AlertPriority
    icon: str = ""
    read: bool = False
    source_id: str | None = None  # router the alert originated from
