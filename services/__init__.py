from .places import PlacesGateway
from .analysis import AnalysisGateway
from .limits import limits_for
from .notifications import NotificationGateway, create_notifier

__all__ = [
    "PlacesGateway", "AnalysisGateway", "limits_for",
    "NotificationGateway", "create_notifier",
]
