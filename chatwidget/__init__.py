from chatwidget.core.errors import PublicChatError, WidgetConfigError
from chatwidget.schemas.widget import WidgetConfig
from chatwidget.widget import ChatWidget, init

__all__ = ["ChatWidget", "PublicChatError", "WidgetConfig", "WidgetConfigError", "init"]
