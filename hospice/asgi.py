"""
ASGI config for the hospice portal.

Serves HTTP through Django and WebSockets through Channels. Django must
be configured before any model-importing module is loaded.
"""
import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "hospice.settings")

import django  # noqa: E402
django.setup()  # noqa: E402

from django.core.asgi import get_asgi_application  # noqa: E402
from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.auth import AuthMiddlewareStack  # noqa: E402

from portal.realtime.routing import websocket_urlpatterns  # noqa: E402

django_asgi_app = get_asgi_application()

application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": AuthMiddlewareStack(URLRouter(websocket_urlpatterns)),
})
