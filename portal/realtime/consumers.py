import json
import logging

from asgiref.sync import sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.contrib.auth.models import AnonymousUser

from portal.services.threads import is_participant, send_thread_message

logger = logging.getLogger(__name__)

MAX_CONTENT = 5000


async def _ws_error(ws, code: int, message: str, *, close: bool = False):
    """
    Uniform error frame.  4xxx codes are client errors, 5xxx server errors.
    """
    payload = {"type": "error", "code": code, "message": message}
    try:
        await ws.send(json.dumps(payload))
    finally:
        if close:
            await ws.close(code=code)


class ThreadConsumer(AsyncWebsocketConsumer):
    """Live messages of one conversation thread, for its participants only."""

    async def connect(self):
        self.thread_id = str(self.scope["url_route"]["kwargs"].get("thread_id"))
        user = self.scope.get("user") or AnonymousUser()
        if not user.is_authenticated:
            await self.close(code=4001)
            return
        if not await sync_to_async(is_participant)(user, self.thread_id):
            await self.close(code=4003)
            return

        self.group_name = f"thread.{self.thread_id}"
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

    async def disconnect(self, close_code):
        if hasattr(self, "group_name"):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive(self, text_data=None, bytes_data=None):
        if not text_data:
            return
        try:
            data = json.loads(text_data)
        except ValueError:
            await _ws_error(self, 4000, "invalid_json")
            return
        if not isinstance(data, dict):
            await _ws_error(self, 4001, "invalid_payload")
            return
        if data.get("type") != "send":
            await _ws_error(self, 4002, "unsupported_type")
            return

        content = data.get("content", "")
        if not isinstance(content, str):
            await _ws_error(self, 4003, "invalid_content_type")
            return
        content = content.strip()
        if not content:
            await _ws_error(self, 4004, "empty_message")
            return
        if len(content) > MAX_CONTENT:
            await _ws_error(self, 4005, "message_too_long")
            return

        user = self.scope.get("user") or AnonymousUser()
        try:
            # the service broadcasts to the group once the row is committed
            await sync_to_async(send_thread_message)(user, self.thread_id, content)
            await self.send(json.dumps({"type": "ack", "ok": True}))
        except PermissionError:
            await _ws_error(self, 4007, "forbidden", close=True)
        except LookupError:
            await _ws_error(self, 4006, "thread_not_found", close=True)
        except ValueError as e:
            await _ws_error(self, 4008, str(e))
        except Exception:
            logger.exception("thread %s: websocket send failed", self.thread_id)
            await _ws_error(self, 5000, "server_error")

    async def thread_message(self, event):
        """
        Handler for ``{"type": "thread.message", "message": {...}}`` group events.
        """
        await self.send(json.dumps({"type": "message", "message": event.get("message", {})}))


class NotificationConsumer(AsyncWebsocketConsumer):
    async def connect(self):
        user = self.scope.get("user") or AnonymousUser()
        if not user.is_authenticated:
            await self.close(code=4001)
            return
        self.group_name = f"notifications.{user.pk}"
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

    async def disconnect(self, close_code):
        if hasattr(self, "group_name"):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def notification_created(self, event):
        await self.send(json.dumps({"type": "notification", "notification": event.get("notification", {})}))
