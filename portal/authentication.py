"""
Token authentication for the portal API.

Kept apart from the views so that DRF can import the class while it
initialises its settings without pulling in view modules.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """``Authorization: Token <key>``; JWT bearer tokens are handled separately."""

    keyword = 'Token'
