"""Hospice family portal application.

This package contains the models, services, serializers, views and
route registrations behind the portal's JSON API and WebSocket feeds.
"""
