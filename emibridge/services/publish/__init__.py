"""
Publish Service - MQTT broker sessions
"""

from .session import PublishSession, create_session_factory

__all__ = ["PublishSession", "create_session_factory"]
