"""
UI service - handles user interface components and interactions.
"""

from .chat_interface import ChatInterface, get_chat_interface
from .callback_handlers import SessionStreamRenderer, describe_tool

__all__ = [
    'ChatInterface',
    'get_chat_interface',
    'SessionStreamRenderer',
    'describe_tool'
]
