# Routes package initialization
# Centralize imports for commonly used utilities

from .auth_utils import get_session_with_auth

__all__ = ['get_session_with_auth']
