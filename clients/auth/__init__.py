"""
Authentication module for Twitch OAuth.
Handles the authorization-code flow, token refresh, and persistence.
"""
from .auth_manager import AuthManager
from .credential_store import CredentialStore
from .oauth_server import OAuthCallbackServer, browser_prompt

__all__ = [
    'AuthManager',
    'CredentialStore',
    'OAuthCallbackServer',
    'browser_prompt'
]
