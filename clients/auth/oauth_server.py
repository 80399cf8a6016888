"""
OAuth Callback Server.
Catches the authorization redirect, either through a one-shot local HTTP
server or from a URL the user pastes into the terminal.
"""
import urllib.parse
import webbrowser
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Callable, Optional

from utils import setup_logger


logger = setup_logger(__name__)


class OAuthCallbackHandler(BaseHTTPRequestHandler):
    """HTTP request handler for OAuth callback."""

    callback_url: Optional[str] = None

    def do_GET(self):
        """Handle GET request (OAuth callback)."""
        query_params = urllib.parse.parse_qs(urllib.parse.urlparse(self.path).query)
        OAuthCallbackHandler.callback_url = self.path

        if 'code' in query_params:
            self.send_response(200)
            title, body = "Authorization Successful", "You can close this window and return to the bot."
        else:
            error = query_params.get('error_description', query_params.get('error', ['Unknown error']))[0]
            self.send_response(400)
            title, body = "Authorization Failed", f"Error: {error}"

        self.send_header('Content-type', 'text/html')
        self.end_headers()
        self.wfile.write(f"""
        <html>
        <head><title>Twitch Soundbot</title></head>
        <body style="font-family: Arial; text-align: center; padding: 50px;">
            <h1>{title}</h1>
            <p>{body}</p>
        </body>
        </html>
        """.encode())

    def log_message(self, format, *args):
        """Suppress default server logging."""
        pass


class OAuthCallbackServer:
    """
    Temporary HTTP server to catch OAuth redirect.
    Starts server, waits for one callback, then shuts down.
    """

    def __init__(self, redirect_uri: str):
        """
        Initialize callback server.

        Args:
            redirect_uri: Expected redirect URI (e.g., http://localhost:17563/callback)
        """
        self.redirect_uri = redirect_uri
        parsed = urllib.parse.urlparse(redirect_uri)
        self.host = parsed.hostname or '127.0.0.1'
        self.port = parsed.port or 80

    def wait_for_callback(self, timeout: int = 300) -> Optional[str]:
        """
        Start server and wait for OAuth callback.

        Args:
            timeout: Maximum wait time in seconds (default 5 minutes)

        Returns:
            Full redirect URL including the query string, or None on timeout
        """
        logger.info(f"Starting callback server on {self.host}:{self.port}")
        logger.info("Waiting for authorization...")

        OAuthCallbackHandler.callback_url = None
        server = HTTPServer((self.host, self.port), OAuthCallbackHandler)
        server.timeout = timeout

        try:
            server.handle_request()
        finally:
            server.server_close()

        path = OAuthCallbackHandler.callback_url
        if path is None:
            return None
        return urllib.parse.urljoin(self.redirect_uri, path)


def uses_callback_server(redirect_uri: str) -> bool:
    """Local redirect URIs with an explicit port get a callback server."""
    parsed = urllib.parse.urlparse(redirect_uri)
    return parsed.hostname in ('localhost', '127.0.0.1') and parsed.port is not None


def browser_prompt(redirect_uri: str, input_fn: Callable[[str], str] = input) -> Callable[[str], Optional[str]]:
    """
    Build the interactive step of the authorization-code flow.

    The returned callable opens the authorize URL and returns the URL the
    browser was redirected to.
    """
    def prompt(auth_url: str) -> Optional[str]:
        logger.info("Opening browser for authorization...")
        print(f"Open this URL in your browser and login:\n\n{auth_url}\n")
        webbrowser.open(auth_url)

        if uses_callback_server(redirect_uri):
            return OAuthCallbackServer(redirect_uri).wait_for_callback()

        answer = input_fn("After logging in, paste the full URL you were redirected to:\n").strip()
        return answer or None

    return prompt
