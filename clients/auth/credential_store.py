"""
Credential store for OAuth tokens.
Handles durable token persistence to disk.
"""
import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from schemas import Credential
from utils import setup_logger


logger = setup_logger(__name__)


class CredentialStore:
    """
    Loads and saves the token pair as a JSON file.

    Writes go to a temporary file in the same directory and are moved into
    place, so a crash never leaves a half-written token file behind.
    """

    def __init__(self, storage_path: Path):
        """
        Initialize credential store.

        Args:
            storage_path: Path to token storage file
        """
        self.storage_path = Path(storage_path)

    def save(self, credential: Credential) -> None:
        """
        Persist the credential durably.

        Args:
            credential: Token pair to store

        Raises:
            OSError: If the file cannot be written
        """
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix='.token-', suffix='.json', dir=str(self.storage_path.parent))
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(credential.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            try:
                os.chmod(tmp_name, 0o600)
            except OSError:
                pass
            os.replace(tmp_name, self.storage_path)
        except Exception as e:
            logger.error(f"Failed to save tokens: {e}")
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

        logger.debug(f"Tokens saved to {self.storage_path}")

    def load(self) -> Optional[Credential]:
        """
        Load the stored credential.

        Returns:
            Credential or None if missing or unreadable
        """
        if not self.storage_path.exists():
            logger.debug("No stored tokens found")
            return None

        try:
            with open(self.storage_path, 'r', encoding='utf-8') as f:
                token_data = json.load(f)
            credential = Credential.from_dict(token_data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Failed to load tokens: {e}")
            return None

        logger.debug("Tokens loaded from storage")
        return credential

    def clear(self) -> None:
        """Delete stored tokens."""
        if self.storage_path.exists():
            self.storage_path.unlink()
            logger.info("Tokens cleared")
