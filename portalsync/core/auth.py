"""API-key authentication for the hosted backend."""

import os
from urllib.parse import urlencode

from dotenv import load_dotenv


class BackendAuth:
    """Holds backend credentials and builds request headers and URLs."""

    REST_PREFIX = "/rest/v1"
    FUNCTIONS_PREFIX = "/functions/v1"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        """Initialize authentication with credentials.

        Args:
            api_key: Backend API key (or load from PORTALSYNC_API_KEY env)
            base_url: Backend base URL (or load from PORTALSYNC_BACKEND_URL env)
        """
        load_dotenv()

        self.api_key = api_key or os.getenv("PORTALSYNC_API_KEY", "")
        self.base_url = (base_url or os.getenv("PORTALSYNC_BACKEND_URL", "")).rstrip("/")

        if not self.api_key or not self.base_url:
            raise ValueError(
                "Missing backend credentials. Set PORTALSYNC_API_KEY and "
                "PORTALSYNC_BACKEND_URL environment variables or pass them directly."
            )

    def get_headers(self, content_type: str = "application/json") -> dict[str, str]:
        """Generate authentication headers for a backend request."""
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": content_type,
            "Accept": "application/json",
        }

    def get_rest_url(self, table: str, query_params: dict[str, str] | None = None) -> str:
        """Build the REST URL for a table.

        Args:
            table: Table name (e.g., "tasks")
            query_params: Optional query parameters

        Returns:
            Full URL string
        """
        url = f"{self.base_url}{self.REST_PREFIX}/{table}"
        if query_params:
            url += "?" + urlencode(query_params)
        return url

    def get_function_url(self, name: str) -> str:
        """Build the URL of a hosted function (e.g., "sync-support-tickets")."""
        return f"{self.base_url}{self.FUNCTIONS_PREFIX}/{name}"

    def masked_key(self) -> str:
        """API key shortened for display."""
        if len(self.api_key) <= 12:
            return "*" * len(self.api_key)
        return f"{self.api_key[:8]}...{self.api_key[-4:]}"
