"""
Google API client construction shared by the Sheets store and the Calendar adapter

Both use a service account whose JSON key is passed in through the
GOOGLE_SERVICE_ACCOUNT_JSON environment variable.
"""

import json
import logging
from typing import Any, Optional, Sequence

import google_auth_httplib2
import httplib2
from google.oauth2 import service_account
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"


def load_service_account_credentials(
    raw_json: Optional[str],
    scopes: Sequence[str],
) -> service_account.Credentials:
    """
    Build service-account credentials from the raw JSON key.

    Args:
        raw_json: Contents of the service-account key file
        scopes: OAuth scopes to request

    Returns:
        Scoped credentials

    Raises:
        ValueError: If the JSON is missing or malformed
    """
    if not raw_json:
        raise ValueError("GOOGLE_SERVICE_ACCOUNT_JSON is not set")
    try:
        info = json.loads(raw_json)
    except json.JSONDecodeError as e:
        raise ValueError(f"GOOGLE_SERVICE_ACCOUNT_JSON is not valid JSON: {e}") from e
    return service_account.Credentials.from_service_account_info(info, scopes=list(scopes))


def build_google_service(
    api: str,
    version: str,
    credentials: service_account.Credentials,
    timeout: float,
) -> Any:
    """
    Build a discovery client whose transport enforces a timeout.

    Args:
        api: API name ('calendar', 'sheets')
        version: API version ('v3', 'v4')
        credentials: Authorized credentials
        timeout: Socket timeout in seconds for every request

    Returns:
        googleapiclient Resource
    """
    http = google_auth_httplib2.AuthorizedHttp(credentials, http=httplib2.Http(timeout=timeout))
    service = build(api, version, http=http, cache_discovery=False)
    logger.info(f" Google {api} {version} client ready (timeout={timeout}s)")
    return service
