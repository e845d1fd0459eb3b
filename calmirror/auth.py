"""Google OAuth2 credentials for Calendar (read) and Tasks access."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlparse

import qrcode
import yaml
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from .config import get_credentials_path, get_oauth2_config_path

logger = logging.getLogger(__name__)

CALENDAR_READ_SCOPE = "https://www.googleapis.com/auth/calendar.readonly"
TASKS_SCOPE = "https://www.googleapis.com/auth/tasks"
REQUIRED_SCOPES = [CALENDAR_READ_SCOPE, TASKS_SCOPE]

# Google no longer displays codes for out-of-band clients; the browser is sent
# to a loopback address nothing listens on and the user pastes that URL back
LOOPBACK_REDIRECT = "http://localhost:1"


@dataclass
class OAuth2Config:
    """Client ID and secret of the Google Cloud OAuth client."""

    client_id: str
    client_secret: str
    scopes: list[str] = field(default_factory=lambda: list(REQUIRED_SCOPES))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OAuth2Config":
        oauth2 = data["google_oauth2"]
        config = cls(client_id=oauth2["client_id"], client_secret=oauth2["client_secret"])
        if oauth2.get("scopes"):
            config.scopes = [str(scope) for scope in oauth2["scopes"]]
        return config

    def client_config(self) -> dict[str, Any]:
        """Client settings in the shape google-auth-oauthlib expects."""
        return {
            "installed": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
                "redirect_uris": [LOOPBACK_REDIRECT],
            }
        }


class CredentialStore:
    """Authorized-user credentials for one account, kept as JSON."""

    def __init__(self, path: Path):
        self.path = path

    def load(self, scopes: list[str]) -> Credentials | None:
        if not self.path.exists():
            return None
        try:
            return Credentials.from_authorized_user_file(str(self.path), scopes)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable credentials at {self.path}: {e}")
            return None

    def save(self, credentials: Credentials):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(credentials.to_json(), encoding="utf-8")
        os.chmod(self.path, 0o600)


def extract_authorization_code(response: str) -> str:
    """Accept either the bare code or the whole redirected URL."""
    response = response.strip()
    if not response:
        raise ValueError("No authorization code provided")
    if "://" not in response:
        return response

    query = parse_qs(urlparse(response).query)
    if "error" in query:
        raise ValueError(f"Authorization was refused: {query['error'][0]}")
    if "code" not in query:
        raise ValueError("The pasted URL does not contain an authorization code")
    return query["code"][0]


class GoogleAuthenticator:
    """Obtains and refreshes credentials for one named account."""

    def __init__(self, account_name: str, oauth2_config: OAuth2Config):
        self.account_name = account_name
        self.oauth2_config = oauth2_config
        self.store = CredentialStore(get_credentials_path(account_name))

    def authenticate(self) -> Credentials:
        """Return usable credentials, running the consent flow when needed."""
        return self.load_authorized() or self._run_consent_flow()

    def load_authorized(self) -> Credentials | None:
        """Stored credentials, refreshed if expired; never prompts.

        Returns None when nothing is stored, the refresh token was revoked,
        or the stored grant is missing Calendar or Tasks access.
        """
        credentials = self.store.load(self.oauth2_config.scopes)
        if credentials is None:
            return None

        if not credentials.valid:
            if not (credentials.expired and credentials.refresh_token):
                return None
            try:
                credentials.refresh(Request())
            except RefreshError as e:
                logger.warning(f"Could not refresh credentials for {self.account_name}: {e}")
                return None
            self.store.save(credentials)

        if not credentials.has_scopes(REQUIRED_SCOPES):
            logger.warning(f"Credentials for {self.account_name} lack Calendar or Tasks access")
            return None

        return credentials

    def _run_consent_flow(self) -> Credentials:
        print(f"🔐 Authorizing Calendar and Tasks access for {self.account_name}...")

        flow = Flow.from_client_config(
            self.oauth2_config.client_config(),
            scopes=self.oauth2_config.scopes,
            redirect_uri=LOOPBACK_REDIRECT,
        )
        auth_url, _ = flow.authorization_url(access_type="offline", prompt="consent")

        show_qr_code(auth_url)
        print(f"🔗 Open this URL to grant access: {auth_url}")
        print("\n💡 After approving, the browser lands on a page that fails to load.")
        print("   Copy that page's full address (or just its code= value).")

        code = extract_authorization_code(input("\n📝 Paste it here: "))
        flow.fetch_token(code=code)

        credentials = flow.credentials
        self.store.save(credentials)
        print(f"✅ Stored credentials for {self.account_name}")
        return credentials


def show_qr_code(url: str):
    """Print the URL as a terminal QR code for signing in from a phone."""
    qr = qrcode.QRCode(box_size=1, border=1)
    qr.add_data(url)
    try:
        qr.make(fit=True)
    except ValueError as e:
        logger.debug(f"URL too long for a QR code: {e}")
        return
    print("📱 Scan to authorize on another device:")
    qr.print_ascii(invert=True)


def create_oauth2_config_file():
    """Write a template OAuth2 client file and return its path."""
    config_path = get_oauth2_config_path()
    template = {
        "google_oauth2": {
            "client_id": "your-client-id.apps.googleusercontent.com",
            "client_secret": "your-client-secret",
            "scopes": list(REQUIRED_SCOPES),
        }
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        f.write("# Google Cloud OAuth client for the Calendar and Tasks APIs\n")
        yaml.safe_dump(template, f, sort_keys=False)

    return config_path


def load_oauth2_config() -> OAuth2Config | None:
    """Read the OAuth2 client file, or None if it is missing or incomplete."""
    config_path = get_oauth2_config_path()
    if not config_path.exists():
        logger.warning(f"OAuth2 configuration not found at {config_path}")
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            return OAuth2Config.from_dict(yaml.safe_load(f) or {})
    except (OSError, KeyError, TypeError, yaml.YAMLError) as e:
        logger.error(f"Invalid OAuth2 configuration in {config_path}: {e}")
        return None
