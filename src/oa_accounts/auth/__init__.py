"""OAuth flows: browser (PKCE) login, device authorization and refresh."""

from .browser_flow import BrowserLoginFlow
from .claims import TokenClaims, parse_token_claims
from .device_flow import DeviceCode, DeviceFlowClient
from .oauth_client import AuthorizationRequest, OAuthClient, build_authorization_url
from .pkce import generate_pkce_pair, generate_state


__all__ = [
    "AuthorizationRequest",
    "BrowserLoginFlow",
    "DeviceCode",
    "DeviceFlowClient",
    "OAuthClient",
    "TokenClaims",
    "build_authorization_url",
    "generate_pkce_pair",
    "generate_state",
    "parse_token_claims",
]
