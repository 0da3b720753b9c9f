"""
PKCE (RFC 7636) and authorization request helpers for login initiation.
S256 only; state generation; Atlassian /authorize URL.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from urllib.parse import urlencode

CODE_CHALLENGE_METHOD = "S256"

# 32 bytes -> 43 chars base64url (RFC 7636 recommendation)
_ENTROPY_BYTES = 32


def _b64url(data: bytes) -> str:
    return urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_verifier() -> str:
    """code_verifier: 256 bits from the OS CSPRNG, base64url without padding."""
    return _b64url(secrets.token_bytes(_ENTROPY_BYTES))


def generate_state() -> str:
    """Opaque anti-CSRF value; echoed back by the provider on callback and used once."""
    return _b64url(secrets.token_bytes(_ENTROPY_BYTES))


def generate_challenge(verifier: str) -> str:
    """S256 code_challenge: base64url(SHA256(ascii(verifier))), unpadded."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return _b64url(digest)


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    state: str,
    code_challenge: str,
    *,
    authorization_url: str,
    audience: str,
    scopes: tuple[str, ...] | list[str],
) -> str:
    """Build the provider /authorize URL. Parameter order is fixed."""
    params = {
        "audience": audience,
        "client_id": client_id,
        "scope": " ".join(scopes),
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": CODE_CHALLENGE_METHOD,
        "prompt": "consent",
    }
    return f"{authorization_url}?{urlencode(params)}"
