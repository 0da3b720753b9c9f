"""Tests for PKCE parameters and authorization URL building."""
import re
from urllib.parse import parse_qs, urlsplit

from jira_client_web.pkce import build_authorization_url, generate_challenge, generate_state, generate_verifier

URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


def test_generate_verifier_is_urlsafe_unpadded():
    v = generate_verifier()
    assert len(v) == 43  # 32 bytes, base64url, no padding
    assert URL_SAFE.match(v)
    assert "=" not in v


def test_generate_state_is_urlsafe_unpadded():
    s = generate_state()
    assert len(s) == 43
    assert URL_SAFE.match(s)


def test_verifier_and_state_do_not_repeat():
    verifiers = {generate_verifier() for _ in range(10_000)}
    states = {generate_state() for _ in range(10_000)}
    assert len(verifiers) == 10_000
    assert len(states) == 10_000
    assert all(URL_SAFE.match(v) for v in verifiers)


def test_challenge_matches_rfc7636_example():
    # RFC 7636 Appendix B
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert generate_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_challenge_is_deterministic():
    v = generate_verifier()
    assert generate_challenge(v) == generate_challenge(v)
    c = generate_challenge(v)
    assert len(c) == 43
    assert URL_SAFE.match(c)


def test_challenge_changes_with_any_single_character():
    v = generate_verifier()
    original = generate_challenge(v)
    for i in range(len(v)):
        replacement = "A" if v[i] != "A" else "B"
        mutated = v[:i] + replacement + v[i + 1 :]
        assert generate_challenge(mutated) != original


def _build(**overrides):
    kwargs = dict(
        client_id="client1",
        redirect_uri="http://localhost:3000/auth/callback",
        state="mystate",
        code_challenge="challenge123",
        authorization_url="https://auth.example/authorize",
        audience="api.atlassian.com",
        scopes=("read:jira-work", "offline_access"),
    )
    kwargs.update(overrides)
    return build_authorization_url(**kwargs)


def test_build_authorization_url_round_trips():
    url = _build()
    parts = urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://auth.example/authorize"
    params = {k: v[0] for k, v in parse_qs(parts.query).items()}
    assert params == {
        "audience": "api.atlassian.com",
        "client_id": "client1",
        "scope": "read:jira-work offline_access",
        "redirect_uri": "http://localhost:3000/auth/callback",
        "response_type": "code",
        "state": "mystate",
        "code_challenge": "challenge123",
        "code_challenge_method": "S256",
        "prompt": "consent",
    }


def test_build_authorization_url_parameter_order_is_stable():
    keys = [pair.split("=")[0] for pair in urlsplit(_build()).query.split("&")]
    assert keys == [
        "audience",
        "client_id",
        "scope",
        "redirect_uri",
        "response_type",
        "state",
        "code_challenge",
        "code_challenge_method",
        "prompt",
    ]
    assert _build() == _build()
