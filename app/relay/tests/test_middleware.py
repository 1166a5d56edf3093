"""
Tests for JWTAuthMiddleware token extraction and validation.
"""

from datetime import timedelta

from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.models import TokenUser
from rest_framework_simplejwt.tokens import AccessToken

from relay.middleware import JWTAuthMiddleware


class TestTokenExtraction:
    """
    Tests for reading the token from the connection scope.

    Verifies:
    - Query string token
    - "jwt, <token>" subprotocol token
    """

    def test_token_from_query_string(self):
        scope = {"query_string": b"token=abc&other=1"}

        assert JWTAuthMiddleware._get_token_from_query(scope) == "abc"

    def test_no_token_in_query_string(self):
        assert JWTAuthMiddleware._get_token_from_query({"query_string": b""}) is None

    def test_token_from_subprotocol(self):
        scope = {"subprotocols": ["jwt", "abc"]}

        assert JWTAuthMiddleware._get_token_from_subprotocol(scope) == "abc"

    def test_subprotocol_without_jwt_marker_is_ignored(self):
        scope = {"subprotocols": ["chat", "abc"]}

        assert JWTAuthMiddleware._get_token_from_subprotocol(scope) is None


class TestTokenValidation:
    """
    Tests for building the stateless user from a token.

    Verifies:
    - Valid tokens yield a TokenUser carrying the user_id claim
    - Invalid, expired or claimless tokens yield AnonymousUser
    """

    def test_valid_token_yields_token_user(self, token_for):
        """
        The user_id claim becomes the user's opaque identifier.

        Why it matters: No local user table exists; identity comes from
        the token alone.
        """
        user = JWTAuthMiddleware._get_user_from_token(token_for("u-42"))

        assert isinstance(user, TokenUser)
        assert user.is_authenticated
        assert str(user.id) == "u-42"

    def test_garbage_token_yields_anonymous(self):
        user = JWTAuthMiddleware._get_user_from_token("not.a.jwt")

        assert isinstance(user, AnonymousUser)

    def test_expired_token_yields_anonymous(self):
        token = AccessToken()
        token["user_id"] = "u1"
        token.set_exp(lifetime=-timedelta(minutes=1))

        user = JWTAuthMiddleware._get_user_from_token(str(token))

        assert isinstance(user, AnonymousUser)

    def test_token_without_user_claim_yields_anonymous(self):
        token = AccessToken()

        user = JWTAuthMiddleware._get_user_from_token(str(token))

        assert isinstance(user, AnonymousUser)
