"""
Unit tests for password hashing, token issuance and the logging notifier.
"""

import logging

import jwt
import pytest

from app.domain.interfaces import NotificationEvent
from app.infrastructure.notifications import LoggingNotificationGateway
from app.infrastructure.security import PasswordHasher, TokenIssuer


class TestPasswordHasher:

    def test_hash_is_not_plaintext_and_verifies(self):
        hasher = PasswordHasher()

        password_hash = hasher.hash("correct horse battery")

        assert password_hash != "correct horse battery"
        assert password_hash.startswith("$argon2")
        assert hasher.verify("correct horse battery", password_hash) is True
        assert hasher.verify("wrong", password_hash) is False

    def test_hashes_are_salted(self):
        hasher = PasswordHasher()

        assert hasher.hash("same") != hasher.hash("same")


class TestTokenIssuer:

    def test_issued_token_carries_identity(self, settings):
        issuer = TokenIssuer(settings)

        payload = issuer.decode(issuer.issue("user-1", "sam@uni.ac.uk"))

        assert payload["sub"] == "user-1"
        assert payload["email"] == "sam@uni.ac.uk"
        assert payload["exp"] - payload["iat"] == settings.access_token_expire_days * 86400

    def test_token_from_other_secret_is_rejected(self, settings):
        other = TokenIssuer(settings.model_copy(update={"jwt_secret": "a-completely-different-secret-value"}))

        with pytest.raises(jwt.InvalidTokenError):
            TokenIssuer(settings).decode(other.issue("user-1", "sam@uni.ac.uk"))


class TestLoggingNotificationGateway:

    @pytest.mark.asyncio
    async def test_user_notification_is_logged(self, caplog):
        gateway = LoggingNotificationGateway()

        with caplog.at_level(logging.INFO, logger="app.infrastructure.notifications"):
            await gateway.notify_user("sam@uni.ac.uk", "Sam", NotificationEvent.SUBSCRIPTION_ACTIVATED)

        assert "sam@uni.ac.uk" in caplog.text
        assert NotificationEvent.SUBSCRIPTION_ACTIVATED.value in caplog.text

    @pytest.mark.asyncio
    async def test_guardian_notification_is_logged(self, caplog):
        gateway = LoggingNotificationGateway()

        with caplog.at_level(logging.INFO, logger="app.infrastructure.notifications"):
            await gateway.notify_guardian(
                "parent@example.com", "Alex", NotificationEvent.REGISTRATION, trial_end_date="2026-03-08"
            )

        assert "parent@example.com" in caplog.text
        assert "2026-03-08" in caplog.text
