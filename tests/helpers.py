"""Shared identifiers for entitlement tests."""

ORG_ID = "org-acme"
OTHER_ORG_ID = "org-globex"
USER_ID = "user-alice"
OTHER_USER_ID = "user-bob"
