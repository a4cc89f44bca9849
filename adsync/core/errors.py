"""ADSYNC - Error Taxonomy.

Run-level failures derive from AdsyncError and abort an ingestion.
A denied hierarchy check is a value (see ingestion.hierarchy), and only
becomes HierarchyDeniedError when fallback is disabled.
"""

from dataclasses import dataclass
from typing import Optional


class AdsyncError(Exception):
    """Base class for every failure the pipeline reports to its caller."""


class NoCredentialError(AdsyncError):
    """No stored delegation for the user. The user must re-authorize."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No Google Ads credential found for user {user_id}")


class RefreshError(AdsyncError):
    """The OAuth provider rejected the refresh-token grant."""

    def __init__(self, message: str, status_code: int = 0, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class UpstreamError(AdsyncError):
    """Non-2xx response, network failure or malformed payload from Google."""

    def __init__(self, message: str, status_code: int = 0, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class TransientError(UpstreamError):
    """Rate limiting, server errors and timeouts that survived every retry."""


class AccessDeniedError(UpstreamError):
    """Permission failure while querying a customer's metrics."""

    def __init__(
        self,
        customer_id: str,
        login_customer_id: Optional[str] = None,
        status_code: int = 403,
        body: str = "",
    ):
        self.customer_id = customer_id
        self.login_customer_id = login_customer_id
        if login_customer_id:
            message = (
                f"Access denied to account {customer_id} through manager "
                f"{login_customer_id}: the manager may not manage this account "
                f"or the credential lacks access to it"
            )
        else:
            message = (
                f"Access denied to account {customer_id} without a manager context: "
                f"the credential has no direct access or the developer token is not approved"
            )
        super().__init__(message, status_code, body)


class HierarchyDeniedError(AdsyncError):
    """A denied hierarchy check that the fallback policy does not allow to bypass."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class MissingTargetAccountError(AdsyncError):
    """No target account was requested and none is linked to the credential."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(
            f"No target account given and no account linked for user {user_id}"
        )


@dataclass
class PartialMetadataFailure:
    """A per-account metadata lookup that degraded to a placeholder."""

    customer_id: str
    error: str
