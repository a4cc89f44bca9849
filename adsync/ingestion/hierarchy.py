"""ADSYNC - Manager Hierarchy Validation.

Answers whether a target account sits under a manager account. A denial is
returned as a verdict, not raised; the orchestrator decides whether it is
fatal. Transient upstream failures are raised so they are never mistaken for
a denial.
"""

from dataclasses import dataclass
from typing import Optional

from adsync.connectors.google.endpoints import GoogleAdsEndpoints
from adsync.core.errors import TransientError, UpstreamError
from adsync.core.logging import get_logger
from adsync.models.account_models import sanitize_customer_id

logger = get_logger("ingestion.hierarchy")


@dataclass
class HierarchyVerdict:
    ok: bool
    reason: Optional[str] = None

    @classmethod
    def allowed(cls) -> "HierarchyVerdict":
        return cls(ok=True)

    @classmethod
    def denied(cls, reason: str) -> "HierarchyVerdict":
        return cls(ok=False, reason=reason)


class HierarchyValidator:
    def __init__(self, endpoints: GoogleAdsEndpoints):
        self.endpoints = endpoints

    async def validate(self, manager_id: str, target_customer_id: str) -> HierarchyVerdict:
        manager_id = sanitize_customer_id(manager_id)
        target_customer_id = sanitize_customer_id(target_customer_id)

        try:
            rows = await self.endpoints.check_hierarchy(manager_id, target_customer_id)
        except TransientError:
            raise
        except UpstreamError as e:
            # Only client-side refusals are denials; a rejected token or a
            # malformed payload propagates
            if e.status_code == 401 or not 400 <= e.status_code < 500:
                raise
            reason = (
                f"Manager {manager_id} could not confirm access to account "
                f"{target_customer_id} (HTTP {e.status_code}): {e}"
            )
            logger.warning(
                reason,
                extra={
                    "customer_id": target_customer_id,
                    "login_customer_id": manager_id,
                    "status_code": e.status_code,
                },
            )
            return HierarchyVerdict.denied(reason)

        if not rows:
            reason = f"Manager {manager_id} does not manage account {target_customer_id}"
            logger.warning(
                reason,
                extra={"customer_id": target_customer_id, "login_customer_id": manager_id},
            )
            return HierarchyVerdict.denied(reason)

        logger.info(
            f"Manager {manager_id} manages account {target_customer_id}",
            extra={"customer_id": target_customer_id, "login_customer_id": manager_id},
        )
        return HierarchyVerdict.allowed()
