"""Bulk operation coordinator.

Fans one action out over many requests. Each request gets its own engine
call and transaction; a failure on one item is reported in its result and
never aborts the rest of the batch.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Optional

from django.db import DatabaseError

from .exceptions import AlreadyFinalized, ApprovalError
from .managers import TransitionEngine

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class BulkItemResult:
    request_id: object
    success: bool
    error: Optional[str] = None
    message: str = ""
    status: Optional[str] = None

    def to_dict(self):
        payload = {"request_id": self.request_id, "success": self.success}
        if self.error:
            payload["error"] = self.error
            payload["message"] = self.message
        if self.status:
            payload["status"] = self.status
        return payload


class BulkOperationCoordinator:

    @staticmethod
    def apply_bulk(request_ids, actor_id, actor_role, action, comment=None):
        """Apply ``action`` to every id, in order.

        Returns:
            list of BulkItemResult, one per id
        """
        results = []
        for request_id in request_ids:
            try:
                outcome = TransitionEngine.apply(
                    request_id, actor_id, actor_role, action, comment=comment
                )
            except ApprovalError as exc:
                if not isinstance(exc, AlreadyFinalized):
                    logger.info("Bulk %s on request #%s failed: %s", action, request_id, exc.code)
                results.append(BulkItemResult(
                    request_id=request_id,
                    success=False,
                    error=exc.code,
                    message=exc.message,
                ))
                continue
            except DatabaseError:
                logger.exception("Bulk %s on request #%s hit a database error", action, request_id)
                results.append(BulkItemResult(
                    request_id=request_id,
                    success=False,
                    error=INTERNAL_ERROR,
                    message="Internal error while applying the action",
                ))
                continue
            results.append(BulkItemResult(
                request_id=request_id,
                success=True,
                status=str(outcome.to_status),
            ))
        return results

    @staticmethod
    def summarize(results):
        """Counts for reporting partial success, e.g. 8 of 10 approved."""
        errors = Counter(r.error for r in results if not r.success)
        succeeded = sum(1 for r in results if r.success)
        return {
            "total": len(results),
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
            "errors": dict(errors),
        }
