"""Display label and color for each quote status."""

from typing import Mapping

from repair_kernel.domain.dtos import StatusInfo
from repair_kernel.domain.workflow import QuoteStatus

STATUS_INFO: Mapping[str, StatusInfo] = {
    QuoteStatus.DRAFT.value: StatusInfo("Draft", "gray"),
    QuoteStatus.SENT_TO_TECH.value: StatusInfo("Sent to Tech", "blue"),
    QuoteStatus.TECH_DECLINED.value: StatusInfo("Tech Declined", "red"),
    QuoteStatus.TECH_SUBMITTED.value: StatusInfo("Tech Submitted", "purple"),
    QuoteStatus.UNDER_REVIEW.value: StatusInfo("Under Review", "orange"),
    QuoteStatus.SENT_TO_CLIENT.value: StatusInfo("Sent to Client", "indigo"),
    QuoteStatus.ACCEPTED.value: StatusInfo("Accepted", "green"),
    QuoteStatus.DECLINED.value: StatusInfo("Declined", "red"),
    QuoteStatus.CLOSED.value: StatusInfo("Closed", "slate"),
}

UNKNOWN_STATUS_COLOR = "gray"


def get_status_info(
    status: QuoteStatus | str,
    overrides: Mapping[str, StatusInfo] | None = None,
) -> StatusInfo:
    """Pure lookup.  Unknown statuses echo the raw value with a gray badge."""
    key = status.value if isinstance(status, QuoteStatus) else str(status)
    if overrides and key in overrides:
        return overrides[key]
    info = STATUS_INFO.get(key)
    if info is None:
        return StatusInfo(key, UNKNOWN_STATUS_COLOR)
    return info
