from inbox_triage.models.api.triage_response import (
    BulkOperationResponse,
    ClassificationResultResponse,
    FollowUpItemResponse,
    QueueStatisticsResponse,
)

__all__ = [
    "BulkOperationResponse",
    "ClassificationResultResponse",
    "FollowUpItemResponse",
    "QueueStatisticsResponse",
]
