"""Services Module

Provides the retry layer, paid tier detection, batch control and model listing.
"""

from keyprobe.services import (
    batch_service,
    model_service,
    paid_detection_service,
    retry_service,
)

__all__ = ["batch_service", "model_service", "paid_detection_service", "retry_service"]
