from app.worker.schemas.upload import (  # noqa: F401
    BatchCreate,
    BatchResponse,
    GenerationResponse,
    RawRecordIn,
    RawRecordResponse,
    StatusSummaryResponse,
    ValidationResponse,
)
from app.worker.schemas.payment import (  # noqa: F401
    SendToEmployerResponse,
    WorkerPaymentResponse,
    WorkerReceiptResponse,
)
