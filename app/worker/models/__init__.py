from app.worker.models.uploaded_file import (  # noqa: F401
    BatchStatus,
    RecordStatus,
    UploadedFileModel,
    WorkerUploadedDataModel,
)
from app.worker.models.payment import (  # noqa: F401
    WorkerPaymentModel,
    WorkerPaymentReceiptModel,
    WorkerPaymentStatus,
    WorkerReceiptStatus,
    new_request_reference,
)
