from app.employer.schemas.receipt import (  # noqa: F401
    EmployerReceiptResponse,
    EmployerValidateRequest,
    EmployerValidationResponse,
)
