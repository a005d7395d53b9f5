from app.employer.models.receipt import EmployerPaymentReceiptModel, EmployerReceiptStatus  # noqa: F401
