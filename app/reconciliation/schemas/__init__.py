from app.reconciliation.schemas.reconciliation import (  # noqa: F401
    AnomalyResponse,
    ChainResponse,
    RepairRequest,
    RepairResponse,
    WorkflowStepResponse,
)
