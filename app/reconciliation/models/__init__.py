from app.reconciliation.models.workflow_step import (  # noqa: F401
    SagaType,
    StepOutcome,
    WorkflowStepModel,
)
