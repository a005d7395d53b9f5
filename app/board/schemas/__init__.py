from app.board.schemas.receipt import (  # noqa: F401
    BoardProcessRequest,
    BoardReceiptResponse,
    BoardRejectRequest,
)
