from app.board.models.receipt import BoardReceiptModel, BoardReceiptStatus  # noqa: F401
