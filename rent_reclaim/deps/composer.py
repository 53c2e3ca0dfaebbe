from fastapi import Request

from ..services.composer import TransactionComposer

def get_composer(request: Request) -> TransactionComposer:
    """Safe FastAPI dependency to extract TransactionComposer from app state."""
    return request.app.state.composer
