import contextlib

from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi import FastAPI, Request

from .core.config import settings
from .core.client import SolanaClient
from .core.logger import logger
from .routes.api import router
from .services.composer import TransactionComposer
from .services.key_pair import load_operator_identity
from .services.referral import JsonReferralDirectory
from .services.split import SplitPolicy

@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    operator = load_operator_identity(settings.solana_keypair)
    solana_client = SolanaClient(
        settings.solana_rpc_url,
        max_calls=settings.rpc_max_calls,
        per_seconds=settings.rpc_per_seconds,
    )

    referrals = JsonReferralDirectory(settings.referrals_path)

    app.state.solana = solana_client
    app.state.referrals = referrals
    app.state.composer = TransactionComposer(
        gateway=solana_client,
        referrals=referrals,
        operator=operator,
        policy=SplitPolicy.from_settings(settings),
        compute_unit_limit=settings.compute_unit_limit,
        compute_unit_price=settings.compute_unit_price,
    )
    logger.info(f"Rent reclaim service ready on {settings.solana_rpc_url}")

    yield

    await solana_client.close()

app = FastAPI(
    lifespan=lifespan,
)
app.include_router(router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(RequestValidationError)
async def invalid_request_handler(request: Request, exc: RequestValidationError):
    detail = [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]
    return JSONResponse(status_code=400, content={"error": "Invalid request parameters", "detail": detail})

@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Failed to create the transaction"})
