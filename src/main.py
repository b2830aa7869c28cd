from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from src.db.core import Base, engine
from src.logging_config import setup_logging, get_logger
from src.services.query_cache import QueryCache
from src.routers.accounts import router as accounts_router
from src.routers.transactions import router as transactions_router
from src.routers.credit_cards import router as credit_cards_router
from src.routers.bills import router as bills_router
from src.routers.categories import router as categories_router
from src.routers.salaries import router as salaries_router
from src.routers.investments import router as investments_router
from src.routers.settings import router as settings_router
from src.routers.reports import router as reports_router

setup_logging()
logger = get_logger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Ledger Keeper")
app.state.query_cache = QueryCache()


@app.exception_handler(OperationalError)
async def storage_unavailable_handler(request: Request, exc: OperationalError):
    logger.error(f"Storage unavailable during {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage is unavailable, try again later."},
    )


app.include_router(accounts_router)
app.include_router(transactions_router)
app.include_router(credit_cards_router)
app.include_router(bills_router)
app.include_router(categories_router)
app.include_router(salaries_router)
app.include_router(investments_router)
app.include_router(settings_router)
app.include_router(reports_router)


@app.get("/")
def read_root():
    return "Server is running."
