import logging
from typing import Iterator, Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, Request, UploadFile
from fastapi.responses import Response
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from config import Settings, get_settings
from database import build_engine, build_session_factory, session_scope
from repositories import SqlCategoriesRepository
from schemas import (
    BalanceOut,
    CategoryOut,
    ImportResultOut,
    TransactionIn,
    TransactionListOut,
    TransactionOut,
    TransactionUpdateIn,
)
from services import (
    CategoryService,
    ImportService,
    ImportValidationError,
    InsufficientBalance,
    TransactionNotFound,
    TransactionService,
)

logger = logging.getLogger(__name__)


def get_db(request: Request) -> Iterator[Session]:
    with session_scope(request.app.state.session_factory) as session:
        yield session


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user id")
    return user_id


def get_transaction_service(
    request: Request, db: Session = Depends(get_db)
) -> TransactionService:
    return TransactionService.for_session(
        db, page_size=request.app.state.settings.page_size
    )


def get_import_service(db: Session = Depends(get_db)) -> ImportService:
    return ImportService.for_session(db)


def _transaction_list_out(result) -> TransactionListOut:
    return TransactionListOut(
        transactions=[TransactionOut.model_validate(t) for t in result.transactions],
        total_transactions=result.total_transactions,
        balance=BalanceOut.model_validate(result.balance),
    )


def create_app(
    settings: Optional[Settings] = None, engine: Optional[Engine] = None
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(title="Ledger")
    app.state.settings = settings
    app.state.engine = engine or build_engine(settings.database_url)
    app.state.session_factory = build_session_factory(app.state.engine)
    logger.info(
        f"app_configured: database={app.state.engine.url.render_as_string()} "
        f"page_size={settings.page_size}"
    )

    @app.post("/transactions", response_model=TransactionOut, status_code=201)
    def create_transaction(
        data: TransactionIn,
        user_id: str = Depends(get_current_user_id),
        service: TransactionService = Depends(get_transaction_service),
    ):
        try:
            return service.create(data, user_id)
        except InsufficientBalance as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.get("/transactions", response_model=TransactionListOut)
    def list_transactions(
        page: Optional[int] = Query(default=None, ge=1),
        user_id: str = Depends(get_current_user_id),
        service: TransactionService = Depends(get_transaction_service),
    ):
        return _transaction_list_out(service.list(user_id, page))

    @app.put("/transactions/{transaction_id}", response_model=TransactionOut)
    def update_transaction(
        transaction_id: str,
        data: TransactionUpdateIn,
        user_id: str = Depends(get_current_user_id),
        service: TransactionService = Depends(get_transaction_service),
    ):
        try:
            return service.update(transaction_id, data, user_id)
        except TransactionNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.delete("/transactions/{transaction_id}", status_code=204)
    def delete_transaction(
        transaction_id: str,
        user_id: str = Depends(get_current_user_id),
        service: TransactionService = Depends(get_transaction_service),
    ):
        try:
            service.delete(transaction_id, user_id)
        except TransactionNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return Response(status_code=204)

    @app.post(
        "/transactions/import", response_model=ImportResultOut, status_code=201
    )
    async def import_transactions(
        file: UploadFile = File(...),
        user_id: str = Depends(get_current_user_id),
        service: ImportService = Depends(get_import_service),
    ):
        try:
            content = (await file.read()).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise HTTPException(status_code=400, detail="File must be UTF-8") from exc
        try:
            result = service.import_csv(content, user_id)
        except ImportValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.errors) from exc
        return ImportResultOut(
            transactions=[TransactionOut.model_validate(t) for t in result.transactions],
            categories=[CategoryOut.model_validate(c) for c in result.categories],
        )

    @app.get("/categories", response_model=list[CategoryOut])
    def list_categories(db: Session = Depends(get_db)):
        return CategoryService(SqlCategoriesRepository(db)).list_all()

    return app


app = create_app()
