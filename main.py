import json
import logging
from datetime import date
from typing import Optional

from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    HTTPException,
    Query,
    Request,
    Response,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from config import get_settings
from csv_utils import export_transactions
from database import get_db
from errors import AuthenticationError, InvalidInputError, NotFoundError
from models import TransactionType, User
from notifier import notify_transaction_changed, rooms
from periods import resolve_period
from schemas import (
    BudgetIn,
    BudgetOut,
    BudgetProgressOut,
    CategoryIn,
    CategoryOut,
    CategoryReportRow,
    CategoryUpdate,
    MessageOut,
    SigninIn,
    SigninOut,
    SignupIn,
    SpendingLimitIn,
    SpendingLimitOut,
    SummaryOut,
    TransactionIn,
    TransactionOut,
    TransactionPage,
    TransactionUpdate,
)
from security import decode_access_token
from services import (
    BudgetService,
    CategoryService,
    ReportService,
    TransactionFilters,
    TransactionService,
    UserService,
)
from spreadsheet import XLSX_MEDIA_TYPE, export_workbook

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Expense Manager API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> int:
    if credentials is None:
        raise HTTPException(status_code=401, detail="No token provided")
    user_id = decode_access_token(credentials.credentials)
    if user_id is None or db.get(User, user_id) is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse(status_code=400, content={"detail": detail})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(
        status_code=401, content={"detail": str(exc), "accessToken": None}
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"unhandled_error: path={request.url.path}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.get("/api/welcome", response_model=MessageOut)
def welcome():
    return MessageOut(message="Welcome to Expense Manager API.")


@app.post("/api/auth/signup", response_model=MessageOut, status_code=201)
def signup(data: SignupIn, db: Session = Depends(get_db)):
    UserService(db).register(data, default_currency=settings.default_currency)
    return MessageOut(message="User registered successfully!")


@app.post("/api/auth/signin", response_model=SigninOut)
def signin(data: SigninIn, db: Session = Depends(get_db)):
    user, token = UserService(db).authenticate(data.username, data.password)
    logger.info(f"signin_ok: user_id={user.id}")
    return SigninOut(
        id=user.id,
        username=user.username,
        email=user.email,
        access_token=token,
        monthly_limit=user.monthly_limit,
    )


@app.put("/api/users/limit", response_model=SpendingLimitOut)
def set_spending_limit(
    data: SpendingLimitIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    user = UserService(db).set_monthly_limit(user_id, data.limit)
    return SpendingLimitOut(
        message="Monthly limit updated.", new_limit=user.monthly_limit
    )


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    data: TransactionIn,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, user_id).create(data)
    background_tasks.add_task(
        notify_transaction_changed, user_id, "A new transaction was added!"
    )
    return txn


@app.get("/api/transactions", response_model=TransactionPage)
def list_transactions(
    type: Optional[TransactionType] = Query(None),
    category_id: Optional[int] = Query(None, alias="categoryId"),
    start: Optional[date] = Query(None, alias="startDate"),
    end: Optional[date] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    filters = TransactionFilters(
        type=type, category_id=category_id, period=resolve_period(start, end)
    )
    result = TransactionService(db, user_id).list_page(filters, page, limit)
    return TransactionPage(
        total_items=result.info.total_items,
        total_pages=result.info.total_pages,
        current_page=result.info.current_page,
        transactions=result.items,
    )


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user_id).get(transaction_id)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    data: TransactionUpdate,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, user_id).update(transaction_id, data)
    background_tasks.add_task(
        notify_transaction_changed,
        user_id,
        f"Transaction {transaction_id} was updated!",
    )
    return txn


@app.delete("/api/transactions/{transaction_id}", response_model=MessageOut)
def delete_transaction(
    transaction_id: int,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    TransactionService(db, user_id).delete(transaction_id)
    background_tasks.add_task(
        notify_transaction_changed,
        user_id,
        f"Transaction {transaction_id} was deleted!",
    )
    return MessageOut(message="Transaction was deleted successfully!")


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user_id).create(data)


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(
    type: Optional[TransactionType] = Query(None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user_id).list_all(type)


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    data: CategoryUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user_id).update(category_id, data)


@app.delete("/api/categories/{category_id}", response_model=MessageOut)
def delete_category(
    category_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    CategoryService(db, user_id).delete(category_id)
    return MessageOut(message="Category was deleted successfully!")


@app.post("/api/budgets", response_model=BudgetOut)
def upsert_budget(
    data: BudgetIn,
    response: Response,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    budget, created = BudgetService(db, user_id).upsert(data)
    response.status_code = 201 if created else 200
    return budget


@app.get("/api/budgets", response_model=list[BudgetOut])
def list_budgets(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1970, le=3000),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return BudgetService(db, user_id).list(year=year, month=month)


@app.delete("/api/budgets/{budget_id}", response_model=MessageOut)
def delete_budget(
    budget_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    BudgetService(db, user_id).delete(budget_id)
    return MessageOut(message="Budget was deleted successfully!")


@app.get("/api/reports/summary", response_model=SummaryOut)
def report_summary(
    start: Optional[date] = Query(None, alias="startDate"),
    end: Optional[date] = Query(None, alias="endDate"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return ReportService(db, user_id).summary(start, end)


@app.get("/api/reports/by-category", response_model=list[CategoryReportRow])
def report_by_category(
    type: TransactionType = Query(TransactionType.expense),
    start: Optional[date] = Query(None, alias="startDate"),
    end: Optional[date] = Query(None, alias="endDate"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    rows = ReportService(db, user_id).by_category(type, start, end)
    return [
        CategoryReportRow(
            category_id=row.category_id,
            category_name=row.category_name,
            icon=row.icon,
            total_amount=row.total,
        )
        for row in rows
    ]


@app.get("/api/reports/budget-progress", response_model=list[BudgetProgressOut])
def report_budget_progress(
    start: Optional[date] = Query(None, alias="startDate"),
    end: Optional[date] = Query(None, alias="endDate"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return ReportService(db, user_id).budget_progress(start, end)


@app.get("/api/reports/export-excel")
def report_export_excel(
    start: Optional[date] = Query(None, alias="startDate"),
    end: Optional[date] = Query(None, alias="endDate"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    period, transactions = ReportService(db, user_id).export_transactions(start, end)
    filename = f"transactions_{period.start}_{period.end}.xlsx"
    return Response(
        content=export_workbook(transactions),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/reports/export-csv")
def report_export_csv(
    start: Optional[date] = Query(None, alias="startDate"),
    end: Optional[date] = Query(None, alias="endDate"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    period, transactions = ReportService(db, user_id).export_transactions(start, end)
    filename = f"transactions_{period.start}_{period.end}.csv"
    return StreamingResponse(
        iter([export_transactions(transactions)]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.websocket("/ws")
async def realtime_channel(
    websocket: WebSocket, token: str = "", db: Session = Depends(get_db)
):
    user_id = decode_access_token(token) if token else None
    if user_id is None or db.get(User, user_id) is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    db.close()

    await websocket.accept()
    rooms.join(user_id, websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                continue
            if isinstance(message, dict) and message.get("event") == "join_room":
                await websocket.send_json(
                    {"event": "joined", "data": {"userId": user_id}}
                )
    except WebSocketDisconnect:
        pass
    finally:
        rooms.leave(user_id, websocket)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8080, reload=False)


if __name__ == "__main__":
    main()
