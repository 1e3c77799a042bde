"""
Expense Tracker - Main FastAPI Application

PURPOSE: FastAPI routes, endpoints, and application setup
SCOPE: HTTP API layer and request/response handling
DEPENDENCIES: FastAPI, aiofiles, all backend modules
"""

import os
import uuid
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import aiofiles
import aiofiles.os
from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .ai_client import GenerativeModelClient
from .config import AppConfig, config
from .database import DatabaseManager
from .exceptions import AuthenticationError, ExpenseTrackerError, ValidationError
from .forecast import ForecastService
from .managers import CategoryManager, ExpenseManager, UserManager
from .ocr_processor import ReceiptScanService
from .schemas import (
    BudgetRequest, CategoryRequest, ExpenseRequest, ForgotPasswordRequest,
    LoginRequest, RegisterRequest, ResetPasswordRequest
)
from .security import create_access_token, decode_access_token, generate_reset_token
from .validators import (
    sanitize_form_data, validate_category_name, validate_expense_data, validate_registration
)

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass
class Services:
    """Service instances shared by all requests of one application."""
    config: AppConfig
    db: DatabaseManager
    users: UserManager
    expenses: ExpenseManager
    categories: CategoryManager
    receipts: ReceiptScanService
    forecasts: ForecastService


def build_services(app_config: AppConfig, model_client: GenerativeModelClient = None) -> Services:
    model_client = model_client or GenerativeModelClient(app_config)
    return Services(
        config=app_config,
        db=DatabaseManager(app_config.DB_FILE),
        users=UserManager(app_config.DB_FILE),
        expenses=ExpenseManager(app_config.DB_FILE),
        categories=CategoryManager(app_config.DB_FILE, app_config.DEFAULT_CATEGORIES),
        receipts=ReceiptScanService(model_client, app_config),
        forecasts=ForecastService(model_client, app_config),
    )


# ============================================================================
# DEPENDENCIES
# ============================================================================

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> dict:
    """Resolve the bearer token to a user or fail with 401."""
    token = credentials.credentials if credentials else None
    user_id = decode_access_token(token, services.config)
    user = await services.users.get_user(user_id)
    if not user:
        raise AuthenticationError("Not authorized, user not found")
    return user


def _raise_if_invalid(is_valid: bool, errors: List[str]) -> None:
    if not is_valid:
        raise HTTPException(status_code=400, detail="; ".join(errors))


router = APIRouter(prefix="/api")


# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

def _auth_response(user: dict, services: Services) -> dict:
    return {
        "id": user["id"],
        "username": user["username"],
        "email": user["email"],
        "phoneNumber": user["phone_number"],
        "token": create_access_token(user["id"], services.config),
    }


@router.post("/auth/register", status_code=201)
async def register(body: RegisterRequest, services: Services = Depends(get_services)):
    """Register a new user and return a bearer token."""
    data = sanitize_form_data(body.model_dump())
    _raise_if_invalid(*validate_registration(data))

    user = await services.users.create_user(
        data["username"], data["email"], data["password"], data.get("phoneNumber")
    )
    return _auth_response(user, services)


@router.post("/auth/login")
async def login(body: LoginRequest, services: Services = Depends(get_services)):
    """Authenticate a user."""
    user = await services.users.authenticate((body.email or "").strip(), body.password or "")
    if not user:
        raise HTTPException(status_code=400, detail="Invalid credentials")
    return _auth_response(user, services)


@router.get("/auth/me")
async def get_me(user: dict = Depends(get_current_user)):
    """Get the current user's profile."""
    return {
        "id": user["id"],
        "username": user["username"],
        "email": user["email"],
        "phoneNumber": user["phone_number"],
    }


@router.post("/auth/forgot-password")
async def forgot_password(body: ForgotPasswordRequest, services: Services = Depends(get_services)):
    """Issue a password-reset token. The e-mail is simulated by logging the link."""
    user = await services.users.get_user_by_email((body.email or "").strip())
    if not user:
        raise HTTPException(status_code=404, detail="There is no user with that email address.")

    token, token_hash = generate_reset_token()
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=services.config.RESET_TOKEN_EXPIRES_MINUTES)
    await services.users.store_reset_token(user["id"], token_hash, expires_at)

    reset_url = f"{services.config.FRONTEND_URL.rstrip('/')}/reset-password/{token}"
    logger.info(f"RESET PASSWORD URL (SIMULATED EMAIL) for user {user['id']}: {reset_url}")

    response = {"message": "Email sent (simulated). Check server console for reset link."}
    if services.config.is_development:
        response["resetUrl"] = reset_url
    return response


@router.put("/auth/reset-password/{token}")
async def reset_password(token: str, body: ResetPasswordRequest, services: Services = Depends(get_services)):
    """Reset a password with a token from forgot-password."""
    await services.users.reset_password(token, body.password or "")
    return {"message": "Password reset successful. You can now log in."}


# ============================================================================
# EXPENSE MANAGEMENT ENDPOINTS
# ============================================================================

@router.get("/expenses")
async def get_expenses(user: dict = Depends(get_current_user), services: Services = Depends(get_services)):
    """Get all of the user's expenses, newest first."""
    return await services.expenses.get_all_expenses(user["id"])


@router.post("/expenses", status_code=201)
async def add_expense(body: ExpenseRequest, user: dict = Depends(get_current_user),
                      services: Services = Depends(get_services)):
    """Add a new expense."""
    expense_data = sanitize_form_data(body.model_dump())
    _raise_if_invalid(*validate_expense_data(expense_data))
    return await services.expenses.create_expense(user["id"], expense_data)


@router.get("/expenses/stats")
async def get_expense_stats(user: dict = Depends(get_current_user), services: Services = Depends(get_services)):
    """Total spent per category."""
    totals = await services.expenses.sum_by_category(user["id"])
    return [{"category": category, "total": total} for category, total in totals.items()]


@router.get("/expenses/trend")
async def get_expense_trend(
    days: Optional[int] = Query(None, ge=1, le=366),
    zero_fill: bool = Query(False),
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Daily totals over a trailing window, oldest day first."""
    window = days or services.config.TREND_WINDOW_DAYS
    return await services.expenses.daily_trend(user["id"], window, zero_fill=zero_fill)


@router.get("/expenses/{expense_id}")
async def get_expense(expense_id: int, user: dict = Depends(get_current_user),
                      services: Services = Depends(get_services)):
    """Get a specific expense by ID."""
    return await services.expenses.get_expense(user["id"], expense_id)


@router.put("/expenses/{expense_id}")
async def update_expense(expense_id: int, body: ExpenseRequest, user: dict = Depends(get_current_user),
                         services: Services = Depends(get_services)):
    """Update an existing expense; only the fields sent are changed."""
    expense_data = sanitize_form_data(body.model_dump(exclude_unset=True))
    _raise_if_invalid(*validate_expense_data(expense_data, partial=True))
    return await services.expenses.update_expense(user["id"], expense_id, expense_data)


@router.delete("/expenses/{expense_id}")
async def delete_expense(expense_id: int, user: dict = Depends(get_current_user),
                         services: Services = Depends(get_services)):
    """Delete a specific expense."""
    await services.expenses.delete_expense(user["id"], expense_id)
    return {"id": expense_id}


# ============================================================================
# CATEGORY MANAGEMENT ENDPOINTS
# ============================================================================

@router.get("/categories")
async def get_categories(user: dict = Depends(get_current_user), services: Services = Depends(get_services)):
    """Default categories plus the user's own."""
    return await services.categories.get_all_categories(user["id"])


@router.post("/categories", status_code=201)
async def add_category(body: CategoryRequest, user: dict = Depends(get_current_user),
                       services: Services = Depends(get_services)):
    """Add a custom category."""
    name = (body.name or "").strip()
    _raise_if_invalid(*validate_category_name(name))

    category = await services.categories.add_category(user["id"], name, body.color)
    if category is None:
        raise HTTPException(status_code=400, detail="Category already exists")
    return category


@router.delete("/categories/{name}")
async def delete_category(name: str, user: dict = Depends(get_current_user),
                          services: Services = Depends(get_services)):
    """Delete a custom category."""
    if not await services.categories.delete_category(user["id"], name):
        raise HTTPException(status_code=404, detail="Category not found")
    return {"message": "Category deleted"}


# ============================================================================
# BUDGET ENDPOINTS
# ============================================================================

@router.get("/budget")
async def get_budget(user: dict = Depends(get_current_user), services: Services = Depends(get_services)):
    return {"budget": await services.users.get_budget(user["id"])}


@router.put("/budget")
async def update_budget(body: BudgetRequest, user: dict = Depends(get_current_user),
                        services: Services = Depends(get_services)):
    return {"budget": await services.users.set_budget(user["id"], body.budget)}


# ============================================================================
# REPORT ENDPOINTS
# ============================================================================

@router.get("/reports/category")
async def get_category_report(user: dict = Depends(get_current_user), services: Services = Depends(get_services)):
    """Category totals, largest first."""
    totals = await services.expenses.sum_by_category(user["id"])
    report = [{"category": category, "total": total} for category, total in totals.items()]
    return sorted(report, key=lambda item: item["total"], reverse=True)


@router.get("/reports/monthly")
async def get_monthly_report(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1970, le=9999),
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Summary for one calendar month (defaults to the current one)."""
    today = datetime.now(timezone.utc)
    return await services.expenses.monthly_report(user["id"], year or today.year, month or today.month)


# ============================================================================
# OCR AND AI ENDPOINTS
# ============================================================================

async def _save_upload(upload: UploadFile, path: str) -> None:
    """Stream an upload into a temporary file."""
    async with aiofiles.open(path, mode='wb') as f:
        while True:
            chunk = await upload.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            await f.write(chunk)


async def _remove_temp_file(path: str) -> None:
    try:
        await aiofiles.os.remove(path)
    except OSError as e:
        logger.warning(f"Could not remove temporary upload {path}: {e}")


@router.post("/ocr/scan")
async def scan_receipts(
    images: Optional[List[UploadFile]] = File(None),
    user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Scan up to MAX_UPLOAD_FILES receipt images into one expense draft."""
    images = images or []
    if not images:
        raise ValidationError("No image uploaded")
    if len(images) > services.config.MAX_UPLOAD_FILES:
        raise ValidationError(f"You can upload at most {services.config.MAX_UPLOAD_FILES} images")

    temp_paths = []
    try:
        payload = []
        for upload in images:
            path = os.path.join(services.config.UPLOAD_DIR, uuid.uuid4().hex)
            temp_paths.append(path)
            await _save_upload(upload, path)
            async with aiofiles.open(path, mode='rb') as f:
                payload.append((await f.read(), upload.content_type or ''))

        result = await services.receipts.scan(payload)
        logger.info(f"Receipt scan for user {user['id']} succeeded")
        return result.model_dump()
    finally:
        for path in temp_paths:
            await _remove_temp_file(path)


@router.get("/ai/predict")
async def predict_expenses(user: dict = Depends(get_current_user), services: Services = Depends(get_services)):
    """Forecast the next 30 days of spending."""
    history = await services.expenses.recent_history(user["id"], services.config.FORECAST_MAX_HISTORY)
    budget = await services.users.get_budget(user["id"])
    result = await services.forecasts.predict(history, budget)
    return result.model_dump()


# ============================================================================
# UTILITY ENDPOINTS
# ============================================================================

@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


# ============================================================================
# APPLICATION SETUP
# ============================================================================

async def handle_tracker_error(request: Request, exc: ExpenseTrackerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app(app_config: AppConfig = None, model_client: GenerativeModelClient = None) -> FastAPI:
    """Build the application around one configuration."""
    app_config = app_config or config
    services = build_services(app_config, model_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        os.makedirs(app_config.UPLOAD_DIR, exist_ok=True)
        await services.db.initialize_database()
        logger.info("Database initialized successfully.")
        yield

    app = FastAPI(title="Expense Tracker", lifespan=lifespan)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ExpenseTrackerError, handle_tracker_error)
    app.include_router(router)
    return app


app = create_app()


# ============================================================================
# APPLICATION ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("expense_tracker.app:app", host="0.0.0.0", port=8000, reload=True)
