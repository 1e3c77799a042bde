"""
Expense Tracker - Request Schemas

PURPOSE: Pydantic models for JSON request bodies
SCOPE: Shape only; business rules are checked in validators.py so they
       surface as 400 responses with readable messages
DEPENDENCIES: pydantic
"""

from typing import Any, Optional

from pydantic import BaseModel


class RegisterRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    phoneNumber: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    password: Optional[str] = None


class ExpenseRequest(BaseModel):
    description: Optional[str] = None
    # Numbers are checked by validators.py, not coerced here
    amount: Any = None
    category: Optional[str] = None
    date: Optional[str] = None


class CategoryRequest(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None


class BudgetRequest(BaseModel):
    budget: Any = None
