"""
Schemas Pydantic per il progetto Print Shop Manager

Questo modulo contiene tutti gli schemi Pydantic utilizzati per la validazione
e serializzazione delle risposte API.
"""

from app.schemas.user import (
    ProvisionResult,
    UserCreate,
    UserLogin,
    UserResponse,
    UserUpdate,
)
from app.schemas.token import SessionContext, TokenPayload, TokenRefresh, TokenResponse
from app.schemas.order import (
    BalanceRead,
    Cancel,
    CompleteProduction,
    Deliver,
    DeliveryStatus,
    OrderChanges,
    OrderCreate,
    OrderEvent,
    OrderFileRead,
    OrderList,
    OrderRead,
    OrderStatus,
    OrderTransition,
    OrderUpdate,
    PaymentMethod,
    PaymentResult,
    Priority,
    ProductionStatus,
    RegisterPayment,
    StartProduction,
    TransitionRequest,
    WorkType,
)
from app.schemas.stats import MonthlyReport, ProductionAreaLoad, StationStats

__all__ = [
    # User schemas
    "UserCreate",
    "UserLogin",
    "UserUpdate",
    "UserResponse",
    "ProvisionResult",
    # Token schemas
    "TokenResponse",
    "TokenRefresh",
    "TokenPayload",
    "SessionContext",
    # Order schemas
    "OrderStatus",
    "ProductionStatus",
    "DeliveryStatus",
    "Priority",
    "PaymentMethod",
    "WorkType",
    "OrderCreate",
    "OrderUpdate",
    "OrderRead",
    "OrderFileRead",
    "OrderList",
    "OrderChanges",
    "BalanceRead",
    "PaymentResult",
    "OrderEvent",
    "OrderTransition",
    "StartProduction",
    "CompleteProduction",
    "RegisterPayment",
    "Deliver",
    "Cancel",
    "TransitionRequest",
    # Stats schemas
    "MonthlyReport",
    "StationStats",
    "ProductionAreaLoad",
]
