"""Dependency injection for FastAPI endpoints"""

import asyncio
import weakref
from fastapi import Request
from allocation_planner.config import settings
from allocation_planner.domain.policy import AllocationPolicy
from allocation_planner.infrastructure.clients.bank import BankClient
from allocation_planner.infrastructure.clients.explanations import ExplanationClient

# One writer per user plan; a lock lives only while some request holds it
_plan_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_bank_client() -> BankClient:
    """Provide banking provider client instance"""
    return BankClient()


def get_explanation_client() -> ExplanationClient:
    """Provide explanation service client instance"""
    return ExplanationClient()


def get_policy() -> AllocationPolicy:
    """Allocation policy with environment overrides"""
    return settings.allocation_policy()


def get_plan_lock(user_id: str) -> asyncio.Lock:
    """Lock guarding read-modify-write of one user's plan"""
    lock = _plan_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _plan_locks[user_id] = lock
    return lock
