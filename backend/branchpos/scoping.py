# Overview: Role-based query scoping applied before any listing query runs.

"""
Role scoping

WHY: Which rows a user may list depends on the role, not on what the
client asked for. Routes build a filter from the request, then pass it
through one of these functions; the service only ever sees the scoped
filter.

RULES:
- supervisor: always own branch (a requested branch is overwritten)
- cashier: own branch and, for sales and shifts, own user
- admin and warehouse: as requested (warehouse moves stock between branches)

Pure functions: they return a new filter and never touch the database.
"""
from __future__ import annotations

from dataclasses import replace

from .models.auth import ROLE_CASHIER, ROLE_SUPERVISOR
from .services.filters import InventoryFilter, SaleFilter, ShiftFilter


def scope_sales_filter(user, filters: SaleFilter) -> SaleFilter:
    if user.role == ROLE_CASHIER:
        return replace(filters, user_id=user.id, branch_id=user.branch_id)
    if user.role == ROLE_SUPERVISOR:
        return replace(filters, branch_id=user.branch_id)
    return filters


def scope_shift_filter(user, filters: ShiftFilter) -> ShiftFilter:
    if user.role == ROLE_CASHIER:
        return replace(filters, user_id=user.id, branch_id=user.branch_id)
    if user.role == ROLE_SUPERVISOR:
        return replace(filters, branch_id=user.branch_id)
    return filters


def scope_inventory_filter(user, filters: InventoryFilter) -> InventoryFilter:
    if user.role in (ROLE_SUPERVISOR, ROLE_CASHIER):
        return replace(filters, branch_id=user.branch_id)
    return filters
