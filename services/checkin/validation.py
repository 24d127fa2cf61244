# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Validation helpers for the points core service."""

from __future__ import annotations

from services.checkin.points_requests import AwardRequest, ConsumeRequest
from services.exceptions import InvalidAmountError, LedgerValidationError, MissingIdempotencyKeyError

MAX_AMOUNT = 1_000_000
MAX_DESCRIPTION_LENGTH = 200


def validate_amount(amount) -> None:
    """
    Raises:
        InvalidAmountError: If ``amount`` is not a positive integer within range.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError("Amount must be a positive integer")
    if amount <= 0:
        raise InvalidAmountError("Amount must be a positive integer")
    if amount > MAX_AMOUNT:
        raise InvalidAmountError(f"Amount exceeds maximum allowed value ({MAX_AMOUNT:,})")


def _validate_description(description: str) -> None:
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        raise LedgerValidationError(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters")


def validate_award(request: AwardRequest) -> None:
    """Validate an :class:`AwardRequest`.

    Raises:
        InvalidAmountError: If the amount is zero, negative or not an integer.
        LedgerValidationError: If the multiplier or description is invalid.
    """
    validate_amount(request.amount)
    if not isinstance(request.multiplier, (int, float)) or request.multiplier <= 0:
        raise LedgerValidationError("Multiplier must be a positive number")
    _validate_description(request.description)


def validate_consume(request: ConsumeRequest) -> None:
    """Validate a :class:`ConsumeRequest`.

    Raises:
        MissingIdempotencyKeyError: If no idempotency key was supplied.
        InvalidAmountError: If the amount is zero, negative or not an integer.
    """
    if not (request.idempotency_key or "").strip():
        raise MissingIdempotencyKeyError("Consume requests require an idempotency key")
    validate_amount(request.amount)
    _validate_description(request.description)
