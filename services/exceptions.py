#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
DailyCheckin - Custom Exception Hierarchy
Structured error handling for all DCK services
"""

# ============================================================================
# BASE EXCEPTIONS
# ============================================================================

class DCKBaseException(Exception):
    """
    Base exception for all DailyCheckin errors.

    All custom exceptions inherit from this to allow catching all DCK-specific errors.
    Includes structured error data support.
    """
    default_error_code = None

    def __init__(self, message: str, error_code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self):
        """Convert exception to structured dictionary for logging/API responses."""
        return {
            'error': self.__class__.__name__,
            'error_code': self.error_code,
            'message': self.message,
            'details': self.details
        }


# ============================================================================
# CONFIGURATION EXCEPTIONS
# ============================================================================

class ConfigServiceError(DCKBaseException):
    """Base exception for all configuration errors."""

class ConfigLoadError(ConfigServiceError):
    """Raised when configuration loading fails."""
    default_error_code = 'CONFIG_LOAD_FAILED'

class ConfigSaveError(ConfigServiceError):
    """Raised when configuration saving fails."""
    default_error_code = 'CONFIG_SAVE_FAILED'


# ============================================================================
# LEDGER EXCEPTIONS
# ============================================================================

class LedgerError(DCKBaseException):
    """Base exception for points ledger errors."""

class LedgerValidationError(LedgerError, ValueError):
    """Raised when an award/consume request is malformed."""
    default_error_code = 'VALIDATION_FAILED'

class InvalidAmountError(LedgerValidationError):
    """Raised when an amount is zero, negative or not an integer."""
    default_error_code = 'INVALID_AMOUNT'

class MissingIdempotencyKeyError(LedgerValidationError):
    """Raised when a consume request carries no idempotency key."""
    default_error_code = 'MISSING_IDEMPOTENCY_KEY'

class InsufficientBalanceError(LedgerError):
    """Raised when a consume or transfer exceeds the spendable balance."""
    default_error_code = 'INSUFFICIENT_BALANCE'

    def __init__(self, message: str, balance: int = 0, requested: int = 0, **kwargs):
        details = kwargs.pop('details', None) or {}
        details.update({'balance': balance, 'requested': requested})
        super().__init__(message, details=details, **kwargs)
        self.balance = balance
        self.requested = requested

class LedgerPersistenceError(LedgerError):
    """Raised when a ledger file cannot be written."""
    default_error_code = 'PERSISTENCE_FAILED'

class TitleError(LedgerError):
    """Raised when equipping a title the user does not own or that expired."""
    default_error_code = 'TITLE_ERROR'


# ============================================================================
# CHECK-IN EXCEPTIONS
# ============================================================================

class CheckinError(DCKBaseException):
    """Base exception for check-in flow errors."""

class CycleLimitExceededError(CheckinError):
    """Raised when the user already reached the check-in limit of the current cycle."""
    default_error_code = 'CYCLE_LIMIT_EXCEEDED'

    def __init__(self, message: str, cycle_id: str = '', limit: int = 0, count: int = 0, **kwargs):
        details = kwargs.pop('details', None) or {}
        details.update({'cycle_id': cycle_id, 'limit': limit, 'count': count})
        super().__init__(message, details=details, **kwargs)
        self.cycle_id = cycle_id
        self.limit = limit
        self.count = count

class CheckinDisabledError(CheckinError):
    """Raised when check-in is switched off globally or for a group."""
    default_error_code = 'CHECKIN_DISABLED'


# ============================================================================
# RENDER EXCEPTIONS
# ============================================================================

class RenderServiceError(DCKBaseException):
    """Raised when the card render service fails or times out."""
    default_error_code = 'RENDER_FAILED'


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def is_recoverable_error(error: Exception) -> bool:
    """
    Determine if an error is recoverable (can retry).

    Args:
        error: Exception to check

    Returns:
        True if error is potentially recoverable
    """
    return isinstance(error, (LedgerPersistenceError, RenderServiceError))


def get_user_friendly_message(error: Exception) -> str:
    """
    Get user-friendly error message for display in Discord.

    Args:
        error: Exception to convert

    Returns:
        User-friendly error message
    """
    if isinstance(error, CycleLimitExceededError):
        return error.message
    if isinstance(error, InsufficientBalanceError):
        return f"Not enough points: balance {error.balance}, needed {error.requested}."
    if isinstance(error, CheckinDisabledError):
        return "Check-in is disabled here."
    if isinstance(error, LedgerPersistenceError):
        return "Could not save your points right now. Please try again."
    if isinstance(error, DCKBaseException):
        return error.message
    return "An unexpected error occurred. Please contact an administrator."
