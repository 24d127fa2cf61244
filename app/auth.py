# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #

from flask import current_app, jsonify, request
from flask_httpauth import HTTPTokenAuth
from werkzeug.security import check_password_hash
from datetime import datetime, timedelta, timezone
import threading

auth = HTTPTokenAuth(scheme="Bearer")

# Simple internal rate limiter implementation
class SimpleRateLimiter:
    def __init__(self, limit=5, per_seconds=60):
        self.limit = limit
        self.window = per_seconds
        self.ip_dict = {}
        self.lock = threading.Lock()

    def is_rate_limited(self, ip):
        """Checks if an IP has exceeded the rate limit"""
        now = datetime.now(timezone.utc)
        with self.lock:
            self.cleanup_old_entries(now)

            if ip not in self.ip_dict:
                self.ip_dict[ip] = []

            if len(self.ip_dict[ip]) >= self.limit:
                return True

            self.ip_dict[ip].append(now)
            return False

    def cleanup_old_entries(self, now):
        """Removes old entries from the rate limiter"""
        cutoff = now - timedelta(seconds=self.window)
        for ip in list(self.ip_dict.keys()):
            self.ip_dict[ip] = [ts for ts in self.ip_dict[ip] if ts > cutoff]
            if not self.ip_dict[ip]:
                del self.ip_dict[ip]

def init_limiter(app):
    """Initializes rate limiting for authenticated API requests"""
    limiter = SimpleRateLimiter(limit=int(app.config.get("RATE_LIMIT_PER_MINUTE", 100)), per_seconds=60)
    app.extensions["auth_limiter"] = limiter

    @app.before_request
    def check_auth_rate_limit():
        if request.path.startswith('/health'):
            return None

        if 'Authorization' in request.headers:
            client_ip = request.remote_addr
            if limiter.is_rate_limited(client_ip):
                app.logger.warning(f"Rate limit exceeded for API from IP: {client_ip}")
                return jsonify(error="Too many requests. Please try again later."), 429

@auth.verify_token
def verify_token(token):
    logger = current_app.logger
    stored_hash = current_app.config.get('API_TOKEN_HASH')

    if stored_hash is None:
        # Fail securely - the API stays locked until DCK_API_TOKEN is configured
        logger.error("SECURITY: DCK_API_TOKEN is not set - API access disabled")
        return None
    if token and check_password_hash(stored_hash, token):
        return "api"
    logger.warning("Rejected API request with an invalid token from %s", request.remote_addr)
    return None

@auth.error_handler
def auth_error(status):
    if current_app.config.get('API_TOKEN_HASH') is None:
        return jsonify({
            "success": False,
            "error": "API disabled",
            "error_code": "API_DISABLED",
            "message": "Set DCK_API_TOKEN to enable the ledger API",
        }), status
    return jsonify({
        "success": False,
        "error": "Authentication required",
        "error_code": "UNAUTHORIZED",
    }), status
