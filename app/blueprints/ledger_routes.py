# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK) - Ledger Web Routes                                       #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
JSON API over the check-in ledger.
Provides endpoints for balances, awards/consumption, check-ins, rankings and
the check-in configuration. Every endpoint requires the bearer token.
"""

import logging
from flask import Blueprint, current_app, jsonify, request
from app.auth import auth
from services.checkin.points_requests import AwardRequest, ConsumeRequest
from services.exceptions import ConfigSaveError, LedgerValidationError, TitleError
from utils.observability import metrics

logger = logging.getLogger('dck.web.ledger_routes')

ledger_bp = Blueprint('ledger_bp', __name__)

ERROR_STATUS = {
    'VALIDATION_FAILED': 400,
    'INVALID_AMOUNT': 400,
    'MISSING_IDEMPOTENCY_KEY': 400,
    'INVALID_SORT': 400,
    'INVALID_PERIOD': 400,
    'INVALID_STATUS': 400,
    'INVALID_TIME_RANGE': 400,
    'CHECKIN_DISABLED': 403,
    'USER_NOT_FOUND': 404,
    'INSUFFICIENT_BALANCE': 409,
    'CYCLE_LIMIT_EXCEEDED': 409,
    'TITLE_NOT_OWNED': 409,
    'TITLE_EXPIRED': 409,
    'PERSISTENCE_FAILED': 500,
}


def _runtime():
    return current_app.extensions['checkin_runtime']


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def _result_response(result):
    """Serialize a service result; failures get a status derived from their error code."""
    payload = result.to_dict()
    if result.success:
        return jsonify(payload)
    return jsonify(payload), ERROR_STATUS.get(result.error_code, 400)


def _error_response(exc):
    return jsonify({'success': False, **exc.to_dict()}), ERROR_STATUS.get(exc.error_code, 400)


# --- Users ---

@ledger_bp.route('/users/<user_id>', methods=['GET'])
@auth.login_required
def get_global_user(user_id):
    """Cross-group aggregate of one user."""
    record = _runtime().checkin.get_user_checkin_data(user_id)
    if record is None:
        return jsonify({'success': False, 'error_code': 'USER_NOT_FOUND'}), 404
    return jsonify({'success': True, 'user': record.to_json()})

@ledger_bp.route('/groups/<group_id>/users/<user_id>', methods=['GET'])
@auth.login_required
def get_group_user(group_id, user_id):
    record = _runtime().points.get_user_points(group_id, user_id)
    if record is None:
        return jsonify({'success': False, 'error_code': 'USER_NOT_FOUND'}), 404
    return jsonify({'success': True, 'user': record.to_json()})

@ledger_bp.route('/groups/<group_id>/users/<user_id>/balance', methods=['GET'])
@auth.login_required
def get_balance(group_id, user_id):
    return jsonify(_runtime().points.check_balance(group_id, user_id).to_dict())

@ledger_bp.route('/groups/<group_id>/users/<user_id>/transactions', methods=['GET'])
@auth.login_required
def get_transactions(group_id, user_id):
    """Newest-first page of transactions (``limit``, ``offset``, ``type``)."""
    limit = _int_arg('limit', 20)
    offset = _int_arg('offset', 0)
    entries, total = _runtime().points.get_transactions(
        group_id, user_id, limit=limit, offset=offset, tx_type=request.args.get('type') or None,
    )
    return jsonify({
        'transactions': [tx.to_json() for tx in entries],
        'total': total,
        'limit': limit,
        'offset': offset,
    })

@ledger_bp.route('/groups/<group_id>/users/<user_id>/titles', methods=['GET'])
@auth.login_required
def get_titles(group_id, user_id):
    return jsonify({'titles': _runtime().points.list_titles(group_id, user_id)})

@ledger_bp.route('/groups/<group_id>/users/<user_id>/title', methods=['POST'])
@auth.login_required
def equip_title(group_id, user_id):
    data = _json_body()
    try:
        record = _runtime().points.equip_title(group_id, user_id, data.get('title_id'))
    except TitleError as exc:
        return _error_response(exc)
    return jsonify({'success': True, 'equipped_title_id': record.equipped_title_id})

# --- Points ---

@ledger_bp.route('/groups/<group_id>/users/<user_id>/award', methods=['POST'])
@auth.login_required
def award_points(group_id, user_id):
    data = _json_body()
    award = AwardRequest(
        amount=data.get('amount'),
        description=str(data.get('description', '')),
        source=str(data.get('source', 'api')),
        source_plugin=data.get('source_plugin'),
        idempotency_key=data.get('idempotency_key'),
        apply_level_bonus=bool(data.get('apply_level_bonus', False)),
        multiplier=data.get('multiplier', 1.0),
        operator_id=data.get('operator_id'),
        nickname=str(data.get('nickname', '')),
        details=data.get('details') if isinstance(data.get('details'), dict) else {},
    )
    return _result_response(_runtime().points.award(group_id, user_id, award))

@ledger_bp.route('/groups/<group_id>/users/<user_id>/consume', methods=['POST'])
@auth.login_required
def consume_points(group_id, user_id):
    data = _json_body()
    consume = ConsumeRequest(
        amount=data.get('amount'),
        idempotency_key=data.get('idempotency_key'),
        description=str(data.get('description', '')),
        source_plugin=data.get('source_plugin'),
        order_id=data.get('order_id'),
        operator_id=data.get('operator_id'),
        nickname=str(data.get('nickname', '')),
    )
    return _result_response(_runtime().points.consume(group_id, user_id, consume))

@ledger_bp.route('/groups/<group_id>/users/<user_id>/reset', methods=['POST'])
@auth.login_required
def reset_balance(group_id, user_id):
    data = _json_body()
    result = _runtime().points.reset_balance(
        group_id, user_id, operator_id=data.get('operator_id'), description=str(data.get('description', '')),
    )
    if result.success:
        logger.info("Balance reset via API for %s in group %s", user_id, group_id)
    return _result_response(result)

@ledger_bp.route('/groups/<group_id>/transfer', methods=['POST'])
@auth.login_required
def transfer_points(group_id):
    data = _json_body()
    result = _runtime().points.transfer(
        group_id,
        data.get('from_user_id', ''),
        data.get('to_user_id', ''),
        data.get('amount'),
        data.get('idempotency_key', ''),
        description=str(data.get('description', '')),
    )
    return _result_response(result)

# --- Check-in ---

@ledger_bp.route('/checkin', methods=['POST'])
@auth.login_required
def perform_checkin():
    """Check a user in; ``group_id`` is optional (global-only check-in without it)."""
    data = _json_body()
    user_id = str(data.get('user_id') or '').strip()
    if not user_id:
        return jsonify({'success': False, 'error_code': 'VALIDATION_FAILED',
                        'error_message': 'user_id is required'}), 400
    result = _runtime().checkin.perform_checkin(
        user_id,
        nickname=str(data.get('nickname', '')),
        group_id=data.get('group_id'),
        group_name=data.get('group_name'),
    )
    return _result_response(result)

@ledger_bp.route('/groups/<group_id>/users/<user_id>/cycle', methods=['GET'])
@auth.login_required
def get_cycle_status(group_id, user_id):
    checkin = _runtime().checkin
    count, limit = checkin.get_cycle_checkin_count(user_id, group_id)
    return jsonify({
        'checkins_in_cycle': count,
        'max_checkins_per_cycle': limit,
        'rank': checkin.get_user_cycle_rank(user_id, group_id),
    })

# --- Rankings ---

@ledger_bp.route('/groups/<group_id>/rankings', methods=['GET'])
@auth.login_required
def get_group_rankings(group_id):
    try:
        entries, total = _runtime().leaderboard.get_group_ranking(
            group_id,
            sort_by=request.args.get('sort_by', 'total_exp'),
            limit=_int_arg('limit', 10),
            offset=_int_arg('offset', 0),
        )
    except LedgerValidationError as exc:
        return _error_response(exc)
    return jsonify({'rankings': [e.to_dict() for e in entries], 'total': total})

@ledger_bp.route('/rankings', methods=['GET'])
@auth.login_required
def get_global_rankings():
    try:
        entries, total = _runtime().leaderboard.get_global_ranking(
            sort_by=request.args.get('sort_by', 'total_exp'),
            limit=_int_arg('limit', 10),
            offset=_int_arg('offset', 0),
        )
    except LedgerValidationError as exc:
        return _error_response(exc)
    return jsonify({'rankings': [e.to_dict() for e in entries], 'total': total})

@ledger_bp.route('/groups/<group_id>/leaderboard', methods=['GET'])
@auth.login_required
def get_leaderboard(group_id):
    try:
        board = _runtime().leaderboard.get_period_leaderboard(
            group_id,
            period=request.args.get('period', 'week'),
            current_user_id=request.args.get('user_id'),
            limit=_int_arg('limit', 0) or None,
        )
    except LedgerValidationError as exc:
        return _error_response(exc)
    return jsonify(board.to_dict())

@ledger_bp.route('/groups/<group_id>/stats', methods=['GET'])
@auth.login_required
def get_group_stats(group_id):
    return jsonify(_runtime().leaderboard.get_group_stats(group_id))

# --- Check-in log ---

@ledger_bp.route('/logs', methods=['GET'])
@auth.login_required
def query_logs():
    """Paged check-in log (``group_id``, ``user_id``, ``status``, ``start_date``, ``end_date``)."""
    try:
        page = _runtime().checkin_log.query_logs(
            group_id=request.args.get('group_id') or None,
            user_id=request.args.get('user_id') or None,
            status=request.args.get('status', 'all'),
            start_date=request.args.get('start_date') or None,
            end_date=request.args.get('end_date') or None,
            page=_int_arg('page', 1),
            page_size=_int_arg('page_size', 50),
            order=request.args.get('order', 'desc'),
        )
    except LedgerValidationError as exc:
        return _error_response(exc)
    return jsonify(page)

@ledger_bp.route('/logs/stats', methods=['GET'])
@auth.login_required
def get_log_stats():
    try:
        stats = _runtime().checkin_log.get_log_stats(
            time_range=request.args.get('time_range', 'all'),
            group_id=request.args.get('group_id') or None,
        )
    except LedgerValidationError as exc:
        return _error_response(exc)
    return jsonify(stats)

@ledger_bp.route('/logs/trend', methods=['GET'])
@auth.login_required
def get_log_trend():
    trend = _runtime().checkin_log.get_daily_trend(
        days=_int_arg('days', 30),
        group_id=request.args.get('group_id') or None,
    )
    return jsonify({'trend': trend})

@ledger_bp.route('/logs/<log_id>', methods=['GET'])
@auth.login_required
def get_log(log_id):
    entry = _runtime().checkin_log.get_log(log_id)
    if entry is None:
        return jsonify({'success': False, 'error_code': 'LOG_NOT_FOUND'}), 404
    return jsonify({'success': True, 'log': entry.to_json()})

# --- Configuration & maintenance ---

@ledger_bp.route('/config', methods=['GET'])
@auth.login_required
def get_config():
    return jsonify(_runtime().config_store.load_raw())

@ledger_bp.route('/config', methods=['POST'])
@auth.login_required
def update_config():
    """Merge the posted keys into the check-in configuration."""
    try:
        _runtime().config_store.update(_json_body())
    except ConfigSaveError as exc:
        logger.error("Saving check-in config failed: %s", exc, exc_info=True)
        return jsonify({'success': False, 'error': 'Could not save configuration'}), 500
    return jsonify({'success': True, 'config': _runtime().config_store.load_raw()})

@ledger_bp.route('/maintenance/purge', methods=['POST'])
@auth.login_required
def purge_old_data():
    summary = _runtime().checkin.purge_old_data()
    return jsonify({'success': True, 'purged': summary})

@ledger_bp.route('/metrics', methods=['GET'])
@auth.login_required
def get_metrics():
    return jsonify(metrics.get_stats())
