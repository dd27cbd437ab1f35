"""Flask application providing the halaqah attendance and reporting API.

This module wires together the configuration, the database, the logging
middleware and the route definitions. Every ``/api`` route acts on behalf of
the user named in the ``X-User-ID`` header and only ever sees that user's
organization.

Endpoints:

* ``GET /health`` – liveness probe.
* ``GET /api/snapshot`` – every record set of the organization.
* ``GET /api/dashboard?today=`` – counts per level, counters for the display
  date and the seven-day trend.
* ``GET /api/recap/<persons|classes|sessions|status-totals|time-slots>`` –
  recap tables; accept the filter parameters ``start``, ``end``, ``level``,
  ``class``, ``role``, ``status`` and ``q``.
* ``GET /api/sessions/<date>/<time_slot>`` – per-class counters of a session.
* ``GET /api/people/<role>/<id>/attendance`` – one person's entries.
* ``GET /api/trends/daily?today=&start=&end=`` – daily trend buckets.
* ``GET /api/students/<id>/summary?month=`` (or ``start``/``end``) –
  attendance counters and progress summary of one student.
* ``POST /api/reports/<evaluations|guardians|classes>`` – report previews
  with ready-to-open WhatsApp links.
* ``GET /api/exports/<kind>?shape=rows|table`` – export payloads.
* ``POST/PATCH/PUT/DELETE`` routes for students, teachers, class
  supervisors, study groups and members, attendance, progress, class
  targets, evaluations, rating options and chat messages. Each write returns
  the reloaded snapshot.

Errors are rendered as problem-details JSON.
"""

from __future__ import annotations

import dataclasses
import os
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from flask import Flask, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import BadRequest, HTTPException, NotFound

import aggregation
import export_adapters
import report_formatter
from app_logging import get_logger, get_request_id
from config import Config
from correlation_id_middleware import init_correlation_id
from db_utils import ensure_schema
from domain import DataSnapshot, Peran
from errors import HalaqahError
from gateway import AuthContext, DataGateway
from models import db
from request_logging_middleware import init_request_logging

_logger = get_logger("app")


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(_jsonable(k)): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _problem(status: int, title: str, detail: str):
    response = jsonify({
        'type': 'about:blank',
        'title': title,
        'status': status,
        'detail': detail,
        'request_id': get_request_id() or getattr(g, 'request_id', None),
    })
    response.status_code = status
    response.mimetype = 'application/problem+json'
    return response


def _gateway() -> DataGateway:
    if 'gateway' not in g:
        g.gateway = DataGateway(db.session, AuthContext(user_id=g.get('user_id')))
    return g.gateway


def _snapshot() -> DataSnapshot:
    return _gateway().load_all()


def _body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest('Missing JSON payload')
    return data


def _required(data: Dict[str, Any], *names: str) -> Tuple[Any, ...]:
    missing = [name for name in names if data.get(name) in (None, '')]
    if missing:
        raise BadRequest(f"Missing field(s): {', '.join(missing)}")
    return tuple(data[name] for name in names)


def _date_arg(name: str) -> Optional[str]:
    value = request.args.get(name)
    if not value:
        return None
    try:
        return aggregation.as_date(value).isoformat()
    except ValueError:
        raise BadRequest(f'Invalid {name}, must be YYYY-MM-DD')


def _today() -> date:
    """``?today=`` pins the reference day; it defaults to the server date."""

    today = _date_arg('today')
    return aggregation.as_date(today) if today else date.today()


def _filtered_attendance(snapshot: DataSnapshot):
    return aggregation.filter_attendance(
        snapshot.attendance,
        start=_date_arg('start'),
        end=_date_arg('end'),
        level=request.args.get('level'),
        class_label=request.args.get('class'),
        role=request.args.get('role'),
        status=request.args.get('status'),
        name_query=request.args.get('q'),
    )


def _snapshot_response(snapshot: DataSnapshot, status: int = 200):
    return jsonify(_jsonable(snapshot)), status


def _previews_response(previews: List[report_formatter.ReportPreview]):
    prefix = current_app.config.get("PHONE_COUNTRY_PREFIX") or report_formatter.DEFAULT_COUNTRY_PREFIX
    return jsonify([preview.to_dict(prefix) for preview in previews])


def _export(kind: str, snapshot: DataSnapshot) -> Tuple[List[Dict[str, Any]], Tuple[List[str], List[List[str]]]]:
    """Return the spreadsheet rows and the document table for one export kind."""

    if kind == 'persons':
        rows = aggregation.person_recap(_filtered_attendance(snapshot))
        return export_adapters.to_spreadsheet_rows(rows), export_adapters.person_recap_table(rows)
    if kind == 'classes':
        rows = aggregation.class_recap(_filtered_attendance(snapshot))
        return export_adapters.to_spreadsheet_rows(rows), export_adapters.class_recap_table(rows)
    if kind == 'sessions':
        rows = aggregation.session_recap(_filtered_attendance(snapshot))
        return export_adapters.to_spreadsheet_rows(rows), export_adapters.session_recap_table(rows)
    if kind == 'attendance':
        entries = _filtered_attendance(snapshot)
        return (export_adapters.attendance_detail_rows(entries),
                export_adapters.attendance_detail_table(entries))
    if kind == 'students':
        people = aggregation.sort_people(snapshot.students)
        return export_adapters.to_spreadsheet_rows(people), export_adapters.student_table(people)
    if kind == 'teachers':
        people = aggregation.sort_people(snapshot.teachers)
        return export_adapters.to_spreadsheet_rows(people), export_adapters.teacher_table(people)
    if kind == 'supervisors':
        people = aggregation.sort_people(snapshot.class_supervisors)
        return (export_adapters.to_spreadsheet_rows(people),
                export_adapters.supervisor_table(people))
    if kind == 'guardians':
        people = aggregation.sort_people(snapshot.students)
        return export_adapters.guardian_rows(people), export_adapters.guardian_table(people)
    if kind == 'study-groups':
        return (export_adapters.study_group_rows(snapshot.study_groups),
                export_adapters.study_group_table(snapshot.study_groups))
    if kind == 'evaluations':
        month = request.args.get('month') or aggregation.month_key(_today())
        rows = export_adapters.evaluation_rows(snapshot.students, snapshot.evaluations, month)
        columns = [(header, header) for header in (rows[0].keys() if rows else ())]
        return rows, export_adapters.to_document_table(rows, columns)
    raise NotFound(f'Unknown export: {kind}')


def create_app(test_config: Optional[Dict[str, Any]] = None) -> Flask:
    """Application factory used by both the server and tests.

    ``test_config`` overrides :class:`config.Config` and is applied before the
    database is bound, so a test can point the app at its own database.
    Missing tables are created at start-up, retrying briefly while the
    database is unreachable.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    db.init_app(app)
    init_correlation_id(app)
    init_request_logging(app)

    with app.app_context():
        ensure_schema(db)

    @app.route('/health')
    def healthcheck():
        """Lightweight endpoint used by load balancer health checks."""
        return jsonify({'status': 'ok'}), 200

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @app.route('/api/snapshot', methods=['GET'])
    def api_snapshot():
        return _snapshot_response(_snapshot())

    @app.route('/api/dashboard', methods=['GET'])
    def api_dashboard():
        snapshot = _snapshot()
        today = _today()
        display = aggregation.resolve_display_date(snapshot.attendance, today)
        return jsonify({
            'display_date': display.date,
            'is_today': display.is_today,
            'students_per_level': aggregation.count_by_level(snapshot.students),
            'teachers_per_level': aggregation.count_by_level(snapshot.teachers),
            'study_groups': len(snapshot.study_groups),
            'level_status_counts': aggregation.level_status_counts(snapshot.attendance, display.date),
            'weekly_trend': aggregation.weekly_trend(snapshot.attendance, today),
        })

    @app.route('/api/recap/<kind>', methods=['GET'])
    def api_recap(kind: str):
        recaps = {
            'persons': aggregation.person_recap,
            'classes': aggregation.class_recap,
            'sessions': aggregation.session_recap,
            'status-totals': aggregation.status_totals,
            'time-slots': aggregation.time_slot_totals,
        }
        if kind not in recaps:
            raise NotFound(f'Unknown recap: {kind}')
        return jsonify(recaps[kind](_filtered_attendance(_snapshot())))

    @app.route('/api/sessions/<on_date>/<time_slot>', methods=['GET'])
    def api_session_breakdown(on_date: str, time_slot: str):
        snapshot = _snapshot()
        return jsonify(aggregation.session_class_breakdown(snapshot.attendance, on_date, time_slot))

    @app.route('/api/people/<role>/<int:person_id>/attendance', methods=['GET'])
    def api_person_detail(role: str, person_id: int):
        if role not in {r.value for r in Peran}:
            raise NotFound(f'Unknown role: {role}')
        entries = aggregation.person_detail(_snapshot().attendance, person_id, role)
        return jsonify(_jsonable(entries))

    @app.route('/api/trends/daily', methods=['GET'])
    def api_daily_trend():
        entries = _filtered_attendance(_snapshot())
        return jsonify(aggregation.daily_trend(
            entries, _today(), start=_date_arg('start'), end=_date_arg('end')))

    @app.route('/api/students/<int:student_id>/summary', methods=['GET'])
    def api_student_summary(student_id: int):
        snapshot = _snapshot()
        if snapshot.student(student_id) is None:
            raise NotFound(f'Santri {student_id} tidak ditemukan')
        month = request.args.get('month')
        start, end = _date_arg('start'), _date_arg('end')
        if month:
            start_month = end_month = month
        else:
            start_month = start[:7] if start else None
            end_month = end[:7] if end else None
        stats = aggregation.student_attendance_stats(
            snapshot.attendance, student_id, month=month, start=start, end=end)
        progress = aggregation.progress_summary(snapshot.progress, student_id, start_month, end_month)
        return jsonify({'attendance': stats, 'progress': _jsonable(progress)})

    @app.route('/api/rating-options', methods=['GET'])
    def api_rating_options():
        ratings = _snapshot().ratings
        return jsonify({str(c): ratings.labels_for(c) for c in ('Hafalan', 'Bacaan', 'Sikap')})

    @app.route('/api/chat', methods=['GET'])
    def api_chat_list():
        return jsonify(_jsonable(_gateway().list_chat_messages()))

    # ------------------------------------------------------------------
    # Reports and exports
    # ------------------------------------------------------------------

    @app.route('/api/reports/evaluations', methods=['POST'])
    def api_evaluation_reports():
        data = _body()
        student_ids, month = _required(data, 'student_ids', 'month')
        previews = report_formatter.evaluation_previews(_snapshot(), student_ids, month)
        return _previews_response(previews)

    @app.route('/api/reports/guardians', methods=['POST'])
    def api_guardian_reports():
        data = _body()
        student_ids, start, end = _required(data, 'student_ids', 'start', 'end')
        notes = {int(k): v for k, v in (data.get('notes') or {}).items()}
        previews = report_formatter.guardian_previews(
            _snapshot(), student_ids, start, end, notes=notes,
            institution=app.config.get('INSTITUTION_NAME') or None)
        return _previews_response(previews)

    @app.route('/api/reports/classes', methods=['POST'])
    def api_class_reports():
        data = _body()
        (class_keys,) = _required(data, 'class_keys')
        snapshot = _snapshot()
        previews = report_formatter.class_previews(
            snapshot.attendance, snapshot.class_supervisors, class_keys,
            start=data.get('start'), end=data.get('end'), level=data.get('level'))
        return _previews_response(previews)

    @app.route('/api/exports/<kind>', methods=['GET'])
    def api_export(kind: str):
        shape = request.args.get('shape', 'rows')
        if shape not in ('rows', 'table'):
            raise BadRequest('shape must be rows or table')
        rows, (headers, values) = _export(kind, _snapshot())
        if shape == 'rows':
            return jsonify(rows)
        return jsonify({'headers': headers, 'rows': values})

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @app.route('/api/students', methods=['POST'])
    def api_add_student():
        data = _body()
        name, level, class_label = _required(data, 'name', 'level', 'class_label')
        snapshot = _gateway().add_student(
            name, level, class_label, code=data.get('code'),
            guardian_name=data.get('guardian_name'), guardian_phone=data.get('guardian_phone'))
        return _snapshot_response(snapshot, 201)

    @app.route('/api/teachers', methods=['POST'])
    def api_add_teacher():
        data = _body()
        name, level, class_label = _required(data, 'name', 'level', 'class_label')
        snapshot = _gateway().add_teacher(name, level, class_label, code=data.get('code'),
                                          phone=data.get('phone'))
        return _snapshot_response(snapshot, 201)

    @app.route('/api/class-supervisors', methods=['POST'])
    def api_add_class_supervisor():
        data = _body()
        name, level, class_label = _required(data, 'name', 'level', 'class_label')
        snapshot = _gateway().add_class_supervisor(name, level, class_label, phone=data.get('phone'))
        return _snapshot_response(snapshot, 201)

    @app.route('/api/students/<int:student_id>', methods=['PATCH'])
    def api_update_student(student_id: int):
        return _snapshot_response(_gateway().update_student(student_id, **_body()))

    @app.route('/api/students/<int:student_id>', methods=['DELETE'])
    def api_delete_student(student_id: int):
        return _snapshot_response(_gateway().delete_student(student_id))

    @app.route('/api/teachers/<int:teacher_id>', methods=['PATCH'])
    def api_update_teacher(teacher_id: int):
        return _snapshot_response(_gateway().update_teacher(teacher_id, **_body()))

    @app.route('/api/teachers/<int:teacher_id>', methods=['DELETE'])
    def api_delete_teacher(teacher_id: int):
        return _snapshot_response(_gateway().delete_teacher(teacher_id))

    @app.route('/api/class-supervisors/<int:supervisor_id>', methods=['PATCH'])
    def api_update_class_supervisor(supervisor_id: int):
        return _snapshot_response(_gateway().update_class_supervisor(supervisor_id, **_body()))

    @app.route('/api/class-supervisors/<int:supervisor_id>', methods=['DELETE'])
    def api_delete_class_supervisor(supervisor_id: int):
        return _snapshot_response(_gateway().delete_class_supervisor(supervisor_id))

    @app.route('/api/study-groups', methods=['POST'])
    def api_add_study_group():
        data = _body()
        name, teacher_id, level, time_slots = _required(
            data, 'name', 'teacher_id', 'level', 'time_slots')
        snapshot = _gateway().add_study_group(
            name, teacher_id, level, data.get('group_type'), time_slots,
            student_ids=data.get('student_ids') or (), display_order=data.get('display_order'))
        return _snapshot_response(snapshot, 201)

    @app.route('/api/study-groups/<int:group_id>', methods=['PATCH'])
    def api_update_study_group(group_id: int):
        return _snapshot_response(_gateway().update_study_group(group_id, **_body()))

    @app.route('/api/study-groups/<int:group_id>', methods=['DELETE'])
    def api_delete_study_group(group_id: int):
        return _snapshot_response(_gateway().delete_study_group(group_id))

    @app.route('/api/study-groups/<int:group_id>/members', methods=['POST'])
    def api_add_member(group_id: int):
        (student_id,) = _required(_body(), 'student_id')
        return _snapshot_response(_gateway().add_member(group_id, int(student_id)), 201)

    @app.route('/api/study-groups/<int:group_id>/members/<int:student_id>', methods=['DELETE'])
    def api_remove_member(group_id: int, student_id: int):
        return _snapshot_response(_gateway().remove_member(group_id, student_id))

    @app.route('/api/attendance', methods=['POST'])
    def api_add_attendance():
        (entries,) = _required(_body(), 'entries')
        for entry in entries:
            _required(entry, 'date', 'time_slot', 'person_id', 'role', 'status', 'study_group_id')
        return _snapshot_response(_gateway().add_attendance_entries(entries), 201)

    @app.route('/api/attendance', methods=['DELETE'])
    def api_delete_attendance_batch():
        on_date = _date_arg('date')
        time_slot = request.args.get('time_slot')
        if not on_date or not time_slot:
            raise BadRequest('date and time_slot are required')
        return _snapshot_response(_gateway().delete_attendance_batch(on_date, time_slot))

    @app.route('/api/attendance/<int:entry_id>', methods=['PATCH'])
    def api_update_attendance(entry_id: int):
        return _snapshot_response(_gateway().update_attendance_entry(entry_id, **_body()))

    @app.route('/api/attendance/<int:entry_id>', methods=['DELETE'])
    def api_delete_attendance(entry_id: int):
        return _snapshot_response(_gateway().delete_attendance_entry(entry_id))

    @app.route('/api/progress', methods=['PUT'])
    def api_upsert_progress():
        (records,) = _required(_body(), 'records')
        for record in records:
            _required(record, 'student_id', 'month_key', 'dimension', 'value')
        return _snapshot_response(_gateway().upsert_progress_batch(records))

    @app.route('/api/progress', methods=['DELETE'])
    def api_delete_progress_by_month():
        month = request.args.get('month')
        dimension = request.args.get('dimension')
        if not month or not dimension:
            raise BadRequest('month and dimension are required')
        return _snapshot_response(_gateway().delete_progress_by_month(month, dimension))

    @app.route('/api/progress/<int:progress_id>', methods=['DELETE'])
    def api_delete_progress(progress_id: int):
        return _snapshot_response(_gateway().delete_progress(progress_id))

    @app.route('/api/class-targets', methods=['PUT'])
    def api_upsert_class_target():
        data = _body()
        level, class_label = _required(data, 'level', 'class_label')
        targets = {k: v for k, v in data.items() if k not in ('level', 'class_label')}
        return _snapshot_response(_gateway().upsert_class_target(level, class_label, **targets))

    @app.route('/api/evaluations/<int:student_id>/<month>', methods=['PUT'])
    def api_upsert_evaluation(student_id: int, month: str):
        return _snapshot_response(_gateway().upsert_evaluation(student_id, month, **_body()))

    @app.route('/api/rating-options', methods=['POST'])
    def api_add_rating_option():
        data = _body()
        category, label = _required(data, 'category', 'label')
        snapshot = _gateway().add_rating_option(category, label, score=data.get('score', 0))
        return _snapshot_response(snapshot, 201)

    @app.route('/api/rating-options/<int:option_id>', methods=['DELETE'])
    def api_delete_rating_option(option_id: int):
        return _snapshot_response(_gateway().delete_rating_option(option_id))

    @app.route('/api/chat', methods=['POST'])
    def api_post_chat():
        data = _body()
        (content,) = _required(data, 'content')
        message = _gateway().post_chat_message(content, reply_to_id=data.get('reply_to'))
        return jsonify(_jsonable(message)), 201

    @app.route('/api/chat/<int:message_id>', methods=['DELETE'])
    def api_delete_chat(message_id: int):
        _gateway().delete_chat_message(message_id)
        return '', 204

    # ------------------------------------------------------------------
    # Error handlers, all rendered as problem details
    # ------------------------------------------------------------------

    @app.errorhandler(HalaqahError)
    def handle_domain_error(error: HalaqahError):
        if error.status_code >= 500:
            _logger.warning("request failed", extra={"error_type": type(error).__name__,
                                                     "error": error.detail})
        return _problem(error.status_code, error.title, error.detail)

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return _problem(error.code or 500, error.name, error.description or error.name)

    @app.errorhandler(ValueError)
    def handle_invalid_value(error: ValueError):
        return _problem(400, 'Bad Request', str(error))

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(error: SQLAlchemyError):
        db.session.rollback()
        _logger.error("database operation failed", exc_info=error)
        return _problem(503, 'Service Unavailable', 'Database temporarily unavailable')

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8000))
    create_app().run(host='0.0.0.0', port=port, debug=True)
