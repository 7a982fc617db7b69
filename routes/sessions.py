"""
Session routes (the user's phone and the kiosk screen).

Handles:
- /create-session   - upload a document, count pages, open a session
- /session/<id>     - poll session status
- /session/<id>/quote, /session/<id>/job
- /confirm-payment, /start-print, /finish-print, /cancel-session
- /reset-session    - kiosk screen clears everything after a job
"""

from flask import Blueprint, request

from logging_config import get_logger
from routes.common import (
    MAX_FILENAME_LENGTH,
    MAX_PHONE_LENGTH,
    get_kiosk,
    is_privileged,
    parse_bool,
    parse_float,
    parse_int,
    request_data,
    require_session_id,
    sanitize_text,
)


# Module logger
logger = get_logger(__name__)

sessions_bp = Blueprint("sessions", __name__)


@sessions_bp.route("/create-session", methods=["POST"])
def create_session():
    """
    Accept a multipart upload (field ``file``, optional ``phone``).

    The file is deleted again if it is rejected for any reason.
    """
    upload = request.files.get("file")
    if not upload or upload.filename == "":
        return {"error": "No file uploaded", "reason": "no_file", "details": {}}, 400

    if len(upload.filename) > MAX_FILENAME_LENGTH:
        return {
            "error": f"Filename too long. Maximum {MAX_FILENAME_LENGTH} characters.",
            "reason": "filename_too_long",
            "details": {},
        }, 400

    logger.info(f"Upload received: {upload.filename}")
    data = request.form.to_dict()
    phone = sanitize_text(data.get("phone"), max_length=MAX_PHONE_LENGTH)

    kiosk = get_kiosk()
    session = kiosk.create_session(
        upload,
        phone=phone,
        privileged=is_privileged(data),
        display_name=sanitize_text(upload.filename, max_length=MAX_FILENAME_LENGTH),
    )

    quote = kiosk.quote(session.session_id)
    return {
        "sessionId": session.session_id,
        "pages": session.declared_page_count,
        "fileName": session.file_name,
        "amount": quote["amount"],
    }


@sessions_bp.route("/session/<session_id>", methods=["GET"])
def get_session(session_id: str):
    return get_kiosk().get_session(session_id.upper()).to_dict()


@sessions_bp.route("/session/<session_id>/quote", methods=["GET"])
def quote(session_id: str):
    copies = parse_int(request.args.get("copies"), "copies")
    print_type = sanitize_text(request.args.get("printType"), max_length=10) or None
    return get_kiosk().quote(session_id.upper(), copies=copies, color_mode=print_type)


@sessions_bp.route("/session/<session_id>/job", methods=["GET"])
def job_status(session_id: str):
    job = get_kiosk().get_job(session_id.upper())
    if job is None:
        return {"error": "No print job for this session", "reason": "not_found", "details": {}}, 404
    return job.to_dict()


@sessions_bp.route("/confirm-payment", methods=["POST"])
def confirm_payment():
    data = request_data()
    session_id = require_session_id(data)

    session = get_kiosk().confirm_payment(
        session_id,
        parse_float(data.get("amount"), "amount"),
        copies=parse_int(data.get("copies"), "copies"),
        color_mode=sanitize_text(data.get("printType"), max_length=10) or None,
    )
    return {"success": True, "session": session.to_dict()}


@sessions_bp.route("/start-print", methods=["POST"])
def start_print():
    """
    Start printing a paid session.

    A paper shortage is reported as ``{"warning": true, ...}`` with nothing
    started; the client repeats the request with ``force: true`` to print
    what the paper allows.
    """
    data = request_data()
    session_id = require_session_id(data)

    outcome = get_kiosk().start_print(
        session_id,
        copies=parse_int(data.get("copies"), "copies"),
        color_mode=sanitize_text(data.get("printType"), max_length=10) or None,
        print_mode=sanitize_text(data.get("printMode"), max_length=10) or None,
        printer_id=sanitize_text(data.get("printerId"), max_length=32) or None,
        privileged=is_privileged(data),
        force=parse_bool(data.get("force")),
    )
    return outcome.to_dict()


@sessions_bp.route("/finish-print", methods=["POST"])
def finish_print():
    data = request_data()
    session = get_kiosk().finish_print(require_session_id(data))
    return {"success": True, "session": session.to_dict()}


@sessions_bp.route("/cancel-session", methods=["POST"])
def cancel_session():
    data = request_data()
    session_id = require_session_id(data)
    get_kiosk().cancel_session(session_id)
    return {"success": True, "sessionId": session_id}


@sessions_bp.route("/reset-session", methods=["POST"])
def reset_session():
    result = get_kiosk().reset_machine()
    return {"success": True, **result}
