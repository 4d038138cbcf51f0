"""HTTP and Socket.IO surface for submitting title requests."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, request
from flask_socketio import SocketIO, emit

from titlebot_agent.locator import BotNotLocatedError
from titlebot_agent.models import AssignmentOutcome, AssignmentRequest, Reporter
from titlebot_agent.scheduler import SubmissionStatus
from titlebot_agent.service import (
    DeviceUnavailableError,
    KingdomNotConfiguredError,
    LocationMissingError,
    TierMismatchError,
    TitleService,
)
from titlebot_agent.store import StoreUnavailable
from titlebot_os.adb import DeviceCommandFailed
from titlebot_os.capture import CaptureError
from titlebot_vision.markers import ReferenceNotFoundError

Logger = logging.Logger

UPDATE_EVENT = "request_update"


class SocketIOReporter(Reporter):
    """Pushes request progress to connected clients."""

    def __init__(self, socketio: SocketIO) -> None:
        self._socketio = socketio
        self.outcome: Optional[AssignmentOutcome] = None

    def queued(self, request: AssignmentRequest, position: int) -> None:
        self._send(request, "queued", position=position)

    def started(self, request: AssignmentRequest) -> None:
        self._send(request, "started")

    def completed(self, request: AssignmentRequest, outcome: AssignmentOutcome) -> None:
        self.outcome = outcome
        self._send(request, "completed", **outcome.to_dict())

    def _send(self, request: AssignmentRequest, state: str, **extra: Any) -> None:
        payload = {
            "request_id": request.request_id,
            "title": request.resource_key,
            "requested_by": request.requested_by,
            "state": state,
        }
        payload.update(extra)
        self._socketio.emit(UPDATE_EVENT, payload)


def _error(message: str, status: int) -> Tuple[Any, int]:
    return jsonify({"error": message}), status


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object body")
    return data


def create_app(
    service: TitleService,
    admin_token: Optional[str] = None,
    logger: Optional[Logger] = None,
) -> Tuple[Flask, SocketIO]:
    """Build the Flask app and its Socket.IO server.

    Args:
        service: Intake that owns the scheduler.
        admin_token: When set, `/api/locate-bot` requires a matching
            `X-Admin-Token` header.
        logger: Optional logger instance.

    Returns:
        The app and the Socket.IO server wrapping it.
    """
    log = logger or logging.getLogger(__name__)
    app = Flask(__name__)
    socketio = SocketIO(app, cors_allowed_origins="*", async_mode="threading")

    @app.route("/api/locations", methods=["POST"])
    def set_location():
        try:
            data = _json_body()
            location = service.set_location(
                user_id=data["user_id"],
                user_name=data.get("user_name", ""),
                account_type=data["account_type"],
                tier=data["tier"],
                x=data["x"],
                y=data["y"],
            )
        except KeyError as exc:
            return _error(f"Missing field: {exc.args[0]}", 400)
        except (TypeError, ValueError) as exc:
            return _error(str(exc), 400)
        except StoreUnavailable as exc:
            log.error("Location store failed: %s", exc)
            return _error("Location store unavailable", 500)
        return jsonify(location.to_dict()), 200

    @app.route("/api/titles", methods=["POST"])
    def request_title():
        reporter = SocketIOReporter(socketio)
        try:
            data = _json_body()
            assignment, status = service.request_title(
                user_id=data["user_id"],
                account_type=data.get("account_type", "main"),
                tier=data["tier"],
                title=data["title"],
                reporter=reporter,
            )
        except KeyError as exc:
            return _error(f"Missing field: {exc.args[0]}", 400)
        except LocationMissingError as exc:
            return _error(str(exc), 404)
        except TierMismatchError as exc:
            return _error(str(exc), 409)
        except (DeviceUnavailableError, KingdomNotConfiguredError) as exc:
            return _error(str(exc), 503)
        except StoreUnavailable as exc:
            log.error("Location store failed: %s", exc)
            return _error("Location store unavailable", 500)
        except (TypeError, ValueError) as exc:
            return _error(str(exc), 400)

        body = {"request_id": assignment.request_id, "status": status.value}
        if status is SubmissionStatus.REJECTED:
            body["error"] = reporter.outcome.message if reporter.outcome else "Request rejected"
            return jsonify(body), 400
        return jsonify(body), 202

    @app.route("/api/status", methods=["GET"])
    def status():
        return jsonify(service.status().to_dict())

    @app.route("/api/locate-bot", methods=["POST"])
    def locate_bot():
        if admin_token and request.headers.get("X-Admin-Token") != admin_token:
            return _error("Admin token required", 403)
        try:
            result = service.locate_bot()
        except BotNotLocatedError as exc:
            return _error(str(exc), 404)
        except DeviceUnavailableError as exc:
            return _error(str(exc), 503)
        except (ReferenceNotFoundError, CaptureError, DeviceCommandFailed) as exc:
            log.error("Locate bot failed: %s", exc)
            return _error(str(exc), 500)
        return jsonify(result.to_dict())

    @socketio.on("connect")
    def handle_connect():
        log.debug("Client connected")
        emit("status", service.status().to_dict())

    return app, socketio


__all__ = ["SocketIOReporter", "UPDATE_EVENT", "create_app"]
