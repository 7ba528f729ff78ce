import logging
import os
import uuid
from typing import Optional

from flask import Flask, Response, jsonify, request

from catalog import EnumerationMode
from converter import ConversionOptions, convert
from stalker import StalkerPortalError, ValidationError

logger = logging.getLogger(__name__)

app = Flask(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Client-Info, Apikey",
}


def options_from_env(mode: Optional[EnumerationMode] = None) -> ConversionOptions:
    """
    Build conversion options from STALKER_* environment variables.

    A mode sent by the client wins over STALKER_MODE. Bad variable values
    raise ValueError.
    """
    max_pages = os.environ.get("STALKER_MAX_PAGES")
    return ConversionOptions(
        mode=mode or EnumerationMode(os.environ.get("STALKER_MODE", EnumerationMode.FLAT.value)),
        workers=int(os.environ.get("STALKER_WORKERS", "1")),
        timeout=float(os.environ.get("STALKER_TIMEOUT", "30")),
        max_pages=int(max_pages) if max_pages else None,
    )


def error_response(message, status):
    response = jsonify({"success": False, "error": message})
    response.status_code = status
    return response


@app.after_request
def add_cors_headers(response):
    response.headers.update(CORS_HEADERS)
    return response


@app.route("/", methods=["POST", "OPTIONS"])
@app.route("/convert", methods=["POST", "OPTIONS"])
def convert_portal():
    if request.method == "OPTIONS":
        return Response(status=200)

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    portal_url = payload.get("portalUrl")
    mac_address = payload.get("macAddress")
    if not isinstance(portal_url, str) or not isinstance(mac_address, str) \
            or not portal_url.strip() or not mac_address.strip():
        return error_response("Portal URL and MAC address are required", 400)

    session_id = payload.get("sessionId") or str(uuid.uuid4())
    include_raw = bool(payload.get("includeRaw"))

    mode = None
    if payload.get("mode"):
        try:
            mode = EnumerationMode(payload["mode"])
        except (ValueError, TypeError):
            return error_response(f"Invalid mode: {payload['mode']!r}", 400)

    try:
        options = options_from_env(mode)
    except ValueError as e:
        logger.error(f"Invalid STALKER_* configuration: {e}")
        return error_response(f"Server misconfiguration: {e}", 500)

    try:
        result = convert(portal_url, mac_address, options, include_raw=include_raw)
    except ValidationError as e:
        return error_response(str(e), 400)
    except StalkerPortalError as e:
        logger.error(f"Conversion for session {session_id} failed: {e}")
        return error_response(str(e), 500)
    except Exception as e:
        logger.exception(f"Unexpected error converting for session {session_id}")
        return error_response(str(e) or "Unknown error", 500)

    return jsonify(result.to_response(session_id, include_raw=include_raw))


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    app.run(host=os.environ.get("HOST", "0.0.0.0"), port=int(os.environ.get("PORT", "5000")))
