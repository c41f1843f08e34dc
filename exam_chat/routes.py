import logging

from flask import Blueprint, current_app, jsonify, request

from .errors import ChatServiceError

logger = logging.getLogger(__name__)

chat_bp = Blueprint("chat_bp", __name__)

GENERIC_ERROR = {"error": "Internal server error", "message": "Error processing your request"}


@chat_bp.route("/chat", methods=["POST"])
def chat():
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid or missing JSON body."}), 400

    prompt = data.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        return jsonify({"error": "'prompt' must be a non-empty string."}), 400

    runner = current_app.extensions["exam_chat"]
    try:
        response = runner.generate_response(prompt)
    except ChatServiceError as e:
        logger.error("Chat request failed: %s", e)
        return jsonify(GENERIC_ERROR), 500
    except Exception:
        logger.exception("Unexpected error while handling chat request")
        return jsonify(GENERIC_ERROR), 500

    return jsonify({"response": response}), 200
