import logging

from flask import Flask, jsonify
from flask_cors import CORS
from openai import OpenAI

from exam_chat.assistant import AssistantRunner
from exam_chat.config import load_settings
from exam_chat.directus import DirectusClient
from exam_chat.logging_utils import configure_logging
from exam_chat.query import SchoolQueryAdapter
from exam_chat.routes import chat_bp

logger = logging.getLogger("exam_chat")


# ---------------------------
# 1) Wire clients (once, at startup)
# ---------------------------
def build_runner(settings) -> AssistantRunner:
    oai = OpenAI(api_key=settings.openai_api_key)
    directus = DirectusClient(
        settings.directus_url, settings.directus_token, timeout=settings.request_timeout
    )
    adapter = SchoolQueryAdapter(directus, limit=settings.result_limit)
    return AssistantRunner(oai, adapter, settings)


# ---------------------------
# 2) Initialize Flask App
# ---------------------------
def create_app(settings=None, runner=None) -> Flask:
    """
    Build the app. A missing OPENAI_API_KEY / DIRECTUS_URL / DIRECTUS_TOKEN /
    ASSISTANT_ID raises ConfigurationError here, before any request is served.
    """
    if runner is None:
        settings = settings or load_settings()
        configure_logging(settings.log_level)
        logger.info("OPENAI_API_KEY loaded: YES (masked: %s)", settings.masked_key())
        logger.info("Directus at %s, assistant %s", settings.directus_url, settings.assistant_id)
        runner = build_runner(settings)

    app = Flask(__name__)
    CORS(app)
    app.extensions["exam_chat"] = runner

    @app.route("/", methods=["GET"])
    def health():
        return jsonify({"status": "ok", "service": "exam-ai-chat"}), 200

    app.register_blueprint(chat_bp)
    return app


# ---------------------------
# 3) Run (local dev)
# ---------------------------
if __name__ == "__main__":
    app = create_app()
    logger.info("Flask server running at http://127.0.0.1:5000")
    app.run(debug=True)
