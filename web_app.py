import logging
import os
from datetime import datetime, timezone

from dotenv import load_dotenv

load_dotenv()

from flask import Flask, jsonify, request, session
from flask_session import Session
import redis
import structlog

from company_cache import build_cache
from config import get_config
from dispatcher import ChatDispatcher
from errors import ConfigError
from model_client import CompletionClient

logger = structlog.get_logger()

GENERIC_ERROR = "An unexpected error occurred. Please try again."


def configure_logging(level: str = "INFO"):
    """Configure structured logging"""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def init_sessions(app: Flask):
    """Server-side sessions: redis when available, filesystem otherwise"""
    if app.config.get("SESSION_TYPE") == "redis":
        try:
            redis_client = redis.from_url(app.config["REDIS_URL"])
            redis_client.ping()
            app.config["SESSION_REDIS"] = redis_client
            logger.info("Redis session storage configured successfully")
        except redis.RedisError as e:
            logger.error("Failed to connect to Redis, falling back to filesystem sessions", error=str(e))
            app.config["SESSION_TYPE"] = "filesystem"

    if app.config.get("SESSION_TYPE"):
        Session(app)
        if app.config["SESSION_TYPE"] == "filesystem":
            logger.warning("Using filesystem sessions - not recommended for production")


def create_app(config_object=None, client=None) -> Flask:
    config_object = config_object or get_config()

    app = Flask(__name__)
    app.config.from_object(config_object)
    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    problems = config_object.validate()
    for problem in problems:
        logger.warning("Configuration problem", problem=problem)
    if problems and not (app.debug or app.testing):
        raise ConfigError("; ".join(problems))

    init_sessions(app)

    cache = build_cache(app.config)
    client = client or CompletionClient.from_config(app.config, cache)
    dispatcher = ChatDispatcher(cache, client)
    app.extensions["chatbot"] = dispatcher

    @app.route("/chatbot", methods=["GET", "POST"])
    @app.route("/chatbot/chatbot.php", methods=["GET", "POST"])
    def chatbot():
        try:
            payload, status = dispatcher.handle(request.method, request.args, request.form, session)
        except Exception:
            logger.exception("Unexpected error in chatbot endpoint")
            payload, status = {"success": False, "message": GENERIC_ERROR}, 500
        return jsonify(payload), status

    @app.route("/api/health")
    def health():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "session": {
                "type": app.config.get("SESSION_TYPE") or "cookie",
                "secure_cookies": app.config.get("SESSION_COOKIE_SECURE", False),
            },
            "cache": cache.status(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"success": False, "message": "Method not allowed"}), 405

    return app


if __name__ == "__main__":
    # Development server only
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", 5001)), debug=True)
