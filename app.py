import logging
import os

from dotenv import load_dotenv
from flask import Flask, jsonify

from src.agents.deck_agent import get_blueprint


# ---- Flask app setup ----
load_dotenv()
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

DEFAULT_PORT = int(os.environ.get("FLASK_PORT", "5000"))
DEFAULT_HOST = os.environ.get("FLASK_HOST", "127.0.0.1")


def create_app(config: dict | None = None) -> Flask:
    app = Flask(__name__)
    app.secret_key = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    if config:
        app.config.update(config)
    app.register_blueprint(get_blueprint())

    @app.route("/")
    def index():
        return jsonify({"service": "deck-agents", "status": "ok"})

    @app.route("/healthz")
    def healthz():
        return jsonify({"ok": True, "mode": os.environ.get("DECK_GENERATION_MODE", "local")})

    return app


app = create_app()


if __name__ == "__main__":
    app.run(host=DEFAULT_HOST, port=DEFAULT_PORT, debug=True)
