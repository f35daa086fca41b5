import logging
import os

from config import config
from flask import Flask, jsonify
from flask_cors import CORS
from flask_migrate import Migrate


def create_app(config_name=None):
    """Application factory pattern"""
    if config_name is None:
        config_name = os.getenv("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    logging.basicConfig(
        level=logging.DEBUG if app.config.get("DEBUG") else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    # Initialize CORS for the frontend

    # Get allowed origins from environment variable
    ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")

    CORS(
        app,
        resources={
            r"/api/*": {"origins": ALLOWED_ORIGINS},
        },
    )

    # Initialize SQLAlchemy
    from models import db

    db.init_app(app)

    # Initialize Flask-Migrate
    Migrate(app, db)

    # Import all models to ensure they are registered with SQLAlchemy
    from models.question import Question  # noqa: F401
    from models.study_code import StudyCode  # noqa: F401

    # One rate limiter and one evaluation pipeline per process
    from services.answer_evaluation_service import AnswerEvaluationService
    from services.rate_limiter import RateLimiter

    app.extensions["rate_limiter"] = RateLimiter(
        cleanup_interval_ms=app.config["RATE_LIMIT_CLEANUP_INTERVAL_MS"]
    )
    app.extensions["answer_evaluation_service"] = AnswerEvaluationService.from_config(app.config)

    # Register API blueprints
    from routes.evaluation import bp as evaluation_bp

    app.register_blueprint(evaluation_bp)

    # Home route
    @app.route("/")
    def home():
        return jsonify({"message": "Welcome to the French practice API!", "version": "1.0.0"})

    # Health check route
    @app.route("/health")
    def health_check():
        try:
            db.session.execute(db.text("SELECT 1"))
            return jsonify({"status": "healthy", "database": "connected"}), 200
        except Exception as e:
            app.logger.error(f"Health check failed: {e}")
            return jsonify({"status": "unhealthy", "error": str(e)}), 500

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=True, port=5001)
