# exam_portal/app.py
import logging

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from exam_portal.commands import register_commands
from exam_portal.config import Config
from exam_portal.database import db
from exam_portal.routes.auth_routes import auth
from exam_portal.routes.authorize_routes import authorize
from exam_portal.routes.exam_routes import exam
from exam_portal.routes.result_routes import result
from exam_portal.routes.review_routes import review
from exam_portal.routes.student_routes import student
from exam_portal.routes.user_routes import users
from exam_portal.utils.rate_limiter import limiter
from exam_portal.utils.session import NEW_TOKEN_HEADER

logger = logging.getLogger(__name__)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    CORS(
        app,
        origins=app.config["CORS_ORIGINS"],
        expose_headers=[NEW_TOKEN_HEADER],
    )

    # =====================================================
    # DATABASE
    # =====================================================
    db.init_app(app)
    with app.app_context():
        db.create_all()

    limiter.init_app(app)

    # =====================================================
    # BLUEPRINTS
    # =====================================================
    app.register_blueprint(auth)
    app.register_blueprint(users)
    app.register_blueprint(exam, url_prefix="/exam")
    app.register_blueprint(authorize)
    app.register_blueprint(result)
    app.register_blueprint(student)
    app.register_blueprint(review)

    register_commands(app)

    # =====================================================
    # ERROR HANDLERS
    # =====================================================
    @app.errorhandler(429)
    def handle_rate_limited(e):
        return jsonify({"message": "Too many attempts, try again later."}), 429

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"message": e.description, "error": e.name}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        db.session.rollback()
        logger.exception("Unhandled error")
        return jsonify({"message": "An unexpected error occurred"}), 500

    # =====================================================
    # HEALTH CHECK
    # =====================================================
    @app.get("/")
    def index():
        return jsonify({"message": "Welcome to the exam portal API"})

    @app.get("/health")
    def health():
        return jsonify({"status": "ok"})

    return app


# =====================================================
# LOCAL RUN ONLY (PRODUCTION USES GUNICORN)
# =====================================================
if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000)
