# backend/erp/__init__.py
from flask import Flask, g, jsonify, request

from .config import Config
from .errors import ErpError
from .extensions import db, migrate
from .logging_config import configure_logging


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.inventory import inventory_bp
    from .routes.manufacturing import manufacturing_bp
    from .routes.procurement import procurement_bp
    from .routes.sales import sales_bp
    from .routes.financials import financials_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(manufacturing_bp)
    app.register_blueprint(procurement_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(financials_bp)
    app.register_blueprint(reports_bp)

    @app.before_request
    def reset_request_ledgers():
        # Ledgers and their snapshots live for one request only
        g.pop("erp_ledgers", None)

    @app.errorhandler(ErpError)
    def handle_erp_error(exc: ErpError):
        db.session.rollback()
        if exc.status_code >= 500:
            app.logger.error("Request failed: %s", exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in set(app.config.get("CORS_ORIGINS", ())):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-User-Role, X-User-Name, X-Request-ID"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
