from __future__ import annotations

from flask import Flask
from flask_cors import CORS

from .config import DefaultConfig
from .extensions import db
from .realtime import change_feed


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(DefaultConfig)

    if isinstance(config_object, dict):
        app.config.from_mapping(config_object)
    elif config_object:
        app.config.from_object(config_object)
    else:
        app.config.from_envvar("APP_SETTINGS", silent=True)

    db.init_app(app)
    change_feed.install()

    CORS(app,
         origins=app.config["CORS_ORIGINS"],
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )

    register_routes(app)

    return app


def register_routes(app: Flask) -> None:
    from .routes import bp
    from .routes_appointments import bp_appointments
    from .routes_expenses import bp_expenses
    from .routes_reports import bp_reports
    from .routes_sales import bp_sales

    app.register_blueprint(bp)
    app.register_blueprint(bp_appointments)
    app.register_blueprint(bp_sales)
    app.register_blueprint(bp_reports)
    app.register_blueprint(bp_expenses)
