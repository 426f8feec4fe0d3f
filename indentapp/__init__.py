from flask import Flask, current_app, redirect, url_for
from sqlalchemy import inspect, text
from sqlalchemy.exc import NoSuchTableError, OperationalError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .extensions import db
from .routes import api, cart, catalogue, errors, indent, settings
from .services import change_feed
from .utils.logging import configure_logging, init_request_ids
from config import Config
from . import models  # ensure models are registered with SQLAlchemy


NAVIGATION_PAGES: tuple[tuple[str, str], ...] = (
    ("locator.locator_home", "Drug Locator"),
    ("indent.indent_home", "Indent"),
    ("cart.cart_home", "Cart"),
    ("cart.history", "Previous Indents"),
    ("settings.inventory_table", "Settings"),
)


def _ensure_inventory_schema(engine):
    """Backfill legacy inventory tables with the current columns."""

    inspector = inspect(engine)

    try:
        item_columns = {col["name"] for col in inspector.get_columns("inventory_items")}
    except (NoSuchTableError, OperationalError):
        return

    item_required_columns = {
        "location_code": "VARCHAR(130)",
        "indent_source": "VARCHAR(20)",
        "remarks": "TEXT",
        "image_url": "VARCHAR(500)",
    }

    columns_to_add = [
        (column_name, column_type)
        for column_name, column_type in item_required_columns.items()
        if column_name not in item_columns
    ]

    if columns_to_add:
        with engine.begin() as conn:
            for column_name, column_type in columns_to_add:
                conn.execute(
                    text(f"ALTER TABLE inventory_items ADD COLUMN {column_name} {column_type}")
                )

    if "location_code" not in item_columns:
        with engine.begin() as conn:
            conn.execute(
                text(
                    "UPDATE inventory_items "
                    "SET location_code = section || '-' || row || '-' || bin "
                    "WHERE location_code IS NULL"
                )
            )


def _ping_database() -> None:
    """Raise :class:`OperationalError` when the configured database is unreachable."""

    with db.engine.connect() as connection:
        connection.execute(text("SELECT 1"))


def create_app(config_override=None):
    app = Flask(__name__)

    # load configuration from environment variables
    app.config.from_object(Config)
    if config_override:
        app.config.update(config_override)

    app.config.setdefault("DATABASE_AVAILABLE", True)
    app.config.setdefault("DATABASE_ERROR", None)

    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if database_uri.startswith("sqlite:///:memory:"):
        engine_options = app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {})
        connect_args = engine_options.setdefault("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        engine_options.setdefault("poolclass", StaticPool)

    configure_logging(app)
    init_request_ids(app)

    db.init_app(app)
    change_feed.init_app(app)

    database_available = True
    database_error_message: str | None = None

    # create tables if they do not exist and ensure legacy schema
    with app.app_context():
        try:
            _ping_database()
        except OperationalError as exc:
            database_available = False
            root_cause = getattr(exc, "orig", exc)
            details = str(root_cause).strip()
            database_error_message = (
                "Unable to connect to the configured database. Start the "
                "database service or update the DB_URL setting, then restart "
                "the app."
            )
            if details:
                database_error_message += f" (Error: {details})"
            message_suffix = f": {details}" if details else ""
            current_app.logger.error(
                "Database connection unavailable during startup%s",
                message_suffix,
                exc_info=current_app.debug,
            )
            db.session.remove()
            db.engine.dispose()
        else:
            try:
                db.create_all()
                _ensure_inventory_schema(db.engine)
            except SQLAlchemyError:
                database_available = False
                database_error_message = (
                    "The database schema could not be initialized. Review the logs "
                    "for details and restart the app once resolved."
                )
                current_app.logger.exception("Database initialization error")
                db.session.remove()

    app.config["DATABASE_AVAILABLE"] = database_available
    app.config["DATABASE_ERROR"] = database_error_message

    @app.context_processor
    def inject_shell_helpers():
        def navigation_links():
            return [
                {"endpoint": endpoint, "label": label, "href": url_for(endpoint)}
                for endpoint, label in NAVIGATION_PAGES
            ]

        return {
            "navigation_links": navigation_links,
            "indent_sources": current_app.config["INDENT_SOURCES"],
            "item_types": current_app.config["ITEM_TYPES"],
            "search_debounce_ms": current_app.config["SEARCH_DEBOUNCE_MS"],
            "database_online": current_app.config.get("DATABASE_AVAILABLE", True),
            "database_error_message": current_app.config.get("DATABASE_ERROR"),
        }

    # register blueprints
    app.register_blueprint(catalogue.bp)
    app.register_blueprint(indent.bp)
    app.register_blueprint(cart.bp)
    app.register_blueprint(settings.bp)
    app.register_blueprint(api.bp)
    app.register_blueprint(errors.bp)

    @app.route("/")
    def home():
        return redirect(url_for("locator.locator_home"))

    return app
