import os
from pathlib import Path

from flask import Flask
from supabase import create_client

from config.catalogs import ROLES, load_catalogs
from .main.routes import main_bp
from .seed import register_commands


def create_app():
    app = Flask(__name__)
    app.secret_key = os.environ["SECRET_KEY"]

    supabase = create_client(
        os.environ["SUPABASE_URL"],
        os.environ["SUPABASE_SERVICE_KEY"],
    )
    app.config["SUPABASE"] = supabase
    app.config["SUPABASE_URL"] = os.environ["SUPABASE_URL"]

    catalogs_path = (
        os.environ.get("RCIS_CATALOGS_FILE")
        or Path(__file__).resolve().parent.parent / "config" / "catalogs.json"
    )
    app.config["CATALOGS"] = load_catalogs(catalogs_path)
    app.config["LOCAL_TIMEZONE"] = os.environ.get("LOCAL_TIMEZONE") or "UTC"

    # Display preference for the presentation layer only; nothing is gated on it.
    role = os.environ.get("RCIS_ROLE") or ROLES[0]
    if role not in ROLES:
        app.logger.warning("Unknown RCIS_ROLE %r; using %s", role, ROLES[0])
        role = ROLES[0]
    app.config["DASHBOARD_ROLE"] = role

    app.register_blueprint(main_bp)
    register_commands(app)

    @app.context_processor
    def inject_dashboard_context():
        return {
            "user_role": app.config["DASHBOARD_ROLE"],
            "catalogs": app.config["CATALOGS"],
        }

    return app

