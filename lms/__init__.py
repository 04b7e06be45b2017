from __future__ import annotations

import logging

import click
from flask import Flask, jsonify
from flask.logging import default_handler
from werkzeug.exceptions import HTTPException

from lms.core.auth import auth_bp
from lms.core.config import Config
from lms.core.extensions import db, login_manager, migrate
from lms.core.models import User, seed_demo_data
from lms.workflow import workflow_bp
from lms.workflow.queue import QueueView, build_review_queue, filter_review_queue


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    _configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(workflow_bp)

    register_cli(app)
    register_error_handlers(app)
    return app


def _configure_logging(app: Flask) -> None:
    logger = logging.getLogger("lms")
    if default_handler not in logger.handlers:
        logger.addHandler(default_handler)
    logger.setLevel(app.config["LOG_LEVEL"].upper())


def register_error_handlers(app: Flask) -> None:
    categories = {401: "auth", 403: "permission", 404: "not_found"}

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        body = {
            "error": (error.name or "error").lower().replace(" ", "_"),
            "message": error.description,
            "category": categories.get(error.code, "error"),
        }
        return jsonify(body), error.code


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Drop and recreate all tables before seeding.")
    def seed_demo(reset: bool) -> None:
        """Seed demo users, customers and properties."""
        if reset:
            db.drop_all()
            db.create_all()
        if not User.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: users already exist.")

    @app.cli.command("review-queue")
    @click.option(
        "--view",
        type=click.Choice([view.value for view in QueueView]),
        default=QueueView.ALL.value,
        show_default=True,
    )
    @click.option("--limit", type=int, default=None, help="Rows fetched per entity type.")
    def review_queue(view: str, limit: int | None) -> None:
        """Print the records waiting for an approver, oldest first."""
        threshold = app.config["REVIEW_OVERDUE_DAYS"]
        items = filter_review_queue(build_review_queue(limit=limit), view, threshold)
        if not items:
            click.echo("Review queue is empty.")
            return
        for item in items:
            click.echo(
                f"{item.reference_id}\t{item.category_label}\t{item.display_name or '-'}\t"
                f"{item.submitted_by_name or '-'}\t{item.days_pending}d\t{item.escalation}"
            )


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))
