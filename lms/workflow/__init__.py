from flask import Blueprint

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")

from lms.workflow import routes  # noqa: E402,F401
