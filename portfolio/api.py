"""
JSON content API.

Every response uses the envelope ``{"success": bool, "data"?, "error"?}``.
Client errors keep their message and status; anything unexpected is logged
with its traceback and reported as a generic 500.
"""
from functools import wraps

from flask import Blueprint, current_app, jsonify, request
from flask.views import MethodView

from . import auth, content
from .db import get_repository
from .errors import ApiError, ValidationError
from .resources import (
    ADMIN_RESOURCES, BLOG_POSTS, PROFILE, PROJECTS, RESOURCES, TECH_STACK,
    TESTIMONIALS, parse_id,
)

api = Blueprint("api", __name__, url_prefix="/api")

GENERIC_FAILURE = "Internal server error"


def ok(data, status=200, **extra):
    body = {"success": True, "data": data}
    body.update(extra)
    return jsonify(body), status


def fail(error, status):
    return jsonify({"success": False, "error": error}), status


def json_body():
    """Return the request's JSON object body.

    :raises ValidationError: If the body is missing, malformed or not an object.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON body")
    return payload


def guarded(failure_message, func, *args, **kwargs):
    """Run a view body, converting raised errors into envelopes."""
    try:
        return func(*args, **kwargs)
    except ApiError as e:
        return fail(e.message, e.status_code)
    except Exception:  # pylint: disable=broad-exception-caught
        current_app.logger.exception("%s %s failed", request.method, request.path)
        return fail(failure_message, 500)


def api_view(failure_message=GENERIC_FAILURE):
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            return guarded(failure_message, view, *args, **kwargs)
        return wrapped
    return decorator


@api.after_app_request
def add_cors_headers(response):
    """Add CORS headers to every ``/api`` response, routing errors included."""
    if not request.path.startswith(api.url_prefix):
        return response
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
    return response


@api.app_errorhandler(404)
def not_found(e):
    if request.path.startswith(api.url_prefix):
        return fail("Not found", 404)
    return e


@api.app_errorhandler(405)
def method_not_allowed(e):
    if request.path.startswith(api.url_prefix):
        return fail("Method not allowed", 405)
    return e


class ResourceView(MethodView):
    """Admin CRUD endpoint for one resource; ``id`` travels as a query parameter."""

    init_every_request = False

    def __init__(self, resource):
        self.resource = resource

    def dispatch_request(self, **kwargs):
        return guarded(GENERIC_FAILURE, super().dispatch_request, **kwargs)

    @property
    def repository(self):
        return get_repository(self.resource)

    def get(self):
        if "id" in request.args:
            return ok(self.repository.get(parse_id(request.args["id"])))
        return ok(content.list_records(self.resource, request.args))

    @auth.admin_required
    def post(self):
        values = self.resource.prepare(json_body())
        return ok(self.repository.create(values), 201)

    @auth.admin_required
    def put(self):
        record_id = parse_id(request.args.get("id"))
        values = self.resource.prepare(json_body())
        return ok(self.repository.update(record_id, values))

    @auth.admin_required
    def delete(self):
        record_id = parse_id(request.args.get("id"))
        self.repository.soft_delete(record_id)
        return jsonify({"success": True,
                        "message": f"{self.resource.label} entry deleted successfully"}), 200


class ProfileView(MethodView):
    init_every_request = False

    def dispatch_request(self, **kwargs):
        return guarded(GENERIC_FAILURE, super().dispatch_request, **kwargs)

    def get(self):
        return ok(get_repository(PROFILE).latest())

    @auth.admin_required
    def post(self):
        return ok(content.upsert_profile(json_body()))

    put = post


for _name in ADMIN_RESOURCES:
    api.add_url_rule(
        f"/admin/{_name}",
        view_func=ResourceView.as_view(f"admin_{_name.replace('-', '_')}", RESOURCES[_name]),
    )
api.add_url_rule("/admin/profile", view_func=ProfileView.as_view("admin_profile"))


@api.route("/profile", methods=["GET"])
@api_view(PROFILE.failure_message)
def profile():
    return ok(content.public_profile())


@api.route("/projects", methods=["GET"])
@api_view(PROJECTS.failure_message)
def projects():
    rows = content.list_records(PROJECTS, request.args)
    return ok(rows, count=len(rows))


@api.route("/blog-posts", methods=["GET"])
@api_view(BLOG_POSTS.failure_message)
def blog_posts():
    slug = request.args.get("slug")
    if slug:
        return ok(content.get_blog_post(slug))
    rows = content.list_records(BLOG_POSTS, request.args)
    return ok(rows, count=len(rows))


@api.route("/testimonials", methods=["GET"])
@api_view(TESTIMONIALS.failure_message)
def testimonials():
    rows = content.list_records(TESTIMONIALS, request.args)
    return ok(rows, count=len(rows))


@api.route("/tech-stack", methods=["GET"])
@api_view(TECH_STACK.failure_message)
def tech_stack():
    rows = content.list_records(TECH_STACK, request.args)
    if request.args.get("category"):
        return ok(rows, count=len(rows))
    return ok(content.group_tech_stack(rows), count=len(rows))


@api.route("/experience-education", methods=["GET"])
@api_view("Failed to fetch experience and education data")
def experience_education():
    return ok(content.experience_education())


@api.route("/stats", methods=["GET"])
@api_view("Failed to fetch statistics")
def stats():
    return ok(content.collect_stats())


@api.route("/contact", methods=["POST"])
@api_view(RESOURCES["contact"].failure_message)
def contact():
    submission = content.submit_contact(json_body(), request.headers, request.remote_addr)
    return ok(submission, 201,
              message="Thank you for your message! I'll get back to you soon.")


@api.route("/auth", methods=["POST"])
@api_view()
def authenticate():
    return ok(auth.run_action(json_body()))
