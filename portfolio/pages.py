"""
Server-rendered pages: the public site and the admin panel.

Public pages read through the same content functions as the JSON API. A
section that fails to load falls back to a default value (and an error
toast) instead of failing the page. The admin panel writes through the
resource repositories and reports each outcome with a toast.
"""
from dataclasses import dataclass, field
from functools import wraps

from flask import (
    Blueprint, abort, current_app, redirect, render_template, request,
    session, url_for,
)

from . import auth, content
from .db import get_repository
from .errors import ApiError, AuthError
from .listing import BLOG_LISTING, PROJECT_LISTING, FilterState
from .resources import (
    ADMIN_RESOURCES, BLOG_POSTS, DATE, LIST, PROFILE, PROJECTS, RESOURCES,
    TECH_STACK, TESTIMONIALS, TIMESTAMP,
)
from .toasts import pending_toasts, toast

pages = Blueprint("pages", __name__)

THEMES = ("dark", "light")
DEFAULT_THEME = "dark"
THEME_COOKIE = "theme"
THEME_COOKIE_MAX_AGE = 365 * 24 * 60 * 60

TODOS_SESSION_KEY = "todos"

STATS_FALLBACK = {"projects": 1, "commits": 150, "hours_coding": 500, "technologies": 8}


@dataclass(frozen=True)
class PageState:
    """Everything a template needs to know about the visitor's view of a page.

    Only ``theme`` outlives the request (in a cookie); filters travel in the
    query string and the carousel position in ``?t=``.
    """

    theme: str = DEFAULT_THEME
    filters: FilterState = field(default_factory=FilterState)
    carousel: int = 0


def current_theme():
    theme = request.cookies.get(THEME_COOKIE)
    return theme if theme in THEMES else DEFAULT_THEME


def carousel_position(value, count):
    """Normalise a carousel index so stepping past either end wraps around."""
    if count == 0:
        return 0
    try:
        return int(value) % count
    except (TypeError, ValueError):
        return 0


def render_page(template, state=None, **context):
    return render_template(
        template,
        state=state or PageState(theme=current_theme()),
        toasts=pending_toasts(),
        toast_duration=current_app.config["TOAST_DURATION_MS"],
        **context,
    )


def _load(label, loader, fallback, notify=True):
    try:
        return loader()
    except Exception:  # pylint: disable=broad-exception-caught
        current_app.logger.exception("Failed to load %s", label)
        if notify:
            toast(f"Failed to load {label}", "error")
        return fallback


@pages.app_template_filter("form_value")
def form_value(value, column):
    """Render a stored value the way the admin form inputs expect it."""
    if value is None:
        return ""
    if column.kind == LIST:
        return ", ".join(value)
    if column.kind == DATE and hasattr(value, "isoformat"):
        return value.isoformat()[:10]
    if column.kind == TIMESTAMP and hasattr(value, "isoformat"):
        return value.isoformat()[:16]
    return value


@pages.route("/")
def home():
    empty_tech = content.group_tech_stack([])
    testimonials = _load("testimonials",
                         lambda: content.list_records(TESTIMONIALS, {}), [])
    state = PageState(
        theme=current_theme(),
        carousel=carousel_position(request.args.get("t"), len(testimonials)),
    )
    return render_page(
        "home.html",
        state=state,
        profile=_load("profile", content.public_profile,
                      {"profile": None, "settings": {}}),
        stats=_load("stats", content.collect_stats, dict(STATS_FALLBACK), notify=False),
        featured_projects=_load(
            "projects",
            lambda: content.list_records(PROJECTS, {"featured": "true", "limit": "3"}), []),
        tech_stack=_load(
            "tech stack",
            lambda: content.group_tech_stack(content.list_records(TECH_STACK, {})),
            empty_tech),
        testimonials=testimonials,
        background=_load("experience", content.experience_education,
                         {"experience": [], "education": [], "services": []}),
        blog_posts=_load("blog posts",
                         lambda: content.list_records(BLOG_POSTS, {"limit": "3"}), []),
    )


@pages.route("/contact", methods=["POST"])
def contact():
    try:
        content.submit_contact(request.form, request.headers, request.remote_addr)
        toast("Message sent successfully! I'll get back to you soon.", "success")
    except ApiError as e:
        toast(e.message, "error")
    except Exception:  # pylint: disable=broad-exception-caught
        current_app.logger.exception("Contact form submission failed")
        toast("Failed to send message. Please try again or contact me directly.", "error")
    return redirect(url_for("pages.home", _anchor="contact"))


@pages.route("/theme", methods=["GET", "POST"])
def toggle_theme():
    theme = "light" if current_theme() == "dark" else "dark"
    response = redirect(request.referrer or url_for("pages.home"))
    response.set_cookie(THEME_COOKIE, theme, max_age=THEME_COOKIE_MAX_AGE, samesite="Lax")
    return response


def _listing_page(template, resource, listing, endpoint):
    items = _load(resource.label.lower(), lambda: content.list_records(resource, {}), [])
    filters = FilterState.from_args(request.args, listing)
    state = PageState(theme=current_theme(), filters=filters)
    shown = listing.apply(items, filters)
    chips = [
        (label, url_for(endpoint, **filters.without(kind).to_query(listing)))
        for kind, label in filters.active_filters(listing)
    ]
    return render_page(
        template,
        state=state,
        items=shown,
        total=len(items),
        tags=listing.available_tags(items),
        sorts=[(sort, listing.sort_label(sort)) for sort in listing.sorts],
        chips=chips,
        clear_url=url_for(endpoint),
    )


@pages.route("/projects")
def projects():
    return _listing_page("projects.html", PROJECTS, PROJECT_LISTING, "pages.projects")


@pages.route("/blog")
def blog():
    return _listing_page("blog.html", BLOG_POSTS, BLOG_LISTING, "pages.blog")


@pages.route("/blog/<slug>")
def blog_post(slug):
    try:
        post = content.get_blog_post(slug)
    except ApiError:
        abort(404)
    return render_page("blog_post.html", post=post)


# --- Playground ---

def _todos():
    """Return a copy of the visitor's todo list held in the session."""
    return [dict(todo) for todo in session.get(TODOS_SESSION_KEY, [])]


def _save_todos(todos):
    session[TODOS_SESSION_KEY] = todos


def _find_todo(todos, todo_id):
    for todo in todos:
        if todo["id"] == todo_id:
            return todo
    abort(404)


def _plural(count, word):
    return f"{count} {word}{'' if count == 1 else 's'}"


@pages.route("/playground")
def playground():
    todos = _todos()
    remaining = sum(1 for todo in todos if not todo["completed"])
    return render_page("playground.html", todos=todos,
                       remaining=f"{_plural(remaining, 'task')} remaining")


@pages.route("/playground/todos", methods=["POST"])
def add_todo():
    text = request.form.get("text", "").strip()
    if not text:
        toast("Please enter a task", "warning")
        return redirect(url_for("pages.playground"))
    todos = _todos()
    todos.append({
        "id": max((todo["id"] for todo in todos), default=0) + 1,
        "text": text,
        "completed": False,
    })
    _save_todos(todos)
    toast("Task added successfully!", "success")
    return redirect(url_for("pages.playground"))


@pages.route("/playground/todos/<int:todo_id>/toggle", methods=["POST"])
def toggle_todo(todo_id):
    todos = _todos()
    todo = _find_todo(todos, todo_id)
    todo["completed"] = not todo["completed"]
    _save_todos(todos)
    if todo["completed"]:
        toast("Task completed! 🎉", "success")
    else:
        toast("Task marked as incomplete", "info")
    return redirect(url_for("pages.playground"))


@pages.route("/playground/todos/<int:todo_id>/delete", methods=["POST"])
def remove_todo(todo_id):
    todos = _todos()
    todo = _find_todo(todos, todo_id)
    todos.remove(todo)
    _save_todos(todos)
    toast("Task removed", "info")
    return redirect(url_for("pages.playground"))


@pages.route("/playground/todos/clear-completed", methods=["POST"])
def clear_completed_todos():
    todos = _todos()
    remaining = [todo for todo in todos if not todo["completed"]]
    cleared = len(todos) - len(remaining)
    if cleared == 0:
        toast("No completed tasks to clear", "info")
    else:
        _save_todos(remaining)
        toast(f"Cleared {_plural(cleared, 'completed task')}", "success")
    return redirect(url_for("pages.playground"))


# --- Admin panel ---

def admin_identity():
    """Return the identity behind the session's token, or ``None``."""
    if not current_app.config["ADMIN_AUTH_REQUIRED"]:
        return {"username": current_app.config["ADMIN_USERNAME"], "role": auth.ADMIN_ROLE}
    try:
        return auth.verify_token(session.get("admin_token"), current_app.config["JWT_SECRET"])
    except AuthError:
        session.pop("admin_token", None)
        return None


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if admin_identity() is None:
            toast("Please log in to continue.", "warning")
            return redirect(url_for("pages.admin_login"))
        return view(*args, **kwargs)
    return wrapped


def admin_resource(name):
    if name not in ADMIN_RESOURCES:
        abort(404)
    return RESOURCES[name]


def _write(action, success_message):
    """Run an admin write and toast its outcome; returns whether it succeeded."""
    try:
        action()
    except ApiError as e:
        toast(e.message, "error")
        return False
    except Exception:  # pylint: disable=broad-exception-caught
        current_app.logger.exception("Admin write failed")
        toast("Something went wrong. Please try again.", "error")
        return False
    toast(success_message, "success")
    return True


@pages.route("/admin/login", methods=["GET", "POST"])
def admin_login():
    if request.method == "POST":
        try:
            result = auth.login(request.form)
        except AuthError as e:
            toast(e.message, "error")
            return render_page("admin/login.html"), 401
        session["admin_token"] = result["token"]
        toast(f"Welcome back, {result['user']['username']}!", "success")
        return redirect(url_for("pages.admin_dashboard"))
    return render_page("admin/login.html")


@pages.route("/admin/logout", methods=["POST"])
def admin_logout():
    session.pop("admin_token", None)
    toast("You have been logged out.", "info")
    return redirect(url_for("pages.admin_login"))


@pages.route("/admin")
@login_required
def admin_dashboard():
    counts = {
        name: _load(RESOURCES[name].label,
                    lambda resource=RESOURCES[name]: get_repository(resource).count(), None)
        for name in ADMIN_RESOURCES
    }
    return render_page("admin/dashboard.html", counts=counts, resources=RESOURCES)


@pages.route("/admin/profile", methods=["GET", "POST"])
@login_required
def admin_profile():
    if request.method == "POST":
        _write(lambda: content.upsert_profile(PROFILE.payload_from_form(request.form)),
               "Profile saved.")
        return redirect(url_for("pages.admin_profile"))
    record = _load("profile", lambda: get_repository(PROFILE).latest(), None)
    return render_page("admin/edit.html", resource=PROFILE, record=record,
                       action=url_for("pages.admin_profile"))


def _save_form(resource, record_id=None):
    values = resource.prepare(resource.payload_from_form(request.form))
    repository = get_repository(resource)
    if record_id is None:
        return repository.create(values)
    return repository.update(record_id, values)


@pages.route("/admin/<name>", methods=["GET", "POST"])
@login_required
def admin_records(name):
    resource = admin_resource(name)
    if request.method == "POST":
        _write(lambda: _save_form(resource), f"{resource.label} entry created.")
        return redirect(url_for("pages.admin_records", name=name))
    records = _load(resource.label, lambda: get_repository(resource).list(), [])
    return render_page("admin/records.html", resource=resource, records=records,
                       columns=list(resource.columns)[:3])


@pages.route("/admin/<name>/<int:record_id>", methods=["GET", "POST"])
@login_required
def admin_edit(name, record_id):
    resource = admin_resource(name)
    if request.method == "POST":
        if _write(lambda: _save_form(resource, record_id), f"{resource.label} entry updated."):
            return redirect(url_for("pages.admin_records", name=name))
        return redirect(url_for("pages.admin_edit", name=name, record_id=record_id))
    record = _load(resource.label, lambda: get_repository(resource).get(record_id), None)
    if record is None:
        abort(404)
    return render_page("admin/edit.html", resource=resource, record=record,
                       action=url_for("pages.admin_edit", name=name, record_id=record_id))


@pages.route("/admin/<name>/<int:record_id>/delete", methods=["POST"])
@login_required
def admin_delete(name, record_id):
    resource = admin_resource(name)
    _write(lambda: get_repository(resource).soft_delete(record_id),
           f"{resource.label} entry deleted.")
    return redirect(url_for("pages.admin_records", name=name))
