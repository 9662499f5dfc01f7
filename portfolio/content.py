"""
Read and write operations shared by the JSON API and the rendered pages.

These functions talk to repositories only; turning their results (or the
errors they raise) into HTTP responses is left to the callers.
"""
import json

from flask import current_app

from .db import get_repository
from .errors import NotFoundError, ValidationError
from .resources import (
    BLOG_POSTS, CONTACT, EDUCATION, EMAIL_PATTERN, EXPERIENCE, PROFILE,
    PROJECTS, SERVICES, SITE_SETTINGS, TECH_STACK, parse_limit,
)

TECH_CATEGORIES = ("frontend", "backend", "database", "tools")


def list_records(resource, args):
    """List visible records of ``resource`` narrowed by request arguments.

    :param resource: Resource to list.
    :type resource: portfolio.resources.Resource
    :param args: Query parameters (``limit`` plus the resource's filters).
    :type args: Mapping
    :rtype: list[dict]
    """
    repository = get_repository(resource)
    return repository.list(resource.active_filters(args), parse_limit(args.get("limit")))


def parse_settings(rows):
    """Turn ``site_settings`` rows into a dict, converting values by their ``type``."""
    settings = {}
    for row in rows:
        value = row.get("value")
        kind = row.get("type")
        if kind == "boolean":
            value = value == "true"
        elif kind == "number":
            try:
                value = int(value)
            except (TypeError, ValueError):
                value = None
        elif kind == "json":
            try:
                value = json.loads(value)
            except (TypeError, ValueError):
                pass
        settings[row["key"]] = value
    return settings


def public_profile():
    return {
        "profile": get_repository(PROFILE).latest(),
        "settings": parse_settings(get_repository(SITE_SETTINGS).list()),
    }


def upsert_profile(payload):
    """Update the current profile in place, or create it when none exists."""
    values = PROFILE.prepare(payload)
    repository = get_repository(PROFILE)
    existing = repository.latest()
    if existing is not None:
        return repository.update(existing["id"], values)
    return repository.create(values)


def get_blog_post(slug):
    post = get_repository(BLOG_POSTS).get_by("slug", slug)
    if post is None:
        raise NotFoundError("Blog post not found")
    return post


def group_tech_stack(rows):
    """Group tech stack rows under the fixed category keys."""
    grouped = {category: [] for category in TECH_CATEGORIES}
    for row in rows:
        if row.get("category") in grouped:
            grouped[row["category"]].append(row)
    return grouped


def experience_education():
    return {
        "experience": get_repository(EXPERIENCE).list(),
        "education": get_repository(EDUCATION).list(),
        "services": get_repository(SERVICES).list(),
    }


def collect_stats():
    config = current_app.config
    return {
        "projects": get_repository(PROJECTS).count(),
        "technologies": get_repository(TECH_STACK).count(),
        "blog_posts": get_repository(BLOG_POSTS).count(),
        "commits": config["STATS_COMMITS"],
        "hours_coding": config["STATS_HOURS_CODING"],
    }


def client_ip(headers, remote_addr):
    forwarded = headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("X-Real-IP") or remote_addr or "unknown"


def submit_contact(payload, headers, remote_addr):
    """Validate and store a contact form submission.

    :param payload: Submitted ``name``, ``email``, ``subject`` and ``message``.
    :type payload: dict
    :param headers: Request headers, used for the client IP and user agent.
    :param remote_addr: Socket peer address of the request.
    :type remote_addr: str or None
    :returns: The stored submission's ``id`` and ``created_at``.
    :rtype: dict
    :raises ValidationError: On missing fields or a malformed email address.
    """
    name = str(payload.get("name") or "").strip()
    email = str(payload.get("email") or "").strip()
    message = str(payload.get("message") or "").strip()
    if not name or not email or not message:
        raise ValidationError(
            "Missing required fields: name, email, and message are required")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format")

    values = CONTACT.prepare({
        "name": name,
        "email": email.lower(),
        "subject": str(payload.get("subject") or "").strip(),
        "message": message,
        "ip_address": client_ip(headers, remote_addr),
        "user_agent": headers.get("User-Agent"),
    })
    row = get_repository(CONTACT).create(values)
    current_app.logger.info("New contact submission from %s (%s): %s",
                            name, values["email"], values["subject"])
    return {"id": row["id"], "created_at": row.get("created_at")}


