"""
Resource definitions for every content type the site manages.

A :class:`Resource` describes one table: its editable columns, the defaults
applied on create/update, the flag that hides soft-deleted rows, the default
sort order and the query parameters that narrow a list. The repository and
the API views are written once against this description, so adding a content
type means adding one ``Resource(...)`` entry below.
"""
import re
from datetime import date, datetime, timezone

from .errors import ValidationError

TEXT = "text"
INTEGER = "integer"
NUMBER = "number"
BOOLEAN = "boolean"
LIST = "list"
DATE = "date"
TIMESTAMP = "timestamp"

_TRUE_STRINGS = {"true", "1", "on", "yes"}
_FALSE_STRINGS = {"false", "0", "off", "no", ""}


def utcnow():
    return datetime.now(timezone.utc)


class Column:
    """One editable column of a resource table.

    :param name: Column name, also the key used in JSON payloads.
    :type name: str
    :param kind: One of the kind constants in this module.
    :type kind: str
    :param default: Value (or zero-argument callable) used when the payload omits the field.
    :param required: Whether the payload must carry a non-empty value.
    :type required: bool
    """

    def __init__(self, name, kind=TEXT, default=None, required=False):
        self.name = name
        self.kind = kind
        self.default = default
        self.required = required

    def default_value(self):
        if callable(self.default):
            return self.default()
        if isinstance(self.default, list):
            return list(self.default)
        return self.default

    def coerce(self, value):
        """Convert a JSON or form value to the column's kind.

        :raises ValidationError: If the value cannot be converted.
        """
        try:
            if self.kind == INTEGER:
                return int(value)
            if self.kind == NUMBER:
                return float(value)
            if self.kind == BOOLEAN:
                return _to_bool(value)
            if self.kind == LIST:
                if isinstance(value, str):
                    return [part.strip() for part in value.split(",") if part.strip()]
                return [str(item) for item in value]
            if self.kind == DATE:
                if isinstance(value, date):
                    return value.isoformat()
                date.fromisoformat(value)
                return value
            if self.kind == TIMESTAMP:
                if isinstance(value, datetime):
                    return value
                if value.endswith(("Z", "z")):
                    value = value[:-1] + "+00:00"
                datetime.fromisoformat(value)
                return value
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid value for {self.name}") from exc
        return value if isinstance(value, str) else str(value)


def _to_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    lowered = str(value).strip().lower()
    if lowered in _TRUE_STRINGS:
        return True
    if lowered in _FALSE_STRINGS:
        return False
    raise ValueError(value)


def _is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


class Flag:
    """The column that gates visibility; soft delete writes ``hidden`` to it."""

    def __init__(self, column, visible=True, hidden=False):
        self.column = column
        self.visible = visible
        self.hidden = hidden


class OrderKey:
    def __init__(self, column, descending=False):
        self.column = column
        self.descending = descending


class Filter:
    """A list query parameter mapped onto a column.

    ``equals`` compares the column to the parameter, ``flag`` restricts to
    true rows when the parameter is ``"true"`` and ``contains`` matches a
    value inside an array column.
    """

    EQUALS = "equals"
    FLAG = "flag"
    CONTAINS = "contains"

    def __init__(self, param, column=None, kind=EQUALS):
        self.param = param
        self.column = column or param
        self.kind = kind

    def applies(self, value):
        if self.kind == self.FLAG:
            return value == "true"
        return bool(value)


class Resource:
    """Description of one content table and its CRUD contract."""

    def __init__(self, name, table, columns, flag=None, order=(), filters=(),
                 failure_message="Internal server error", label=None, derive=None):
        self.name = name
        self.table = table
        self.columns = {column.name: column for column in columns}
        self.flag = flag
        self.order = list(order)
        self.filters = list(filters)
        self.failure_message = failure_message
        self.label = label or name.replace("-", " ").title()
        self.derive = derive

    @property
    def required(self):
        return [c.name for c in self.columns.values() if c.required]

    def prepare(self, payload):
        """Validate a payload and return the full column mapping to write.

        Every editable column is present in the result: omitted or empty
        optional fields take their default, unknown keys are dropped. The
        same mapping serves create and full-replace update.

        :param payload: Decoded JSON object or form data.
        :type payload: dict
        :returns: Column name to value mapping.
        :rtype: dict
        :raises ValidationError: On missing required fields or bad values.
        """
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON body")

        missing = [name for name in self.required if _is_blank(payload.get(name))]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        values = {}
        for name, column in self.columns.items():
            raw = payload.get(name)
            if _is_blank(raw):
                values[name] = column.default_value()
            else:
                values[name] = column.coerce(raw)
        if self.derive:
            values.update(self.derive(values))
        return values

    def payload_from_form(self, form):
        """Build a payload from submitted HTML form fields.

        Unchecked checkboxes are absent from a form post, so boolean columns
        read as false unless present.
        """
        payload = {}
        for name, column in self.columns.items():
            if column.kind == BOOLEAN:
                payload[name] = name in form
            elif name in form:
                payload[name] = form.get(name)
        return payload

    def active_filters(self, args):
        """Return ``(filter, value)`` pairs for the parameters present in ``args``."""
        pairs = []
        for list_filter in self.filters:
            value = args.get(list_filter.param)
            if list_filter.applies(value):
                pairs.append((list_filter, value))
        return pairs


def parse_id(value):
    """Parse an ``id`` query parameter.

    :raises ValidationError: If the id is missing or not an integer.
    """
    if _is_blank(value):
        raise ValidationError("Missing id")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Invalid id") from exc


def parse_limit(value):
    """Return a positive integer limit, or ``None`` when absent or malformed."""
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return None
    return limit if limit > 0 else None


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _profile_site_metadata(values):
    return {
        "website_title": f"{values['name']} - {values['title']}",
        "website_description": values.get("bio") or "Professional portfolio",
    }


PROFILE = Resource(
    "profile", "profile_info",
    [
        Column("name", required=True),
        Column("title", required=True),
        Column("bio"),
        Column("email", required=True),
        Column("phone"),
        Column("location"),
        Column("github_url"),
        Column("linkedin_url"),
        Column("twitter_url"),
        Column("website_title"),
        Column("website_description"),
    ],
    flag=Flag("is_active"),
    order=[OrderKey("created_at", descending=True)],
    failure_message="Failed to fetch profile",
    derive=_profile_site_metadata,
)

PROJECTS = Resource(
    "projects", "projects",
    [
        Column("title", required=True),
        Column("description"),
        Column("image"),
        Column("technologies", LIST, default=[]),
        Column("github_url"),
        Column("demo_url"),
        Column("category"),
        Column("featured", BOOLEAN, default=False),
        Column("stars", INTEGER, default=0),
        Column("display_order", INTEGER, default=0),
    ],
    flag=Flag("is_published"),
    order=[
        OrderKey("featured", descending=True),
        OrderKey("display_order"),
        OrderKey("created_at", descending=True),
        OrderKey("id", descending=True),
    ],
    filters=[Filter("featured", kind=Filter.FLAG), Filter("category")],
    failure_message="Failed to fetch projects",
)

EXPERIENCE = Resource(
    "experience", "experience",
    [
        Column("company", required=True),
        Column("position", required=True),
        Column("description"),
        Column("technologies", LIST, default=[]),
        Column("start_date", DATE),
        Column("end_date", DATE),
        Column("is_current", BOOLEAN, default=False),
        Column("display_order", INTEGER, default=0),
    ],
    flag=Flag("is_active"),
    order=[OrderKey("display_order"), OrderKey("start_date", descending=True),
           OrderKey("id", descending=True)],
)

EDUCATION = Resource(
    "education", "education",
    [
        Column("institution", required=True),
        Column("degree", required=True),
        Column("field_of_study"),
        Column("description"),
        Column("start_date", DATE),
        Column("end_date", DATE),
        Column("gpa", NUMBER),
        Column("achievements", LIST, default=[]),
        Column("display_order", INTEGER, default=0),
    ],
    flag=Flag("is_active"),
    order=[OrderKey("display_order"), OrderKey("start_date", descending=True),
           OrderKey("id", descending=True)],
)

TECH_STACK = Resource(
    "tech-stack", "tech_stack",
    [
        Column("name", required=True),
        Column("icon"),
        Column("category", required=True),
        Column("description"),
        Column("proficiency", INTEGER, default=80),
        Column("display_order", INTEGER, default=0),
    ],
    flag=Flag("is_active"),
    order=[OrderKey("display_order"), OrderKey("name"), OrderKey("id")],
    filters=[Filter("category")],
    failure_message="Failed to fetch tech stack",
    label="Tech Stack",
)

SERVICES = Resource(
    "services", "services",
    [
        Column("name", required=True),
        Column("description"),
        Column("icon"),
        Column("price"),
        Column("features", LIST, default=[]),
        Column("display_order", INTEGER, default=0),
    ],
    flag=Flag("is_active"),
    order=[OrderKey("display_order"), OrderKey("name"), OrderKey("id")],
)

BLOG_POSTS = Resource(
    "blog-posts", "blog_posts",
    [
        Column("title", required=True),
        Column("slug", required=True),
        Column("excerpt"),
        Column("content"),
        Column("image"),
        Column("category"),
        Column("tags", LIST, default=[]),
        Column("status", default="published"),
        Column("published_at", TIMESTAMP, default=utcnow),
        Column("read_time", INTEGER, default=5),
    ],
    flag=Flag("status", visible="published", hidden="archived"),
    order=[OrderKey("published_at", descending=True), OrderKey("id", descending=True)],
    filters=[Filter("category"), Filter("tag", "tags", Filter.CONTAINS)],
    failure_message="Failed to fetch blog posts",
    label="Blog Posts",
)

TESTIMONIALS = Resource(
    "testimonials", "testimonials",
    [
        Column("name", required=True),
        Column("position"),
        Column("company"),
        Column("content", required=True),
        Column("avatar"),
        Column("rating", INTEGER, default=5),
        Column("is_featured", BOOLEAN, default=False),
        Column("display_order", INTEGER, default=0),
    ],
    flag=Flag("is_active"),
    order=[OrderKey("display_order"), OrderKey("created_at", descending=True),
           OrderKey("id", descending=True)],
    filters=[Filter("featured", "is_featured", Filter.FLAG)],
    failure_message="Failed to fetch testimonials",
)

CONTACT = Resource(
    "contact", "contact_submissions",
    [
        Column("name", required=True),
        Column("email", required=True),
        Column("subject", default="Portfolio Contact"),
        Column("message", required=True),
        Column("ip_address", default="unknown"),
        Column("user_agent", default="unknown"),
        Column("status", default="new"),
    ],
    order=[OrderKey("created_at", descending=True)],
    failure_message="Failed to submit your message. Please try again later.",
)

SITE_SETTINGS = Resource(
    "site-settings", "site_settings",
    [
        Column("key", required=True),
        Column("value"),
        Column("type", default="string"),
    ],
    order=[OrderKey("key")],
)

RESOURCES = {
    resource.name: resource
    for resource in (PROFILE, PROJECTS, EXPERIENCE, EDUCATION, TECH_STACK,
                     SERVICES, BLOG_POSTS, TESTIMONIALS, CONTACT, SITE_SETTINGS)
}

# Resources managed through the generic admin CRUD endpoints and pages.
ADMIN_RESOURCES = ("projects", "experience", "education", "tech-stack",
                   "services", "blog-posts", "testimonials")
