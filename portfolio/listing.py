"""
In-memory filter, search and sort pipeline for the projects and blog pages.

A page fetches its collection once and derives every view of it from a
:class:`FilterState`. The pipeline never mutates the collection, so clearing
the filters gives back exactly what was fetched, and running it twice with
the same state gives the same list. The state round-trips through the query
string so filtered views can be shared and bookmarked.
"""
from dataclasses import dataclass, replace

SEARCH = "search"
TAG = "tag"
SORT = "sort"


def _text(value):
    return str(value or "").lower()


def _by_recent(item):
    return (-(item.get("id") or 0),)


def _by_featured(item):
    return (not item.get("featured"),) + _by_recent(item)


def _by_stars(item):
    return (-(item.get("stars") or 0),) + _by_recent(item)


def _by_published(item):
    published = item.get("published_at")
    return (published is None, _Descending(published)) + _by_recent(item)


class _Descending:
    """Wrap a comparable value so that ascending sorts order it descending."""

    __slots__ = ("value",)

    def __init__(self, value):
        self.value = value

    def __eq__(self, other):
        return self.value == other.value

    def __lt__(self, other):
        if self.value is None or other.value is None:
            return False
        return self.value > other.value


@dataclass(frozen=True)
class FilterState:
    """Search text, selected tag and sort mode for one listing page."""

    search: str = ""
    tag: str = ""
    sort: str = ""

    @classmethod
    def from_args(cls, args, listing):
        sort = args.get(SORT, "")
        if sort not in listing.sorts:
            sort = listing.default_sort
        return cls(
            search=args.get(SEARCH, "").strip().lower(),
            tag=args.get(TAG, "").strip(),
            sort=sort,
        )

    def to_query(self, listing):
        """Return the query parameters that reproduce this state."""
        query = {}
        if self.search:
            query[SEARCH] = self.search
        if self.tag:
            query[TAG] = self.tag
        if self.sort and self.sort != listing.default_sort:
            query[SORT] = self.sort
        return query

    def without(self, kind):
        return replace(self, **{kind: ""})

    def active_filters(self, listing):
        """Return ``(kind, label)`` pairs for the filters shown as removable chips.

        A sort other than the listing's default gets a chip too, so every
        departure from the plain view can be undone one at a time.
        """
        filters = []
        if self.search:
            filters.append((SEARCH, f'Search: "{self.search}"'))
        if self.tag:
            filters.append((TAG, f"Tag: {self.tag}"))
        if self.sort and self.sort != listing.default_sort:
            filters.append((SORT, f"Sort: {listing.sort_label(self.sort)}"))
        return filters

    @property
    def is_filtered(self):
        return bool(self.search or self.tag)


class Listing:
    """How one collection is searched, tagged and sorted.

    :param title_field: Field matched by free-text search.
    :param summary_field: Second field matched by free-text search.
    :param tag_field: List field used by search and the tag filter.
    :param sorts: Sort mode name to key function.
    :param default_sort: Sort mode used when none (or an unknown one) is given.
    :param sort_labels: Sort mode name to the label shown in the sort menu.
    """

    def __init__(self, title_field, summary_field, tag_field, sorts, default_sort,
                 sort_labels=None):
        self.title_field = title_field
        self.summary_field = summary_field
        self.tag_field = tag_field
        self.sorts = sorts
        self.default_sort = default_sort
        self.sort_labels = sort_labels or {}

    def sort_label(self, sort):
        return self.sort_labels.get(sort, sort.title())

    def tags_of(self, item):
        return item.get(self.tag_field) or []

    def matches_search(self, item, search):
        return (search in _text(item.get(self.title_field))
                or search in _text(item.get(self.summary_field))
                or any(search in _text(tag) for tag in self.tags_of(item)))

    def apply(self, items, state):
        """Return the items selected by ``state``, in its sort order."""
        selected = list(items)
        if state.search:
            selected = [item for item in selected if self.matches_search(item, state.search)]
        if state.tag:
            selected = [item for item in selected if state.tag in self.tags_of(item)]
        key = self.sorts.get(state.sort) or self.sorts[self.default_sort]
        return sorted(selected, key=key)

    def available_tags(self, items):
        return sorted({tag for item in items for tag in self.tags_of(item)})


PROJECT_LISTING = Listing(
    "title", "description", "technologies",
    sorts={"recent": _by_recent, "featured": _by_featured, "stars": _by_stars},
    default_sort="recent",
    sort_labels={"recent": "Most Recent", "featured": "Featured First",
                 "stars": "Most Popular"},
)

BLOG_LISTING = Listing(
    "title", "excerpt", "tags",
    sorts={"recent": _by_published},
    default_sort="recent",
    sort_labels={"recent": "Most Recent"},
)
