"""Read helpers for the template store: search and preview rendering."""

from notifications.template.renderer import RenderedContent, render_template
from notifications.template.template import NotificationTemplate
from notifications.utils.paging import fetch_all
from protean.utils.globals import current_domain

_TEMPLATE_BATCH = 1000


def list_templates(category=None, channel_type=None, language=None, active_only=False, search=None) -> list:
    """Templates matching every given filter, most used first."""
    filters = {
        key: value
        for key, value in {
            "category": category,
            "channel_type": channel_type,
            "language": language,
        }.items()
        if value
    }
    if active_only:
        filters["is_active"] = True

    repo = current_domain.repository_for(NotificationTemplate)
    query = repo._dao.query.filter(**filters) if filters else repo._dao.query
    templates = fetch_all(query, _TEMPLATE_BATCH)

    if search:
        needle = search.lower()
        templates = [
            t
            for t in templates
            if any(needle in (text or "").lower() for text in (t.name, t.description, t.subject, t.content))
        ]

    return sorted(templates, key=lambda t: (-(t.usage_count or 0), t.name))


def preview_template(template_id, variables=None) -> RenderedContent:
    """Render a stored template with sample variables. Does not count as usage."""
    template = current_domain.repository_for(NotificationTemplate).get(template_id)
    return render_template(template, variables or {})
