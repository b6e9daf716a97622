"""Template loading and rendering for the static site."""

from spasnap.templates.loader import (
    TemplateLoader,
    get_template_loader,
    render_template,
)

__all__ = [
    "TemplateLoader",
    "get_template_loader",
    "render_template",
]
