"""Template loader for the Jinja2 templates of the static site."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape


def get_template_dirs() -> list[Path]:
    """Get the list of template directories.

    Returns:
        List of paths to template directories
    """
    return [Path(__file__).parent / "site"]


class TemplateLoader:
    """Loads and renders Jinja2 templates for exported pages.

    Templates are stored in src/spasnap/templates/site/. HTML and XML
    templates are autoescaped; captured markup is passed through ``|safe``.
    """

    def __init__(self, template_dirs: list[Path] | None = None) -> None:
        """Initialize the template loader.

        Args:
            template_dirs: Optional list of directories to search for templates.
                          Defaults to the bundled site templates.
        """
        if template_dirs is None:
            template_dirs = get_template_dirs()

        self._env = Environment(
            loader=FileSystemLoader([str(d) for d in template_dirs]),
            autoescape=select_autoescape(enabled_extensions=("html.j2", "xml.j2")),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def render(self, template_name: str, **context: Any) -> str:
        """Render a template with the given context.

        Args:
            template_name: Name of the template file (e.g., "page.html.j2")
            **context: Variables to pass to the template

        Returns:
            Rendered template content

        Raises:
            jinja2.TemplateNotFound: If template doesn't exist
        """
        template = self._env.get_template(template_name)
        return template.render(**context)

    def get_source(self, template_name: str) -> str:
        """Get the raw source of a template, e.g. a stylesheet shipped as a template."""
        loader = self._env.loader
        if loader is None:
            raise TemplateNotFound(template_name)
        source, _, _ = loader.get_source(self._env, template_name)
        return source

    def list_templates(self) -> list[str]:
        """List all available templates.

        Returns:
            List of template names
        """
        return self._env.list_templates(extensions=["j2", "css"])


@lru_cache(maxsize=1)
def get_template_loader() -> TemplateLoader:
    """Get the global template loader instance.

    Returns:
        Singleton TemplateLoader instance
    """
    return TemplateLoader()


def render_template(template_name: str, **context: Any) -> str:
    """Convenience function to render a template.

    Args:
        template_name: Name of the template file
        **context: Variables to pass to the template

    Returns:
        Rendered template content
    """
    return get_template_loader().render(template_name, **context)
