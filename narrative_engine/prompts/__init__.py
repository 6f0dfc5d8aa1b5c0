"""Jinja2 prompt fragments."""

from .templates import DEFAULT_TEMPLATES, TemplateEngine, create_template_engine, get_template_engine

__all__ = [
    "DEFAULT_TEMPLATES",
    "TemplateEngine",
    "create_template_engine",
    "get_template_engine",
]
