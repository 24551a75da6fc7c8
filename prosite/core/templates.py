"""Jinja2 environment for HTML documents (invoice PDF, payment email)."""
import os
from datetime import datetime
from functools import lru_cache

from jinja2 import Environment, FileSystemLoader, select_autoescape

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "templates")


@lru_cache(maxsize=1)
def get_template_env() -> Environment:
    return Environment(
        loader=FileSystemLoader(TEMPLATES_DIR),
        autoescape=select_autoescape(["html"]),
    )


def long_date(value: datetime) -> str:
    """e.g. "19 October 2026"."""
    return f"{value.day} {value.strftime('%B %Y')}"
