"""Template rendering for files pushed to the machines.

Templates are plain Jinja2 strings or files under ``helixctl/services/templates``.
Undefined variables are errors, so a missing option never produces a silently
broken unit file or manifest. Two filters are available besides the builtins:

- ``quote``: render a value as a double-quoted string literal
- ``escape``: the same without the surrounding quotes
"""

import json
import logging
import os
from typing import Any, Dict

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
)

from helixctl.errors import TemplateRenderError

logger = logging.getLogger("helixctl.template")


def quote(value: Any) -> str:
    return json.dumps(str(value))


def escape(value: Any) -> str:
    return quote(value)[1:-1]


def get_template_path() -> str:
    """Get the absolute path to the bundled templates directory."""
    return os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'services', 'templates')


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(get_template_path()),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )
    env.filters['quote'] = quote
    env.filters['escape'] = escape
    return env


_env = _environment()


def render_string(template_body: str, options: Dict[str, Any]) -> str:
    """Render an inline template body.

    Raises:
        TemplateRenderError: On syntax errors or undefined variables
    """
    try:
        template = _env.from_string(template_body)
        return template.render(**options)
    except TemplateSyntaxError as e:
        raise TemplateRenderError(f"Template syntax error at line {e.lineno}: {e.message}") from e
    except UndefinedError as e:
        raise TemplateRenderError(f"Missing template variable: {e}") from e


def load_template(name: str) -> str:
    """Return the source of a bundled template.

    Raises:
        TemplateRenderError: If the template does not exist
    """
    try:
        source, _, _ = _env.loader.get_source(_env, name)
    except TemplateNotFound as e:
        raise TemplateRenderError(f"Template not found: {name}") from e
    return source
