"""Rewrite template helpers.

Templates are string.Template strings with ${name} placeholders. Concrete
text that has to travel through a template (an original signature, a
composed prologue) is escaped first so its own `$` characters survive.
"""

from string import Template
from typing import Mapping, Optional

from .exceptions import GenerationError


def escape(text: str) -> str:
    return text.replace("$", "$$")


def render(template: str, values: Mapping[str, object], construct_index: Optional[int] = None) -> str:
    """Instantiate a rewrite template.

    Raises:
        GenerationError: If the template references a capture that has no
            value or is not a valid template.
    """
    try:
        return Template(template).substitute({k: str(v) for k, v in values.items()})
    except KeyError as e:
        raise GenerationError.missing_placeholder(construct_index, template, e.args[0]) from e
    except ValueError as e:
        raise GenerationError(
            f"Invalid rewrite template for construct #{construct_index}: {e}",
            construct_index=construct_index,
            template=template
        ) from e
