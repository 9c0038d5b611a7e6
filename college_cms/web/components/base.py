"""
Component base for the server-rendered CMS pages.

Pages are composed of small objects whose `render()` returns an HTML string.
Anything that came from a user or the backend goes through `escape`.
"""

from typing import Any, Iterable, Optional, Tuple
import html


def _attr_name(key: str) -> str:
    # Trailing underscore dodges Python keywords (class_, for_); other
    # underscores become dashes (data_role -> data-role).
    return key[:-1] if key.endswith("_") else key.replace("_", "-")


def _render_attr(item: Tuple[str, Any]) -> Optional[str]:
    key, value = item
    if value is None or value is False:
        return None
    name = _attr_name(key)
    return name if value is True else f'{name}="{html.escape(str(value))}"'


class Component:
    """Something that knows how to turn itself into markup."""

    def render(self) -> str:
        raise NotImplementedError(f"{type(self).__name__} does not implement render()")

    @staticmethod
    def escape(text: Optional[Any]) -> str:
        if text is None:
            return ""
        return html.escape(str(text))

    @staticmethod
    def classes(*names: str, **toggles: bool) -> str:
        """Join fixed class names with the toggles that are switched on.

        `classes("btn", active=True, disabled=False)` gives `"btn active"`.
        """
        enabled: Iterable[str] = (name for name, on in toggles.items() if on)
        return " ".join([*names, *enabled])

    @staticmethod
    def attributes(**attrs: Any) -> str:
        """Render keyword arguments as an attribute list.

        True becomes a bare boolean attribute, False and None are left out.
        """
        rendered = (_render_attr(item) for item in attrs.items())
        return " ".join(part for part in rendered if part)
