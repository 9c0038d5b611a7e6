"""
Layout Component

Main layout wrapper that combines navigation, an optional flash message and
the page content into a complete HTML document.
"""

from typing import Optional

from college_cms.identity_access.domain import Principal

from .base import Component
from .navigation import Navigation


class Layout(Component):
    """Main layout component that assembles the complete page"""

    def __init__(
        self,
        title: str,
        content: str,
        principal: Optional[Principal] = None,
        show_nav: bool = True,
        current_path: str = "/",
        flash: Optional[str] = None,
        flash_kind: str = "info",
    ):
        """
        Args:
            title: Page title (will be escaped)
            content: Main content HTML (pre-rendered components)
            principal: Current principal (optional)
            show_nav: Whether to show navigation (default: True)
            current_path: Current URL path for active navigation highlighting
            flash: Optional one-line notification (escaped)
            flash_kind: "info" | "error" | "success"
        """
        self.title = title
        self.content = content
        self.principal = principal
        self.show_nav = show_nav
        self.current_path = current_path
        self.flash = flash
        self.flash_kind = flash_kind

    def render(self) -> str:
        nav_html = Navigation(self.principal, self.current_path).render() if self.show_nav else ""
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    {self._render_head()}
</head>
<body>
    <a href="#main-content" class="skip-link">Skip to main content</a>

    {nav_html}

    <main id="main-content" class="main-content" role="main">
        {self._render_flash()}
        {self.content}
    </main>
</body>
</html>"""

    def _render_head(self) -> str:
        return f"""
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <meta name="description" content="College management: students, courses, attendance and notes">
    <title>{self.escape(self.title)} - College CMS</title>
    """

    def _render_flash(self) -> str:
        if not self.flash:
            return ""
        css = self.classes("flash", f"flash-{self.flash_kind}")
        role = "alert" if self.flash_kind == "error" else "status"
        return f'<div class="{css}" role="{role}">{self.escape(self.flash)}</div>'
