"""
Navigation Component

Role-based sidebar. Entries come from the protected view definitions, so a
link is shown exactly when the guard would let the principal render the page.
Visibility alone grants nothing: every page still runs its own guard.
"""

from typing import List, Optional, Tuple

from college_cms.identity_access.domain import Principal, is_role_allowed
from college_cms.web.views import NAV_ITEMS

from .base import Component


class Navigation(Component):
    """Sidebar with role-filtered links, sign-out and bypass controls"""

    def __init__(self, principal: Optional[Principal] = None, current_path: str = "/"):
        """
        Args:
            principal: Resolved principal (None or unauthenticated: public menu)
            current_path: The current URL path for active link highlighting
        """
        self.principal = principal
        self.current_path = current_path

    def render(self) -> str:
        if self.principal is None or not self.principal.is_authenticated:
            return self._render_public_nav()

        items = self._get_nav_items()
        active_href = self._determine_active_href(items)
        links = [self._create_nav_link(href, text, is_active=(href == active_href)) for href, text in items]

        role_label = self._role_label(self.principal.role.value)
        who = self.principal.email or ("Local admin" if self.principal.is_bypass else "")
        return f"""
    <aside class="sidebar" id="sidebar" aria-label="Sidebar">
        <nav class="sidebar-nav" role="navigation" aria-label="Main navigation">
            <div class="sidebar-header">
                <span class="sidebar-title">College CMS</span>
            </div>

            <div class="sidebar-items">
                {''.join(links)}
                {self._render_signout()}
            </div>

            <div class="sidebar-footer">
                <div class="user-info-compact">
                    <div class="user-name">{self.escape(who)}</div>
                    <div class="user-role">{self.escape(role_label)}</div>
                </div>
                {self._render_bypass_notice()}
            </div>
        </nav>
    </aside>"""

    def _render_public_nav(self) -> str:
        """Navigation for non-authenticated visitors"""
        return f"""
    <aside class="sidebar" id="sidebar" aria-label="Sidebar">
        <nav class="sidebar-nav" role="navigation" aria-label="Main navigation">
            <div class="sidebar-header">
                <span class="sidebar-title">College CMS</span>
            </div>

            <div class="sidebar-items">
                {self._create_nav_link("/", "Home")}
                {self._create_nav_link("/auth", "Sign in")}
            </div>
        </nav>
    </aside>"""

    def _get_nav_items(self) -> List[Tuple[str, str]]:
        """Return (href, label) for every view the principal's role may open.

        An unknown role only sees views without an allow-list.
        """
        role = self.principal.role if self.principal else None
        return [
            (view.path, label)
            for view, label in NAV_ITEMS
            if role is not None and is_role_allowed(role, view.allowed_roles)
        ]

    def _determine_active_href(self, items: List[Tuple[str, str]]) -> str:
        """Pick the single active href using best prefix match."""
        path = self.current_path or "/"
        best = ""
        for href, _text in items:
            if href == path:
                return href
            if path.startswith(href + "/") and len(href) > len(best):
                best = href
        return best

    def _create_nav_link(self, href: str, text: str, is_active: bool = False) -> str:
        active_class = " active" if is_active else ""
        aria_attr = ' aria-current="page"' if is_active else ""
        return f"""
        <a href="{self.escape(href)}" class="sidebar-link{active_class}"{aria_attr}>
            <span class="nav-text">{self.escape(text)}</span>
        </a>"""

    def _render_signout(self) -> str:
        """Sign-out is a POST so a cross-site link cannot end the session."""
        return """
        <form method="post" action="/auth/signout" class="sidebar-signout">
            <button type="submit" class="sidebar-link sidebar-logout">Sign out</button>
        </form>"""

    def _render_bypass_notice(self) -> str:
        if self.principal is None or not self.principal.is_bypass:
            return ""
        return """
                <div class="bypass-notice" role="note">
                    <span>Local admin bypass active</span>
                    <form method="post" action="/auth/bypass/clear">
                        <button type="submit" class="btn btn-link">Clear bypass</button>
                    </form>
                </div>"""

    @staticmethod
    def _role_label(role: Optional[str]) -> str:
        mapping = {
            "teacher": "Teacher",
            "student": "Student",
            "admin": "Administrator",
        }
        return mapping.get((role or "").lower(), "User")
