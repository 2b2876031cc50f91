"""Role and route permission lookup.

Static tables only: a total order over role names, a default landing
route per role and per-role route allow-lists. Entries ending in "/*"
grant a prefix; "*" grants everything.
"""

from __future__ import annotations

from dataclasses import dataclass

# Lowest to highest
ROLE_ORDER = (
    "student",
    "parent",
    "teacher",
    "admin",
    "system_admin",
    "super_admin",
    "developer",
)

ROLE_RANKS: dict[str, int] = {role: rank for rank, role in enumerate(ROLE_ORDER)}

WILDCARD = "*"

UNAUTHENTICATED_ROUTE = "/auth"

DEFAULT_ROUTES: dict[str, str] = {
    "student": "/dashboard/student",
    "parent": "/dashboard/parent",
    "teacher": "/teacher/dashboard",
    "admin": "/admin/dashboard",
    "system_admin": "/system-dashboard",
    "super_admin": "/super-admin",
    "developer": "/dev",
}

_ADMIN_ROUTES = [
    "/admin/dashboard",
    "/admin/ai-course-builder",
    "/admin/course-editor",
    "/admin/build-class",
    "/admin/advanced",
    "/dashboard/admin/analytics",
    "/content",
    "/preferences",
    "/build-class",
]

ROUTES_BY_ROLE: dict[str, list[str]] = {
    "student": [
        "/dashboard/student",
        "/classes/my-classes",
        "/classes/join",
        "/assignments",
        "/grades",
        "/preferences",
        "/quiz/learning-genius",
        "/lesson/*",
        "/course/*",
        "/student/*",
    ],
    "parent": [
        "/dashboard/parent",
        "/parent",
        "/preferences",
    ],
    "teacher": [
        "/teacher/dashboard",
        "/teacher/classes",
        "/teacher/gradebook",
        "/teacher/assignment-gradebook",
        "/teacher/analytics",
        "/teacher/feedback",
        "/teacher/submissions",
        "/dashboard/teacher/analytics",
        "/content",
        "/preferences",
        "/build-class",
        "/lesson/*",
        "/class-lesson/*",
    ],
    "admin": list(_ADMIN_ROUTES),
    "system_admin": ["/system-dashboard"] + _ADMIN_ROUTES,
    "super_admin": ["/super-admin"] + _ADMIN_ROUTES,
    "developer": [WILDCARD],
}


@dataclass(frozen=True)
class NavigationItem:
    """An entry of the shared navigation catalogue."""

    path: str
    label: str
    description: str = ""


NAVIGATION_ITEMS: tuple[NavigationItem, ...] = (
    NavigationItem("/dashboard/student", "Dashboard", "Student dashboard"),
    NavigationItem("/classes/my-classes", "My Classes", "View enrolled classes"),
    NavigationItem("/assignments", "Assignments", "View assignments"),
    NavigationItem("/grades", "Grades", "View grades"),
    NavigationItem("/quiz/learning-genius", "Learning Quiz", "Take learning style quiz"),
    NavigationItem("/teacher/dashboard", "Teacher Dashboard", "Teacher home"),
    NavigationItem("/teacher/classes", "Classes", "Manage classes"),
    NavigationItem("/teacher/gradebook", "Gradebook", "Grade assignments"),
    NavigationItem("/teacher/analytics", "Analytics", "View analytics"),
    NavigationItem("/dashboard/teacher/analytics", "Teacher Analytics", "Detailed analytics"),
    NavigationItem("/teacher/feedback", "Feedback", "View feedback"),
    NavigationItem("/dashboard/parent", "Parent Dashboard", "Parent home"),
    NavigationItem("/parent", "Parent Portal", "Access parent portal"),
    NavigationItem("/admin/dashboard", "Admin Dashboard", "Admin home"),
    NavigationItem("/admin/ai-course-builder", "AI Course Builder", "Build courses with AI"),
    NavigationItem("/admin/course-editor", "Course Editor", "Edit courses"),
    NavigationItem("/dashboard/admin/analytics", "Admin Analytics", "System analytics"),
    NavigationItem("/admin/build-class", "Build Class", "Create classes"),
    NavigationItem("/admin/advanced", "Advanced", "Advanced settings"),
    NavigationItem("/system-dashboard", "System Dashboard", "Platform health"),
    NavigationItem("/super-admin", "Super Admin", "Super admin dashboard"),
    NavigationItem("/dev", "Developer", "Developer tools"),
    NavigationItem("/content", "Content Library", "Manage content"),
    NavigationItem("/preferences", "Preferences", "User preferences"),
)


class UnknownRoleError(KeyError):
    """Raised when a role name is not in the role table."""

    def __init__(self, role: str):
        self.role = role
        super().__init__(f"Unknown role '{role}'. Known roles: {', '.join(ROLE_ORDER)}")


def role_rank(role: str) -> int:
    """Rank of a role in the total order (student is 0).

    Raises:
        UnknownRoleError: If the role is not known
    """
    try:
        return ROLE_RANKS[role]
    except KeyError:
        raise UnknownRoleError(role) from None


def has_role_at_least(role: str | None, required: str) -> bool:
    """Whether `role` ranks at or above `required`.

    Unknown or missing roles never qualify.
    """
    if role not in ROLE_RANKS:
        return False
    return ROLE_RANKS[role] >= role_rank(required)


def default_route(role: str | None) -> str:
    """Landing route for a role; the auth page when there is none."""
    if role is None:
        return UNAUTHENTICATED_ROUTE
    return DEFAULT_ROUTES.get(role, UNAUTHENTICATED_ROUTE)


def allowed_routes(role: str | None) -> list[str]:
    """Static route allow-list for a role."""
    if role is None:
        return []
    return list(ROUTES_BY_ROLE.get(role, []))


def is_route_allowed(route: str, role: str | None) -> bool:
    """Check a route against the role's allow-list."""
    routes = allowed_routes(role)

    if WILDCARD in routes:
        return True
    if route in routes:
        return True

    for allowed in routes:
        if not allowed.endswith("/*"):
            continue
        # "/lesson/*" covers "/lesson" and "/lesson/..." but not "/lessons"
        prefix = allowed[:-2]
        if route == prefix or route.startswith(prefix + "/"):
            return True
    return False


def navigation_for_role(role: str | None) -> list[NavigationItem]:
    """Navigation catalogue entries the role may visit."""
    if role is None:
        return []
    return [item for item in NAVIGATION_ITEMS if is_route_allowed(item.path, role)]
