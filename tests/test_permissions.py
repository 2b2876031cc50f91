"""Tests for role ranks and route permissions."""

import pytest

from tailoredu.core.permissions import (
    NAVIGATION_ITEMS,
    ROLE_ORDER,
    UnknownRoleError,
    allowed_routes,
    default_route,
    has_role_at_least,
    is_route_allowed,
    navigation_for_role,
    role_rank,
)


class TestRoleRank:
    def test_total_order(self):
        ranks = [role_rank(role) for role in ROLE_ORDER]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == len(ROLE_ORDER)

    def test_student_lowest_developer_highest(self):
        assert role_rank("student") == 0
        assert role_rank("developer") == len(ROLE_ORDER) - 1

    def test_unknown_role(self):
        with pytest.raises(UnknownRoleError, match="Unknown role 'janitor'"):
            role_rank("janitor")


class TestHasRoleAtLeast:
    @pytest.mark.parametrize(
        "role,required,expected",
        [
            ("teacher", "teacher", True),
            ("admin", "teacher", True),
            ("parent", "teacher", False),
            ("developer", "super_admin", True),
            ("system_admin", "super_admin", False),
        ],
    )
    def test_comparisons(self, role, required, expected):
        assert has_role_at_least(role, required) is expected

    def test_missing_or_unknown_role_never_qualifies(self):
        assert has_role_at_least(None, "student") is False
        assert has_role_at_least("janitor", "student") is False

    def test_unknown_required_role_raises(self):
        with pytest.raises(UnknownRoleError):
            has_role_at_least("admin", "janitor")


class TestDefaultRoute:
    @pytest.mark.parametrize(
        "role,route",
        [
            ("student", "/dashboard/student"),
            ("parent", "/dashboard/parent"),
            ("teacher", "/teacher/dashboard"),
            ("admin", "/admin/dashboard"),
            ("system_admin", "/system-dashboard"),
            ("super_admin", "/super-admin"),
            ("developer", "/dev"),
        ],
    )
    def test_landing_routes(self, role, route):
        assert default_route(role) == route

    def test_no_role_goes_to_auth(self):
        assert default_route(None) == "/auth"
        assert default_route("janitor") == "/auth"


class TestRoutePermissions:
    def test_exact_route(self):
        assert is_route_allowed("/grades", "student")
        assert not is_route_allowed("/teacher/gradebook", "student")

    def test_prefix_wildcard(self):
        assert is_route_allowed("/lesson/42", "student")
        assert is_route_allowed("/class-lesson/7/intro", "teacher")
        assert not is_route_allowed("/class-lesson/7", "student")

    def test_prefix_stops_at_segment_boundary(self):
        assert is_route_allowed("/lesson", "student")
        assert not is_route_allowed("/lessons-admin", "student")
        assert not is_route_allowed("/class-lessonplan", "teacher")

    def test_developer_can_visit_anything(self):
        assert is_route_allowed("/anything/at/all", "developer")

    def test_admin_tiers_share_admin_routes(self):
        for role in ("admin", "system_admin", "super_admin"):
            assert is_route_allowed("/admin/course-editor", role)
        assert is_route_allowed("/system-dashboard", "system_admin")
        assert not is_route_allowed("/system-dashboard", "admin")

    def test_no_role_has_no_routes(self):
        assert allowed_routes(None) == []
        assert not is_route_allowed("/grades", None)

    def test_allowed_routes_is_a_copy(self):
        allowed_routes("parent").append("/admin/dashboard")
        assert not is_route_allowed("/admin/dashboard", "parent")


class TestNavigation:
    def test_parent_navigation(self):
        paths = [item.path for item in navigation_for_role("parent")]
        assert paths == ["/dashboard/parent", "/parent", "/preferences"]

    def test_developer_sees_full_catalogue(self):
        assert navigation_for_role("developer") == list(NAVIGATION_ITEMS)

    def test_no_role(self):
        assert navigation_for_role(None) == []
