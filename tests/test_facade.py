"""Tests for the per-user permission facade."""

from __future__ import annotations

import pytest

from kidtrack.auth.facade import PermissionFacade, PermissionLevel
from kidtrack.auth.roles import Capabilities, RelationshipType, Role
from kidtrack.models.child import Child, ChildWithRelation
from kidtrack.models.profile import Profile


def make_user(user_id: str, role: Role) -> Profile:
    return Profile(id=user_id, email=f"{user_id}@example.com", full_name=user_id, role=role)


def make_child(
    owner: str,
    rel: RelationshipType | None = None,
    caps: Capabilities | None = None,
) -> ChildWithRelation:
    return ChildWithRelation.annotate(
        Child(name="Sam", created_by=owner),
        relationship_type=rel,
        capabilities=caps or Capabilities.none(),
    )


class TestNoUser:
    def test_every_predicate_is_false(self) -> None:
        facade = PermissionFacade(None)
        child = make_child("p1", RelationshipType.PARENT, Capabilities.full())

        assert facade.user is None
        assert facade.context_for(child) is None
        assert facade.can_create_child() is False
        assert facade.can_read_child(child) is False
        assert facade.can_edit_child(child) is False
        assert facade.can_delete_child(child) is False
        assert facade.can_share_child(child) is False
        assert facade.can_create_log(child) is False
        assert facade.can_read_logs(child) is False
        assert facade.can_edit_log("p1") is False
        assert facade.can_export_logs(child) is False
        assert facade.can_read_profile("p1") is False
        assert facade.can_update_profile("p1") is False
        assert facade.has_role("parent") is False
        assert facade.get_permission_level(child) is PermissionLevel.NONE


class TestOwner:
    @pytest.mark.parametrize("role", [Role.PARENT, Role.TEACHER])
    def test_owner_has_full_rights_without_flags(self, role: Role) -> None:
        facade = PermissionFacade(make_user("p1", role))
        child = make_child("p1")

        assert facade.can_read_child(child)
        assert facade.can_edit_child(child)
        assert facade.can_share_child(child)
        assert facade.can_create_log(child)
        assert facade.can_export_logs(child)
        assert facade.get_permission_level(child) is PermissionLevel.FULL

    def test_only_parent_owner_can_delete(self) -> None:
        child = make_child("p1")
        assert PermissionFacade(make_user("p1", Role.PARENT)).can_delete_child(child)
        assert not PermissionFacade(make_user("p1", Role.TEACHER)).can_delete_child(child)
        assert not PermissionFacade(make_user("p2", Role.PARENT)).can_delete_child(child)


class TestGrantee:
    def test_teacher_with_defaults(self) -> None:
        facade = PermissionFacade(make_user("t1", Role.TEACHER))
        child = make_child(
            "p1", RelationshipType.TEACHER, Capabilities(can_edit=True, can_view=True)
        )

        assert facade.can_read_child(child)
        assert facade.can_edit_child(child)
        assert facade.can_create_log(child)
        assert not facade.can_export_logs(child)
        assert not facade.can_share_child(child)
        assert not facade.can_delete_child(child)

    def test_co_parent_may_share(self) -> None:
        facade = PermissionFacade(make_user("p2", Role.PARENT))
        child = make_child("p1", RelationshipType.PARENT, Capabilities.full())
        assert facade.can_share_child(child)

    def test_unrelated_user_sees_nothing(self) -> None:
        facade = PermissionFacade(make_user("x", Role.PARENT))
        child = make_child("p1")
        assert not facade.can_read_child(child)
        assert facade.get_permission_level(child) is PermissionLevel.NONE

    def test_log_edit_follows_authorship(self) -> None:
        facade = PermissionFacade(make_user("s1", Role.SPECIALIST))
        assert facade.can_edit_log("s1")
        assert not facade.can_edit_log("p1")

    def test_profile_is_self_only(self) -> None:
        facade = PermissionFacade(make_user("o1", Role.OBSERVER))
        assert facade.can_read_profile("o1")
        assert facade.can_update_profile("o1")
        assert not facade.can_read_profile("p1")


class TestPermissionLevel:
    @pytest.mark.parametrize(
        ("caps", "expected"),
        [
            (Capabilities.full(), PermissionLevel.EDIT),
            (Capabilities(can_edit=True), PermissionLevel.EDIT),
            (Capabilities(can_view=True, can_export=True), PermissionLevel.VIEW),
            (Capabilities(can_export=True), PermissionLevel.NONE),
            (Capabilities.none(), PermissionLevel.NONE),
        ],
    )
    def test_non_owner_precedence(self, caps: Capabilities, expected: PermissionLevel) -> None:
        facade = PermissionFacade(make_user("t1", Role.TEACHER))
        child = make_child("p1", RelationshipType.TEACHER, caps)
        assert facade.get_permission_level(child) is expected

    def test_owner_beats_flags(self) -> None:
        facade = PermissionFacade(make_user("p1", Role.PARENT))
        assert facade.get_permission_level(make_child("p1")) is PermissionLevel.FULL

    def test_has_role(self) -> None:
        facade = PermissionFacade(make_user("a1", Role.ADMIN))
        assert facade.has_role("admin")
        assert facade.has_role(Role.ADMIN)
        assert not facade.has_role("parent")
