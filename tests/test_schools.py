"""Tests for schools and school membership administration."""

from __future__ import annotations

import asyncio

import pytest
from helpers import (
    SUPERADMIN_EMAIL,
    SUPERADMIN_PASSWORD,
    create_classroom,
    create_role,
    create_school,
    login,
    refresh,
    register_user,
)

from schoolcore import AuthContext, ErrorKind, SchoolCore, has_permission
from schoolcore.store import Collections, new_id


class TestCreateSchool:
    """Tests for SchoolManager.create_school."""

    @pytest.mark.asyncio
    async def test_creator_becomes_owner_scenario(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """The creator is granted the school's owner role with every permission."""
        result = await core.schools.create_school(superadmin, "  Springfield  ", address="1 Main St")
        assert result.ok
        school = result.value["school"]
        assert school["name"] == "Springfield"
        assert result.value["membership"]["role_name"] == "owner"

        owner_role = await core.store.find_one(Collections.ROLES, {"_id": result.value["membership"]["role_id"]})
        assert owner_role["permissions"] == ["*:*"]
        assert owner_role["is_system"] is True

        context = await login(core, SUPERADMIN_EMAIL, SUPERADMIN_PASSWORD)
        membership = context.membership_for(school["_id"])
        assert membership.role_name == "owner"
        assert membership.school_name == "Springfield"
        assert has_permission(context, school["_id"], "classroom:create")

    @pytest.mark.asyncio
    async def test_owner_of_one_school_cannot_touch_another(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """Owner rights are confined to the owned school."""
        other_school = await create_school(core, superadmin, "Other")
        user_id, token = await register_user(core, superadmin, "founder@example.com")
        # school:create granted through a role in another school
        creator_role = await create_role(core, superadmin, other_school, "founder", ["school:create"])
        await core.schools.add_member(superadmin, other_school, user_id, creator_role)

        founder = await refresh(core, token)
        created = await core.schools.create_school(founder, "Mine")
        assert created.ok
        mine = created.value["school"]["_id"]

        founder = await refresh(core, token)
        assert has_permission(founder, mine, "school:delete")
        assert not has_permission(founder, other_school, "school:delete")
        assert (await core.schools.delete_school(founder, other_school)).kind is ErrorKind.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_requires_school_create(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """Users without school:create anywhere are denied."""
        _, token = await register_user(core, superadmin, "ann@example.com")
        result = await core.schools.create_school(await refresh(core, token), "Nope")

        assert result.kind is ErrorKind.PERMISSION_DENIED
        assert await core.store.count(Collections.SCHOOLS) == 0

    @pytest.mark.asyncio
    async def test_invalid_name(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """A blank name is a validation error."""
        result = await core.schools.create_school(superadmin, "   ")
        assert result.kind is ErrorKind.VALIDATION


class TestReadUpdate:
    """Tests for reading and updating schools."""

    @pytest.mark.asyncio
    async def test_get_schools(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """Super-admins see every school; members see theirs; others see none."""
        b = await create_school(core, superadmin, "Bravo")
        await create_school(core, superadmin, "Alpha")
        viewer_role = await create_role(core, superadmin, b, "viewer", ["school:read"])
        user_id, token = await register_user(core, superadmin, "ann@example.com")
        await core.schools.add_member(superadmin, b, user_id, viewer_role)
        _, outsider_token = await register_user(core, superadmin, "bob@example.com")

        everything = await core.schools.get_schools(superadmin)
        assert [s["name"] for s in everything.value] == ["Alpha", "Bravo"]
        mine = await core.schools.get_schools(await refresh(core, token))
        assert [s["name"] for s in mine.value] == ["Bravo"]
        assert (await core.schools.get_schools(await refresh(core, outsider_token))).value == []

    @pytest.mark.asyncio
    async def test_get_school_errors(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """Malformed and unknown ids."""
        assert (await core.schools.get_school(superadmin, "123")).kind is ErrorKind.INVALID_ID
        missing = await core.schools.get_school(superadmin, new_id())
        assert missing.kind is ErrorKind.NOT_FOUND
        assert missing.message == "school not found"

    @pytest.mark.asyncio
    async def test_update_school(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """Supplied fields change; others are kept."""
        school_id = await create_school(core, superadmin, "Old")
        result = await core.schools.update_school(superadmin, school_id, phone=" 555-0100 ")

        assert result.value["phone"] == "555-0100"
        assert result.value["name"] == "Old"
        assert (await core.schools.update_school(superadmin, school_id, name=None)).kind is ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_membership_shows_new_school_name(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """Contexts built after a rename carry the new name."""
        school_id = await create_school(core, superadmin, "Old")
        await core.schools.update_school(superadmin, school_id, name="New")

        views = await core.memberships.get_memberships(superadmin.user_id)
        assert [v.school_name for v in views if v.school_id == school_id] == ["New"]


class TestDeleteSchool:
    """Tests for the school deletion cascade."""

    @pytest.mark.asyncio
    async def test_cascade_leaves_no_orphans(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """Everything referencing the school goes with it; other schools are untouched."""
        school_id = await create_school(core, superadmin, "Doomed")
        kept_id = await create_school(core, superadmin, "Kept")
        for sid in (school_id, kept_id):
            classroom_id = await create_classroom(core, superadmin, sid, "1A")
            await core.students.create_student(superadmin, "Ann", school_id=sid, classroom_id=classroom_id)
            await core.resources.create_resource(superadmin, "Projector", school_id=sid, classroom_id=classroom_id)
            await core.resources.create_resource(superadmin, "Bus", school_id=sid)
            await create_role(core, superadmin, sid, "viewer", ["school:read"])
        user_id, token = await register_user(core, superadmin, "ann@example.com")
        viewer_role = await core.store.find_one(Collections.ROLES, {"school_id": school_id, "name": "viewer"})
        await core.schools.add_member(superadmin, school_id, user_id, viewer_role["_id"])
        assert (await refresh(core, token)).membership_for(school_id) is not None

        result = await core.schools.delete_school(superadmin, school_id)
        assert result.ok
        assert result.value["message"] == "school and associated records deleted"

        for collection in (
            Collections.STUDENTS,
            Collections.RESOURCES,
            Collections.CLASSROOMS,
            Collections.MEMBERSHIPS,
            Collections.ROLES,
        ):
            assert await core.store.count(collection, {"school_id": school_id}) == 0, collection
            assert await core.store.count(collection, {"school_id": kept_id}) > 0, collection
        assert await core.store.find_one(Collections.SCHOOLS, {"_id": school_id}) is None

        assert (await refresh(core, token)).memberships == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("delay", range(8))
    @pytest.mark.parametrize(
        "kind", ["student", "enrolled_student", "classroom", "resource", "classroom_resource", "role", "member", "transfer"]
    )
    async def test_concurrent_create_leaves_no_orphans(
        self, core: SchoolCore, superadmin: AuthContext, kind: str, delay: int
    ) -> None:
        """Records created while the school is being deleted never outlive it."""
        school_id = await create_school(core, superadmin, "Doomed")
        kept_id = await create_school(core, superadmin, "Kept")
        classroom_id = await create_classroom(core, superadmin, school_id, "1A")
        role_id = await create_role(core, superadmin, school_id, "viewer", ["school:read"])
        user_id, _ = await register_user(core, superadmin, "ann@example.com")
        mover = await core.students.create_student(superadmin, "Mover", school_id=kept_id)

        creates = {
            "student": lambda: core.students.create_student(superadmin, "Ann", school_id=school_id),
            "enrolled_student": lambda: core.students.create_student(
                superadmin, "Ann", school_id=school_id, classroom_id=classroom_id
            ),
            "classroom": lambda: core.classrooms.create_classroom(superadmin, "2B", school_id=school_id),
            "resource": lambda: core.resources.create_resource(superadmin, "Bus", school_id=school_id),
            "classroom_resource": lambda: core.resources.create_resource(
                superadmin, "Projector", school_id=school_id, classroom_id=classroom_id
            ),
            "role": lambda: core.roles.create_role(superadmin, school_id, "editor", ["school:update"]),
            "member": lambda: core.schools.add_member(superadmin, school_id, user_id, role_id),
            "transfer": lambda: core.students.transfer_student(superadmin, mover.value["_id"], school_id),
        }

        async def create_later():
            for _ in range(delay):
                await asyncio.sleep(0)
            return await creates[kind]()

        deleted, created = await asyncio.gather(core.schools.delete_school(superadmin, school_id), create_later())

        assert deleted.ok
        assert created.ok or created.kind is ErrorKind.NOT_FOUND, created
        for collection in (
            Collections.STUDENTS,
            Collections.RESOURCES,
            Collections.CLASSROOMS,
            Collections.MEMBERSHIPS,
            Collections.ROLES,
        ):
            assert await core.store.count(collection, {"school_id": school_id}) == 0, collection

    @pytest.mark.asyncio
    async def test_requires_delete_permission(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """Members without school:delete cannot delete."""
        school_id = await create_school(core, superadmin)
        role_id = await create_role(core, superadmin, school_id, "viewer", ["school:read"])
        user_id, token = await register_user(core, superadmin, "ann@example.com")
        await core.schools.add_member(superadmin, school_id, user_id, role_id)

        result = await core.schools.delete_school(await refresh(core, token), school_id)
        assert result.kind is ErrorKind.PERMISSION_DENIED
        assert await core.store.count(Collections.SCHOOLS) == 1


class TestMembers:
    """Tests for add_member / remove_member / get_members."""

    @pytest.mark.asyncio
    async def test_add_and_list(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """Members are listed with their role."""
        school_id = await create_school(core, superadmin)
        role_id = await create_role(core, superadmin, school_id, "teacher", ["student:read"])
        user_id, _ = await register_user(core, superadmin, "ann@example.com", display_name="Ann")

        added = await core.schools.add_member(superadmin, school_id, user_id, role_id)
        assert added.value["message"] == "member added"

        members = (await core.schools.get_members(superadmin, school_id)).value
        assert [(m["display_name"], m["role_name"]) for m in members] == [("Super Admin", "owner"), ("Ann", "teacher")]

    @pytest.mark.asyncio
    async def test_one_membership_per_school(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """A second role in the same school is DUPLICATE."""
        school_id = await create_school(core, superadmin)
        teacher = await create_role(core, superadmin, school_id, "teacher", ["student:read"])
        viewer = await create_role(core, superadmin, school_id, "viewer", ["school:read"])
        user_id, _ = await register_user(core, superadmin, "ann@example.com")

        await core.schools.add_member(superadmin, school_id, user_id, teacher)
        again = await core.schools.add_member(superadmin, school_id, user_id, viewer)
        assert again.kind is ErrorKind.DUPLICATE
        assert again.message == "user is already a member of this school"

    @pytest.mark.asyncio
    async def test_role_from_other_school(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """Roles are only assignable in their own school."""
        first = await create_school(core, superadmin, "First")
        second = await create_school(core, superadmin, "Second")
        foreign_role = await create_role(core, superadmin, second, "teacher", ["student:read"])
        user_id, _ = await register_user(core, superadmin, "ann@example.com")

        result = await core.schools.add_member(superadmin, first, user_id, foreign_role)
        assert result.kind is ErrorKind.VALIDATION
        assert result.message == "role does not belong to this school"

    @pytest.mark.asyncio
    async def test_unknown_user(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """Adding a user that does not exist is NOT_FOUND."""
        school_id = await create_school(core, superadmin)
        role_id = await create_role(core, superadmin, school_id, "teacher", ["student:read"])

        result = await core.schools.add_member(superadmin, school_id, new_id(), role_id)
        assert result.kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_remove_member(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """Removal revokes access on the member's next request."""
        school_id = await create_school(core, superadmin)
        role_id = await create_role(core, superadmin, school_id, "viewer", ["school:read"])
        user_id, token = await register_user(core, superadmin, "ann@example.com")
        await core.schools.add_member(superadmin, school_id, user_id, role_id)
        assert (await core.schools.get_school(await refresh(core, token), school_id)).ok

        assert (await core.schools.remove_member(superadmin, school_id, user_id)).ok
        assert (await core.schools.get_school(await refresh(core, token), school_id)).kind is ErrorKind.PERMISSION_DENIED

        again = await core.schools.remove_member(superadmin, school_id, user_id)
        assert again.kind is ErrorKind.NOT_FOUND
        assert again.message == "membership not found"

    @pytest.mark.asyncio
    async def test_cannot_remove_self(self, core: SchoolCore, superadmin: AuthContext) -> None:
        """Members cannot remove themselves."""
        school_id = await create_school(core, superadmin)
        result = await core.schools.remove_member(superadmin, school_id, superadmin.user_id)

        assert result.kind is ErrorKind.VALIDATION
        assert result.message == "cannot remove yourself from school"
