"""
Service tests for the household registry: the one-host rule, transfers,
profile reuse and the deletion guards.

Run with:
    python -m pytest tests/services/test_households.py -v
"""
from datetime import date

import pytest
from sqlalchemy import delete, func, select

from app.core.errors import Conflict, IntegrityFault, InvariantViolation, NotFound
from app.models.household import Apartment, Resident, ResidentStatus
from app.models.user import UserAccount
from app.schemas.household import HouseholdUpdate, MemberUpdate
from app.services import households, ledger


# ── create_household ─────────────────────────────────────────────────────────

class TestCreateHousehold:
    async def test_creates_apartment_with_host(self, db, make_household):
        household = await make_household()
        assert household.apartment_number == "P1204"
        assert household.host_name == "Tran Van Hai"
        assert household.member_count == 1

        host = await households.get_host(db, household.id)
        assert host.is_host is True
        assert host.relationship == "host"
        assert host.status == ResidentStatus.PERMANENT
        assert host.start_date == date.today()

    async def test_duplicate_apartment_number(self, make_household):
        await make_household()
        with pytest.raises(Conflict):
            await make_household(phone_number="0900000002")

    async def test_known_phone_reuses_profile(self, db, make_household):
        first = await make_household("P0101", phone_number="0988777666", host_name="Pham Minh Duc")
        second = await make_household("P0202", phone_number="0988777666", host_name="Someone Else")

        assert second.host_name == "Pham Minh Duc"
        host = await households.get_host(db, second.id)
        assert host.note == "Co-owner of apartment P0101"

        rows = await db.scalar(
            select(func.count(Resident.id)).where(Resident.phone_number == "0988777666")
        )
        assert rows == 2
        assert (await households.get_host(db, first.id)).note is None


# ── list / get ───────────────────────────────────────────────────────────────

class TestHouseholdViews:
    async def test_search_by_host_name_is_case_insensitive(self, db, make_household):
        await make_household("P0101", phone_number="0900000001", host_name="Nguyen Thi Lan")
        await make_household("P0202", phone_number="0900000002", host_name="Vo Van Kiet")

        found = await households.list_households(db, "LAN")
        assert [h.apartment_number for h in found] == ["P0101"]

    async def test_search_by_apartment_number(self, db, make_household):
        await make_household("A1001", phone_number="0900000001")
        await make_household("B2002", phone_number="0900000002")

        found = await households.list_households(db, "b20")
        assert [h.apartment_number for h in found] == ["B2002"]

    async def test_member_count_includes_members(self, db, make_household, make_member):
        household = await make_household()
        await make_member(household.id)
        await make_member(household.id, name="Tran Bao Ngoc", phone_number="0922222222")

        view = await households.get_household(db, household.id)
        assert view.member_count == 3

    async def test_get_unknown_household(self, db):
        with pytest.raises(NotFound):
            await households.get_household(db, 999)

    async def test_members_list_host_first(self, db, make_household, make_member):
        household = await make_household()
        await make_member(household.id)

        members = await households.list_members(db, household.id)
        assert members[0].is_host is True
        assert len(members) == 2

    async def test_resident_roster_is_paged(self, db, make_household, make_member):
        household = await make_household()
        for i in range(4):
            await make_member(household.id, name=f"Member {i}", phone_number=f"09300000{i:02d}")

        page = await households.list_residents(db, page=2, size=2)
        assert page.total == 5
        assert len(page.items) == 2
        assert page.items[0].apartment_number == "P1204"


# ── update_household ─────────────────────────────────────────────────────────

class TestUpdateHousehold:
    async def test_updates_apartment_and_host_contact(self, db, make_household):
        household = await make_household()
        updated = await households.update_household(
            db,
            household.id,
            HouseholdUpdate(apartment_number="P1205", host_name="Tran Van Hai Jr", area=80.0),
        )
        assert updated.apartment_number == "P1205"
        assert updated.host_name == "Tran Van Hai Jr"
        assert updated.area == 80.0

    async def test_number_taken_by_another_apartment(self, db, make_household):
        await make_household("P0101", phone_number="0900000001")
        other = await make_household("P0202", phone_number="0900000002")
        with pytest.raises(Conflict):
            await households.update_household(db, other.id, HouseholdUpdate(apartment_number="P0101"))

    async def test_household_without_host(self, db, make_household):
        household = await make_household()
        await db.execute(delete(Resident).where(Resident.apartment_id == household.id))
        with pytest.raises(IntegrityFault):
            await households.update_household(db, household.id, HouseholdUpdate(area=60.0))


# ── add_member ───────────────────────────────────────────────────────────────

class TestAddMember:
    async def test_member_is_never_host(self, db, make_household, make_member):
        household = await make_household()
        member = await make_member(household.id, relationship="spouse")
        assert member.is_host is False
        assert member.relationship == "spouse"
        assert member.status == ResidentStatus.PERMANENT
        assert await households.get_host(db, household.id) is not None

    async def test_known_phone_copies_personal_details(self, make_household, make_member):
        first = await make_household("P0101", phone_number="0900000001", host_name="Dang Thu Ha")
        second = await make_household("P0202", phone_number="0900000002")

        member = await make_member(second.id, name="Ignored", phone_number="0900000001")
        assert member.name == "Dang Thu Ha"
        assert member.apartment_id == second.id
        assert member.apartment_id != first.id

    async def test_unknown_apartment(self, make_member):
        with pytest.raises(NotFound):
            await make_member(999)


# ── update_member: host reassignment and transfers ───────────────────────────

class TestUpdateMember:
    async def test_promote_within_apartment(self, db, make_household, make_member, host_count):
        household = await make_household()
        old_host = await households.get_host(db, household.id)
        member = await make_member(household.id, relationship="son")

        await households.update_member(
            db, member.id, MemberUpdate(is_host=True, relationship="spouse")
        )

        assert await host_count(household.id) == 1
        assert member.is_host is True
        assert member.relationship == "host"
        assert old_host.is_host is False
        assert old_host.relationship == "member"

    async def test_demoted_custom_relationship_is_kept(self, db, make_household, make_member):
        household = await make_household()
        old_host = await households.get_host(db, household.id)
        old_host.relationship = "owner"
        member = await make_member(household.id)

        await households.update_member(db, member.id, MemberUpdate(is_host=True))
        assert old_host.is_host is False
        assert old_host.relationship == "owner"

    async def test_promote_into_another_apartment(self, db, make_household, make_member, host_count):
        target = await make_household("P0101", phone_number="0900000001")
        source = await make_household("P0202", phone_number="0900000002")
        target_host = await households.get_host(db, target.id)
        mover = await make_member(source.id, phone_number="0911111111")

        await households.update_member(
            db, mover.id, MemberUpdate(new_apartment_number="P0101", is_host=True)
        )

        assert mover.apartment_id == target.id
        assert mover.is_host is True
        assert mover.start_date == date.today()
        assert target_host.is_host is False
        assert await host_count(target.id) == 1
        assert await host_count(source.id) == 1

    async def test_host_moving_into_hosted_apartment_is_demoted(
        self, db, make_household, host_count
    ):
        target = await make_household("P0101", phone_number="0900000001")
        source = await make_household("P0202", phone_number="0900000002")
        mover = await households.get_host(db, source.id)

        await households.update_member(db, mover.id, MemberUpdate(new_apartment_number="P0101"))

        assert mover.apartment_id == target.id
        assert mover.is_host is False
        assert mover.relationship == "member"
        assert await host_count(target.id) == 1
        assert await host_count(source.id) == 0

    async def test_host_moving_into_empty_apartment_stays_host(self, db, make_household, host_count):
        target = await make_household("P0101", phone_number="0900000001")
        await db.execute(delete(Resident).where(Resident.apartment_id == target.id))
        source = await make_household("P0202", phone_number="0900000002")
        mover = await households.get_host(db, source.id)

        await households.update_member(db, mover.id, MemberUpdate(new_apartment_number="P0101"))
        assert mover.is_host is True
        assert await host_count(target.id) == 1

    async def test_explicit_demotion_leaves_no_host(self, db, make_household, host_count):
        household = await make_household()
        host = await households.get_host(db, household.id)

        await households.update_member(db, host.id, MemberUpdate(is_host=False))
        assert await host_count(household.id) == 0

    async def test_same_apartment_number_is_not_a_move(self, db, make_household, make_member):
        household = await make_household()
        member = await make_member(household.id)
        member.start_date = date(2020, 1, 1)

        await households.update_member(db, member.id, MemberUpdate(new_apartment_number="P1204"))
        assert member.start_date == date(2020, 1, 1)

    async def test_unknown_target_apartment(self, db, make_household, make_member):
        household = await make_household()
        member = await make_member(household.id)
        with pytest.raises(NotFound):
            await households.update_member(db, member.id, MemberUpdate(new_apartment_number="Z9999"))

    async def test_plain_field_edit(self, db, make_household, make_member):
        household = await make_household()
        member = await make_member(household.id)

        await households.update_member(
            db,
            member.id,
            MemberUpdate(status=ResidentStatus.MOVED_OUT, end_date=date(2025, 6, 30), relationship="tenant"),
        )
        assert member.status == ResidentStatus.MOVED_OUT
        assert member.end_date == date(2025, 6, 30)
        assert member.relationship == "tenant"


# ── delete_resident / delete_household ───────────────────────────────────────

class TestDeletion:
    async def test_host_with_unpaid_invoice_cannot_be_deleted(
        self, db, make_household, make_fee, make_invoice
    ):
        household = await make_household()
        fee = await make_fee()
        await make_invoice(household.id, [(fee.id, 10)])
        host = await households.get_host(db, household.id)

        with pytest.raises(InvariantViolation):
            await households.delete_resident(db, host.id)

    async def test_host_with_partial_invoice_cannot_be_deleted(
        self, db, make_household, make_fee, make_invoice
    ):
        household = await make_household()
        fee = await make_fee()
        invoice = await make_invoice(household.id, [(fee.id, 10)])
        await ledger.apply_payment(db, invoice.id, invoice.total_amount / 2)
        host = await households.get_host(db, household.id)

        with pytest.raises(InvariantViolation):
            await households.delete_resident(db, host.id)

    async def test_host_with_settled_invoices_can_be_deleted(
        self, db, make_household, make_fee, make_invoice
    ):
        household = await make_household()
        fee = await make_fee()
        invoice = await make_invoice(household.id, [(fee.id, 10)])
        await ledger.apply_payment(db, invoice.id)
        host = await households.get_host(db, household.id)

        await households.delete_resident(db, host.id)
        assert await households.get_host(db, household.id) is None

    async def test_member_deletion_removes_account(
        self, db, make_household, make_member, make_fee, make_invoice, make_account
    ):
        household = await make_household()
        fee = await make_fee()
        await make_invoice(household.id, [(fee.id, 10)])
        member = await make_member(household.id)
        await make_account("member@building.vn", resident_id=member.id)

        await households.delete_resident(db, member.id)

        assert await db.get(Resident, member.id) is None
        remaining = await db.scalar(select(func.count(UserAccount.id)))
        assert remaining == 0

    async def test_household_with_invoice_history_cannot_be_deleted(
        self, db, make_household, make_fee, make_invoice
    ):
        household = await make_household()
        fee = await make_fee()
        invoice = await make_invoice(household.id, [(fee.id, 10)])
        await ledger.apply_payment(db, invoice.id)

        with pytest.raises(InvariantViolation):
            await households.delete_household(db, household.id)

    async def test_household_deletion_cascades(self, db, make_household, make_member, make_account):
        household = await make_household()
        member = await make_member(household.id)
        host = await households.get_host(db, household.id)
        await make_account("host@building.vn", resident_id=host.id)
        await make_account("member@building.vn", resident_id=member.id)

        await households.delete_household(db, household.id)

        assert await db.scalar(select(func.count(Apartment.id))) == 0
        assert await db.scalar(select(func.count(Resident.id))) == 0
        assert await db.scalar(select(func.count(UserAccount.id))) == 0

    async def test_delete_unknown_household(self, db):
        with pytest.raises(NotFound):
            await households.delete_household(db, 999)
