"""
Service tests for the fee catalog.

Run with:
    python -m pytest tests/services/test_fees.py -v
"""
from decimal import Decimal

import pytest

from app.core.errors import Conflict, InvariantViolation, NotFound
from app.schemas.billing import FeeUpdate
from app.services import fees


class TestFeeCatalog:
    async def test_listed_by_name(self, db, make_fee):
        await make_fee("Water", unit_price="15000", unit="m3")
        await make_fee("Cleaning", unit_price="50000")
        assert [f.name for f in await fees.list_fees(db)] == ["Cleaning", "Water"]

    async def test_duplicate_name(self, make_fee):
        await make_fee("Water")
        with pytest.raises(Conflict):
            await make_fee("Water")

    async def test_rename_onto_existing_name(self, db, make_fee):
        await make_fee("Water")
        cleaning = await make_fee("Cleaning")
        with pytest.raises(Conflict):
            await fees.update_fee(db, cleaning.id, FeeUpdate(name="Water"))

    async def test_partial_update(self, db, make_fee):
        fee = await make_fee("Water", unit_price="15000", unit="m3")
        await fees.update_fee(db, fee.id, FeeUpdate(unit_price=Decimal("17500")))
        assert fee.unit_price == Decimal("17500")
        assert fee.unit == "m3"

    async def test_delete_unused_fee(self, db, make_fee):
        fee = await make_fee()
        await fees.delete_fee(db, fee.id)
        with pytest.raises(NotFound):
            await fees.get_fee(db, fee.id)

    async def test_billed_fee_cannot_be_deleted(self, db, make_fee, make_household, make_invoice):
        household = await make_household()
        fee = await make_fee()
        await make_invoice(household.id, [(fee.id, 1)])
        with pytest.raises(InvariantViolation):
            await fees.delete_fee(db, fee.id)
