"""
Fitting service catalogue and its use as bill charge defaults.
"""

import pytest

from backoffice.extensions import db
from backoffice.models import Bill, FittingService
from backoffice.services import billing_service, fitting_service
from backoffice.validation import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def fall_pico(admin_user):
    return fitting_service.create_fitting(
        data={"service_name": "Fall and Pico", "rate": "150", "unit": "piece"},
        user_id=admin_user.id,
    )


class TestCatalogue:
    def test_create_in_rupees(self, fall_pico, admin_user):
        assert fall_pico.rate_cents == 15_000
        assert fall_pico.unit == "piece"
        assert fall_pico.is_active is True
        assert fall_pico.created_by_user_id == admin_user.id

    def test_unit_defaults_to_item(self, admin_user):
        fitting = fitting_service.create_fitting(
            data={"service_name": "Blouse Stitching", "rate_cents": 60_000},
            user_id=admin_user.id,
        )
        assert fitting.unit == "item"

    def test_duplicate_name_case_insensitive(self, fall_pico):
        with pytest.raises(ConflictError):
            fitting_service.create_fitting(data={"service_name": "fall and pico", "rate_cents": 100})

    @pytest.mark.parametrize("data", [
        {"service_name": "Saree Stitching"},
        {"service_name": "Saree Stitching", "rate_cents": -1},
        {"rate_cents": 500},
    ])
    def test_rejects_bad_input(self, db_session, data):
        with pytest.raises(ValidationError):
            fitting_service.create_fitting(data=data)
        assert db.session.query(FittingService).count() == 0

    def test_update_and_rename_conflict(self, fall_pico, admin_user):
        fitting_service.create_fitting(data={"service_name": "Saree Stitching", "rate_cents": 40_000})

        updated = fitting_service.update_fitting(fall_pico.id, {"rate_cents": 18_000, "is_active": "false"})
        assert updated.rate_cents == 18_000
        assert updated.is_active is False

        with pytest.raises(ConflictError):
            fitting_service.update_fitting(fall_pico.id, {"service_name": "Saree Stitching"})

    def test_active_only_listing(self, fall_pico):
        fitting_service.create_fitting(data={"service_name": "Saree Stitching", "rate_cents": 40_000})
        fitting_service.update_fitting(fall_pico.id, {"is_active": False})

        assert len(fitting_service.list_fittings()) == 2
        assert [f.service_name for f in fitting_service.list_fittings(active_only=True)] == ["Saree Stitching"]

    def test_missing(self, db_session):
        with pytest.raises(NotFoundError):
            fitting_service.get_fitting(404)


class TestBillCharges:
    def test_charge_takes_catalogue_defaults(self, staff_user, saree, fall_pico):
        bill = billing_service.create_bill(
            items=[{"product_id": saree.id, "quantity": 1}],
            additional_charges=[{"fitting_id": fall_pico.id, "quantity": 2}],
            user_id=staff_user.id,
        )
        charge = bill.additional_charges[0]
        assert charge.service_name == "Fall and Pico"
        assert charge.unit == "piece"
        assert charge.rate_cents == 15_000
        assert charge.amount_cents == 30_000
        assert bill.grand_total_cents == 105_000 + 30_000

    def test_explicit_rate_wins(self, staff_user, saree, fall_pico):
        bill = billing_service.create_bill(
            items=[{"product_id": saree.id, "quantity": 1}],
            additional_charges=[{"fitting_id": fall_pico.id, "rate_cents": 10_000}],
            user_id=staff_user.id,
        )
        assert bill.additional_charges_cents == 10_000

    def test_inactive_service_rejected(self, staff_user, saree, fall_pico):
        fitting_service.update_fitting(fall_pico.id, {"is_active": False})
        with pytest.raises(ValidationError):
            billing_service.create_bill(
                items=[{"product_id": saree.id, "quantity": 1}],
                additional_charges=[{"fitting_id": fall_pico.id}],
                user_id=staff_user.id,
            )
        assert db.session.query(Bill).count() == 0

    def test_unknown_service(self, staff_user, saree):
        with pytest.raises(NotFoundError):
            billing_service.create_bill(
                items=[{"product_id": saree.id, "quantity": 1}],
                additional_charges=[{"fitting_id": 999}],
                user_id=staff_user.id,
            )

    def test_deleting_service_keeps_bill_snapshot(self, staff_user, saree, fall_pico):
        bill = billing_service.create_bill(
            items=[{"product_id": saree.id, "quantity": 1}],
            additional_charges=[{"fitting_id": fall_pico.id}],
            user_id=staff_user.id,
        )
        fitting_service.delete_fitting(fall_pico.id)

        reloaded = db.session.get(Bill, bill.id)
        assert reloaded.additional_charges[0].service_name == "Fall and Pico"
        assert reloaded.additional_charges_cents == 15_000
