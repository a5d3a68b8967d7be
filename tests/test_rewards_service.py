import dataclasses
import re
from datetime import timedelta

import pytest

from paperworth.data.repositories.points_repository import credit_points, ensure_user_points
from paperworth.data.repositories.receipt_repository import insert_receipt
from paperworth.data.repositories.reward_repository import get_user_rewards
from paperworth.domain.errors import BadRequest, Conflict, InsufficientPoints, NotFound
from paperworth.domain.models import (
    PointSource,
    Receipt,
    RedemptionStatus,
    Reward,
    TransactionType,
    utcnow,
)
from paperworth.domain.services import rewards_service as rewards_module
from paperworth.domain.services.rewards_service import RewardsService

VOUCHER_CODE_RE = re.compile(r"^PW-[0-9A-F]{8}$")


@pytest.fixture
def service(db, settings):
    return RewardsService(db, settings)


def _give_points(db, user_id, points):
    ensure_user_points(db, user_id)
    credit_points(db, user_id, points)
    db.commit()


def _reward(**overrides):
    fields = dict(id=None, name="Coffee voucher", points_cost=300, category="voucher", quantity=2)
    fields.update(overrides)
    return Reward(**fields)


def _receipt(db, user_id="u1", total=42.75):
    return insert_receipt(
        db,
        Receipt(
            id=None,
            user_id=user_id,
            merchant_name="Walmart",
            date_of_purchase=utcnow(),
            total_expense=total,
            category="Groceries",
            scan_date=utcnow(),
        ),
    )


def test_voucher_redemption(service, db):
    _give_points(db, "u1", 500)
    reward = service.add_reward(_reward())
    assert reward.category == "VOUCHER"

    user_reward = service.redeem_reward("u1", reward.id)

    assert user_reward.status == RedemptionStatus.FULFILLED
    assert VOUCHER_CODE_RE.match(user_reward.redemption_code)
    assert user_reward.points_spent == 300
    assert user_reward.expiry_date > utcnow() + timedelta(days=150)

    points = service.get_user_points("u1")
    assert points.available_points == 200
    assert points.spent_points == 300
    assert points.total_points == 500

    stock = service.get_reward(reward.id)
    assert stock.quantity == 1
    assert stock.is_available is True

    spent = service.get_transactions_by_type("u1", "spent")
    assert len(spent) == 1
    assert spent[0].points == 300
    assert spent[0].source == PointSource.REWARD_REDEMPTION
    assert spent[0].reference_id == reward.id


def test_voucher_keeps_reward_expiry(service, db):
    _give_points(db, "u1", 500)
    expiry = (utcnow() + timedelta(days=10)).replace(microsecond=0)
    reward = service.add_reward(_reward(expiry_date=expiry))
    assert service.redeem_reward("u1", reward.id).expiry_date == expiry


def test_non_voucher_redemption_is_pending(service, db):
    _give_points(db, "u1", 500)
    reward = service.add_reward(_reward(name="Mug", category="merch"))
    user_reward = service.redeem_reward("u1", reward.id)
    assert user_reward.status == RedemptionStatus.PENDING
    assert user_reward.redemption_code is None


def test_insufficient_points_has_no_side_effects(service, db):
    _give_points(db, "u1", 100)
    reward = service.add_reward(_reward())

    with pytest.raises(InsufficientPoints):
        service.redeem_reward("u1", reward.id)

    assert service.get_user_points("u1").available_points == 100
    assert service.get_reward(reward.id).quantity == 2
    assert get_user_rewards(db, "u1") == []
    assert service.get_point_transactions("u1") == []


def test_insufficient_points_is_a_conflict():
    assert issubclass(InsufficientPoints, Conflict)


def test_unknown_reward(service):
    with pytest.raises(NotFound):
        service.redeem_reward("u1", "missing")


def test_unavailable_reward(service, db):
    _give_points(db, "u1", 500)
    reward = service.add_reward(_reward(is_available=False))
    with pytest.raises(Conflict):
        service.redeem_reward("u1", reward.id)
    assert service.get_user_points("u1").available_points == 500


def test_last_unit_clears_availability(service, db):
    _give_points(db, "u1", 1000)
    reward = service.add_reward(_reward(quantity=1))

    service.redeem_reward("u1", reward.id)

    stock = service.get_reward(reward.id)
    assert stock.quantity == 0
    assert stock.is_available is False
    assert reward.id not in [r.id for r in service.get_available_rewards()]
    with pytest.raises(Conflict):
        service.redeem_reward("u1", reward.id)
    assert service.get_user_points("u1").available_points == 700


def test_failed_redemption_rolls_back_everything(service, db, monkeypatch):
    _give_points(db, "u1", 500)
    reward = service.add_reward(_reward())

    def broken_ledger(*args, **kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(rewards_module, "add_transaction", broken_ledger)
    with pytest.raises(RuntimeError):
        service.redeem_reward("u1", reward.id)

    assert service.get_user_points("u1").available_points == 500
    assert service.get_reward(reward.id).quantity == 2
    assert get_user_rewards(db, "u1") == []


def test_welcome_bonus_is_granted_once(service):
    tx = service.redeem_welcome_bonus("u1")
    assert tx.points == 100
    assert tx.source == PointSource.WELCOME_BONUS
    assert service.get_user_points("u1").available_points == 100

    with pytest.raises(Conflict):
        service.redeem_welcome_bonus("u1")
    assert service.get_user_points("u1").available_points == 100

    history = service.get_redemption_history("u1")
    assert len(history) == 1
    assert history[0].reward_name == "Welcome Bonus"
    assert history[0].redemption_code == "WELCOME100"
    assert history[0].points_spent == 0


def test_award_points_for_receipt_is_idempotent(service, db):
    receipt = _receipt(db)

    first = service.award_points_for_receipt(receipt.id)
    second = service.award_points_for_receipt(receipt.id)

    assert first.points == 42
    assert first.transaction_type == TransactionType.EARNED
    assert second.id == first.id
    assert service.get_user_points("u1").total_points == 42
    assert len(service.get_transactions_by_source("u1", "RECEIPT_SCAN")) == 1


def test_award_points_for_unknown_or_anonymous_receipt(service, db):
    with pytest.raises(NotFound):
        service.award_points_for_receipt("missing")
    anonymous = _receipt(db, user_id=None)
    with pytest.raises(BadRequest):
        service.award_points_for_receipt(anonymous.id)


def test_points_formula_is_configurable(db, settings):
    service = RewardsService(
        db, dataclasses.replace(settings, points_per_dollar=2.0, base_points_per_receipt=5)
    )
    assert service.calculate_points(10.5) == 26
    assert service.calculate_points(0) == 5


def test_get_user_points_creates_empty_record(service):
    assert service.find_user_points("u2") is None
    points = service.get_user_points("u2")
    assert (points.total_points, points.available_points, points.spent_points) == (0, 0, 0)
    assert service.find_user_points("u2") is not None


def test_affordable_rewards(service, db):
    _give_points(db, "u1", 250)
    cheap = service.add_reward(_reward(name="Sticker", points_cost=50))
    service.add_reward(_reward(name="Hoodie", points_cost=900))
    assert [r.id for r in service.get_affordable_rewards("u1")] == [cheap.id]


def test_rewards_by_category_is_case_insensitive(service):
    reward = service.add_reward(_reward())
    assert [r.id for r in service.get_rewards_by_category("Voucher")] == [reward.id]


def test_invalid_enum_values_are_rejected(service):
    with pytest.raises(BadRequest):
        service.get_transactions_by_type("u1", "GIFTED")
    with pytest.raises(BadRequest):
        service.get_user_rewards_by_status("u1", "LOST")


def test_redemption_status_and_delivery(service, db):
    _give_points(db, "u1", 500)
    reward = service.add_reward(_reward(category="merch"))
    user_reward = service.redeem_reward("u1", reward.id)

    updated = service.update_redemption_status(user_reward.id, "fulfilled")
    assert updated.status == RedemptionStatus.FULFILLED
    updated = service.add_delivery_info(user_reward.id, "1 Main St")
    assert updated.delivery_info == "1 Main St"
    assert [r.id for r in service.get_user_rewards_by_status("u1", "FULFILLED")] == [user_reward.id]
    with pytest.raises(NotFound):
        service.update_redemption_status("missing", "CANCELLED")


def test_recent_and_expiring_user_rewards(service, db):
    _give_points(db, "u1", 1000)
    soon = service.add_reward(_reward(expiry_date=utcnow() + timedelta(days=10)))
    later = service.add_reward(_reward(name="Later"))
    expiring = service.redeem_reward("u1", soon.id)
    service.redeem_reward("u1", later.id)

    assert len(service.get_recent_user_rewards("u1", days=30)) == 2
    assert [r.id for r in service.get_expiring_user_rewards("u1", days=30)] == [expiring.id]


def test_point_transactions_window(service, db):
    service.redeem_welcome_bonus("u1")
    assert len(service.get_point_transactions("u1", days=7)) == 1
    assert len(service.get_point_transactions("u1")) == 1


def test_delete_and_update_reward(service):
    reward = service.add_reward(_reward())
    updated = service.update_reward(reward.id, _reward(name="Tea voucher", quantity=0))
    assert updated.name == "Tea voucher"
    assert updated.is_available is False
    service.delete_reward(reward.id)
    with pytest.raises(NotFound):
        service.get_reward(reward.id)
    with pytest.raises(NotFound):
        service.delete_reward(reward.id)


def test_huge_day_windows_are_clamped(service, db):
    _give_points(db, "u1", 1000)
    service.redeem_reward("u1", service.add_reward(_reward()).id)

    assert len(service.get_point_transactions("u1", days=999999999)) == 1
    assert len(service.get_recent_user_rewards("u1", days=999999999)) == 1
    assert len(service.get_expiring_user_rewards("u1", days=999999999)) == 1
