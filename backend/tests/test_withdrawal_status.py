import pytest
from sqlalchemy import update

from ph_trivia.managers import WithdrawalManager as withdrawal_module
from ph_trivia.managers.AuthManager import AuthorizationContext
from ph_trivia.managers.PointManager import PointManager
from ph_trivia.managers.WithdrawalManager import (
    ALLOWED_TRANSITIONS, StatusUpdateError, WithdrawalManager, can_transition
)
from ph_trivia.models.Withdrawal import Withdrawal, WITHDRAWAL_STATUSES
from ph_trivia.models.database import db


@pytest.fixture
def manager():
    return WithdrawalManager.instance()


@pytest.fixture
def make_withdrawal(player, give_points):
    give_points(player, 10000)

    def _make(status="pending", points=500):
        w = Withdrawal(
            user_id=player.id,
            amount=points / 100,
            points_deducted=points,
            payment_method="gcash",
            payment_details='{"gcash": "09171234567"}',
            status=status
        )
        db.session.add(w)
        db.session.commit()
        return w

    return _make


def _reload(withdrawal_id):
    return db.session.get(Withdrawal, withdrawal_id, populate_existing=True)


ALLOWED_PAIRS = [(src, dst) for src, targets in ALLOWED_TRANSITIONS.items() for dst in targets]
DISALLOWED_PAIRS = [
    (src, dst) for src in WITHDRAWAL_STATUSES for dst in WITHDRAWAL_STATUSES
    if (src, dst) not in ALLOWED_PAIRS
]


def test_transition_table():
    assert sorted(ALLOWED_PAIRS) == [("approved", "completed"), ("pending", "approved"), ("pending", "rejected")]
    assert not can_transition("completed", "pending")
    assert not can_transition("rejected", "approved")
    assert not can_transition("pending", "completed")


@pytest.mark.parametrize("current, new", ALLOWED_PAIRS)
def test_allowed_transitions_succeed(manager, admin, admin_context, make_withdrawal, current, new):
    w = make_withdrawal(status=current)

    ok, error_type, _ = manager.update_withdrawal_status(admin_context, w.id, new)

    assert ok, error_type
    updated = _reload(w.id)
    assert updated.status == new
    assert updated.processed_by == admin.id


@pytest.mark.parametrize("current, new", DISALLOWED_PAIRS)
def test_disallowed_transitions_are_refused(manager, admin_context, make_withdrawal, current, new):
    w = make_withdrawal(status=current)

    ok, error_type, _ = manager.update_withdrawal_status(admin_context, w.id, new)

    assert not ok
    assert error_type == StatusUpdateError.INVALID_TRANSITION
    assert _reload(w.id).status == current


def test_completed_sets_processed_at(manager, admin_context, make_withdrawal):
    w = make_withdrawal(status="approved")
    assert _reload(w.id).processed_at is None

    manager.update_withdrawal_status(admin_context, w.id, "completed")

    assert _reload(w.id).processed_at is not None


def test_reject_records_reason_and_restores_points(manager, player, admin_context, make_withdrawal):
    w = make_withdrawal(status="pending", points=2000)
    points = PointManager.instance()
    assert points.get_balance(player.id, fresh=True)["available"] == 8000

    ok, _, _ = manager.update_withdrawal_status(admin_context, w.id, "rejected", reason="GCash number mismatch")

    assert ok
    updated = _reload(w.id)
    assert updated.rejection_reason == "GCash number mismatch"
    assert points.get_balance(player.id)["available"] == 10000
    assert points.get_balance(player.id, fresh=True)["available"] == 10000


def test_player_cannot_update_status(manager, player_context, make_withdrawal):
    w = make_withdrawal()

    ok, error_type, _ = manager.update_withdrawal_status(player_context, w.id, "approved")

    assert not ok
    assert error_type == StatusUpdateError.ACCESS_DENIED
    assert _reload(w.id).status == "pending"


def test_missing_context_is_unauthorized(manager, make_withdrawal):
    w = make_withdrawal()

    ok, error_type, _ = manager.update_withdrawal_status(None, w.id, "approved")

    assert not ok
    assert error_type == StatusUpdateError.UNAUTHORIZED


def test_demoted_admin_is_refused(manager, admin, make_withdrawal):
    context = AuthorizationContext(admin.id, "admin")
    admin.role = "player"
    db.session.commit()
    w = make_withdrawal()

    ok, error_type, _ = manager.update_withdrawal_status(context, w.id, "approved")

    assert not ok
    assert error_type == StatusUpdateError.ACCESS_DENIED


def test_unknown_withdrawal(manager, admin_context):
    ok, error_type, message = manager.update_withdrawal_status(admin_context, 9999, "approved")

    assert not ok
    assert error_type == StatusUpdateError.NOT_FOUND
    assert message == "Withdrawal not found"


def test_unknown_status_value(manager, admin_context, make_withdrawal):
    w = make_withdrawal()

    ok, error_type, _ = manager.update_withdrawal_status(admin_context, w.id, "paid")

    assert not ok
    assert error_type == StatusUpdateError.INVALID_STATUS


def test_concurrent_change_is_reported_as_conflict(manager, admin_context, make_withdrawal, monkeypatch):
    w = make_withdrawal(status="pending")

    def racing_check(current, new):
        # 另一个管理员在读取之后抢先驳回了这笔申请
        db.session.execute(update(Withdrawal).where(Withdrawal.id == w.id).values(status="rejected"))
        db.session.commit()
        return True

    monkeypatch.setattr(withdrawal_module, "can_transition", racing_check)

    ok, error_type, _ = manager.update_withdrawal_status(admin_context, w.id, "approved")

    assert not ok
    assert error_type == StatusUpdateError.CONFLICT
    assert _reload(w.id).status == "rejected"
