from sqlalchemy.exc import SQLAlchemyError

from ph_trivia.managers.PointManager import PointManager
from ph_trivia.models.Withdrawal import Withdrawal
from ph_trivia.models.WithdrawalStats import WithdrawalStats
from ph_trivia.models.database import db


def _add_withdrawal(profile, points, status):
    w = Withdrawal(
        user_id=profile.id,
        amount=points / 100,
        points_deducted=points,
        payment_method="gcash",
        payment_details='{"gcash": "09171234567"}',
        status=status
    )
    db.session.add(w)
    db.session.commit()
    return w


def test_available_is_earned_plus_bonus_minus_used(player, give_points):
    player.referral_bonus_points = 150
    db.session.commit()
    give_points(player, 700)
    give_points(player, 300)
    _add_withdrawal(player, 500, "pending")
    _add_withdrawal(player, 200, "completed")

    balance = PointManager.instance().get_balance(player.id)

    assert balance["earned"] == 1000
    assert balance["used"] == 700
    assert balance["available"] == 1000 + 150 - 700


def test_rejected_withdrawals_do_not_count_as_used(player, give_points):
    give_points(player, 1000)
    _add_withdrawal(player, 600, "rejected")
    _add_withdrawal(player, 100, "approved")

    balance = PointManager.instance().get_balance(player.id)

    assert balance["used"] == 100
    assert balance["available"] == 900


def test_prefetched_referral_bonus_is_used(player, give_points):
    give_points(player, 200)

    balance = PointManager.instance().get_balance(player.id, referral_bonus=50)

    assert balance["available"] == 250


def test_aggregate_and_raw_paths_agree(player, give_points):
    player.referral_bonus_points = 100
    db.session.commit()
    give_points(player, 1200)
    _add_withdrawal(player, 500, "approved")
    _add_withdrawal(player, 500, "rejected")

    manager = PointManager.instance()
    raw = manager.get_balance(player.id)
    assert raw["source"] == "raw_logs"

    assert manager.refresh_stats(player.id)
    aggregate = manager.get_balance(player.id)

    assert aggregate["source"] == "aggregate"
    assert (aggregate["earned"], aggregate["used"], aggregate["available"]) == \
        (raw["earned"], raw["used"], raw["available"]) == (1200, 500, 800)


def test_fresh_balance_skips_stale_aggregate(player, give_points):
    give_points(player, 1000)
    db.session.add(WithdrawalStats(user_id=player.id, total_points_earned=5000,
                                   total_points_used=0, available_points=5000))
    db.session.commit()

    manager = PointManager.instance()
    assert manager.get_balance(player.id)["available"] == 5000
    assert manager.get_balance(player.id, fresh=True)["available"] == 1000


def test_aggregate_row_without_available_falls_back(player, give_points):
    give_points(player, 300)
    db.session.add(WithdrawalStats(user_id=player.id, available_points=None))
    db.session.commit()

    balance = PointManager.instance().get_balance(player.id)

    assert balance["source"] == "raw_logs"
    assert balance["available"] == 300


def test_read_failure_degrades_to_zero(player, give_points, monkeypatch):
    give_points(player, 1000)

    def broken(user_id):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(PointManager, "_sum_earned", staticmethod(broken))

    balance = PointManager.instance().get_balance(player.id, fresh=True)

    assert balance == {"earned": 0, "used": 0, "available": 0, "source": "default"}


def test_empty_user_id_returns_zero_defaults(app):
    balance = PointManager.instance().get_balance("")

    assert balance["available"] == 0
    assert balance["source"] == "default"


def test_refresh_stats_tracks_completed_withdrawals(player, give_points):
    give_points(player, 2000)
    _add_withdrawal(player, 500, "completed")
    _add_withdrawal(player, 700, "completed")
    _add_withdrawal(player, 300, "pending")

    PointManager.instance().refresh_stats(player.id)
    stats = WithdrawalStats.query.filter_by(user_id=player.id).first()

    assert stats.total_withdrawals_completed == 2
    assert float(stats.total_amount_withdrawn) == 12.0
    assert stats.total_points_used == 1500
    assert stats.available_points == 500
    assert PointManager.instance().get_withdrawal_stats(player.id) == (12.0, 2)


def test_refresh_all_stats_covers_every_profile(player, other_player, give_points):
    give_points(player, 100)

    refreshed, total = PointManager.instance().refresh_all_stats()

    assert (refreshed, total) == (2, 2)
    assert WithdrawalStats.query.count() == 2
