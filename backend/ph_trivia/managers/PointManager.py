from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ph_trivia.models.GameAttempt import GameAttempt
from ph_trivia.models.Profile import Profile
from ph_trivia.models.Withdrawal import Withdrawal, COUNTED_STATUSES
from ph_trivia.models.WithdrawalStats import WithdrawalStats
from ph_trivia.models.database import db, utc_now
from ph_trivia.models.typings import DatabaseOperationException


class BalanceOutcome:
    """
    单个余额计算策略的结果
    success: 得到结果；soft_fail: 换下一个策略；hard_fail: 直接用全零结果
    """
    SUCCESS = "success"
    SOFT_FAIL = "soft_fail"
    HARD_FAIL = "hard_fail"

    def __init__(self, kind, balance=None, reason=""):
        self.kind = kind
        self.balance = balance
        self.reason = reason

    @classmethod
    def success(cls, earned, used, available, source):
        return cls(cls.SUCCESS, {
            "earned": int(earned),
            "used": int(used),
            "available": int(available),
            "source": source
        })

    @classmethod
    def soft_fail(cls, reason):
        return cls(cls.SOFT_FAIL, reason=reason)

    @classmethod
    def hard_fail(cls, reason):
        return cls(cls.HARD_FAIL, reason=reason)


class PointManager:
    """
    积分账本：可用积分 = 答题累计积分 + 邀请奖励 - 提现占用积分
    只有 pending/approved/completed 的提现占用积分，rejected 不计入
    """
    _instance = None

    @classmethod
    def instance(cls):
        """单例模式"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_balance(self, user_id, referral_bonus=None, fresh=False):
        """
        获取用户积分 {earned, used, available, source}
        依次尝试：汇总表 -> 原始记录求和 -> 全零，任何读取失败都不会抛给调用方
        :param referral_bonus: 已经查好的邀请奖励积分，不传则从profiles表读取
        :param fresh: 为True时跳过汇总表，直接按原始记录计算（提现校验用）
        """
        strategies = [] if fresh else [self._from_aggregate]
        strategies.append(self._from_raw_logs)

        for strategy in strategies:
            outcome = strategy(user_id, referral_bonus)
            if outcome.kind == BalanceOutcome.SUCCESS:
                return outcome.balance
            print(f"【积分】{strategy.__name__} 未取到结果：user_id={user_id}，{outcome.kind}，{outcome.reason}")
            if outcome.kind == BalanceOutcome.HARD_FAIL:
                break
        return self._zero_defaults()

    def _from_aggregate(self, user_id, referral_bonus=None):
        if not user_id:
            return BalanceOutcome.hard_fail("empty user_id")
        try:
            stats = WithdrawalStats.query.filter_by(user_id=user_id).first()
        except SQLAlchemyError as e:
            DatabaseOperationException(f"读取积分汇总表失败：user_id={user_id}，错误：{str(e)}")
            return BalanceOutcome.soft_fail("aggregate read error")
        if stats is None or stats.available_points is None:
            return BalanceOutcome.soft_fail("aggregate row missing")
        return BalanceOutcome.success(stats.total_points_earned or 0, stats.total_points_used or 0,
                                      stats.available_points, "aggregate")

    def _from_raw_logs(self, user_id, referral_bonus=None):
        if not user_id:
            return BalanceOutcome.hard_fail("empty user_id")
        try:
            if referral_bonus is None:
                referral_bonus = self._load_referral_bonus(user_id)
            earned = self._sum_earned(user_id)
            used = self._sum_used(user_id)
        except SQLAlchemyError as e:
            DatabaseOperationException(f"按原始记录计算积分失败：user_id={user_id}，错误：{str(e)}")
            return BalanceOutcome.soft_fail("raw log read error")
        available = earned + int(referral_bonus or 0) - used
        return BalanceOutcome.success(earned, used, available, "raw_logs")

    @staticmethod
    def _zero_defaults():
        return {"earned": 0, "used": 0, "available": 0, "source": "default"}

    @staticmethod
    def _load_referral_bonus(user_id):
        bonus = db.session.query(Profile.referral_bonus_points).filter(Profile.id == user_id).scalar()
        return int(bonus or 0)

    @staticmethod
    def _sum_earned(user_id):
        total = db.session.query(
            func.coalesce(func.sum(GameAttempt.points_earned), 0)
        ).filter(GameAttempt.user_id == user_id).scalar()
        return int(total or 0)

    @staticmethod
    def _sum_used(user_id):
        total = db.session.query(
            func.coalesce(func.sum(Withdrawal.points_deducted), 0)
        ).filter(
            Withdrawal.user_id == user_id,
            Withdrawal.status.in_(COUNTED_STATUSES)
        ).scalar()
        return int(total or 0)

    @staticmethod
    def _completed_totals(user_id):
        amount, count = db.session.query(
            func.coalesce(func.sum(Withdrawal.amount), 0),
            func.count(Withdrawal.id)
        ).filter(
            Withdrawal.user_id == user_id,
            Withdrawal.status == 'completed'
        ).one()
        return Decimal(str(amount or 0)).quantize(Decimal("0.01")), int(count or 0)

    def refresh_stats(self, user_id):
        """按原始记录重算单个用户的汇总行（写操作之后调用）"""
        try:
            referral_bonus = self._load_referral_bonus(user_id)
            earned = self._sum_earned(user_id)
            used = self._sum_used(user_id)
            amount_withdrawn, completed_count = self._completed_totals(user_id)

            stats = WithdrawalStats.query.filter_by(user_id=user_id).first()
            if stats is None:
                stats = WithdrawalStats(user_id=user_id)
                db.session.add(stats)
            stats.total_points_earned = earned
            stats.total_points_used = used
            stats.available_points = earned + referral_bonus - used
            stats.total_amount_withdrawn = amount_withdrawn
            stats.total_withdrawals_completed = completed_count
            stats.refreshed_at = utc_now()
            db.session.commit()
            return True
        except SQLAlchemyError as e:
            db.session.rollback()
            DatabaseOperationException(f"刷新积分汇总失败：user_id={user_id}，错误：{str(e)}")
            return False

    def refresh_all_stats(self):
        """全量重建汇总表，定时任务调用"""
        user_ids = [row[0] for row in db.session.query(Profile.id).all()]
        refreshed = 0
        for user_id in user_ids:
            if self.refresh_stats(user_id):
                refreshed += 1
        return refreshed, len(user_ids)

    def get_withdrawal_stats(self, user_id):
        """提现汇总（已到账金额/次数），读取失败返回全零"""
        try:
            stats = WithdrawalStats.query.filter_by(user_id=user_id).first()
            if stats is not None:
                return float(stats.total_amount_withdrawn or 0), int(stats.total_withdrawals_completed or 0)
            amount, count = self._completed_totals(user_id)
            return float(amount), count
        except SQLAlchemyError as e:
            DatabaseOperationException(f"读取提现汇总失败：user_id={user_id}，错误：{str(e)}")
            return 0.0, 0
