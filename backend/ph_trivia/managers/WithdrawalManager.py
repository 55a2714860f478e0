import json
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ph_trivia.managers.AuthManager import AuthManager, AuthError
from ph_trivia.managers.Config import Config
from ph_trivia.managers.PointManager import PointManager
from ph_trivia.models.Profile import Profile
from ph_trivia.models.Withdrawal import Withdrawal, WITHDRAWAL_STATUSES, PAYMENT_METHODS
from ph_trivia.models.database import db, utc_now
from ph_trivia.models.typings import WithdrawalException


class WithdrawalRejection:
    """提现申请被拒绝的原因（都是用户输入问题，不抛异常）"""
    EMPTY_DETAILS = "empty_details"
    INVALID_PAYMENT_METHOD = "invalid_payment_method"
    INVALID_AMOUNT = "invalid_amount"
    DUPLICATE_PENDING = "duplicate_pending"
    BELOW_MINIMUM = "below_minimum"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    STORE_ERROR = "store_error"


class StatusUpdateError:
    """管理员修改提现状态的失败类型"""
    UNAUTHORIZED = AuthError.UNAUTHORIZED
    ACCESS_DENIED = AuthError.ACCESS_DENIED
    NOT_FOUND = "not_found"
    INVALID_STATUS = "invalid_status"
    INVALID_TRANSITION = "invalid_transition"
    CONFLICT = "conflict"
    STORE_ERROR = "store_error"


# 管理员可以执行的状态流转，其余一律拒绝
ALLOWED_TRANSITIONS = {
    'pending': ('approved', 'rejected'),
    'approved': ('completed',),
}


def points_to_amount(points, rate=None):
    """积分换算金额，保留两位小数：500 -> 5.00，1234 -> 12.34"""
    if rate is None:
        rate = Config.get_int("points_per_currency_unit")
    return (Decimal(int(points)) / Decimal(int(rate))).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def can_transition(current_status, new_status):
    return new_status in ALLOWED_TRANSITIONS.get(current_status, ())


MAX_POINTS = 2 ** 31 - 1  # points_deducted 列是 INT


def parse_points(raw_points):
    """积分必须是正整数（允许字符串形式，只认ASCII数字），否则返回None"""
    if isinstance(raw_points, bool):
        return None
    if isinstance(raw_points, int):
        points = raw_points
    elif isinstance(raw_points, str):
        text = raw_points.strip()
        if not (text.isascii() and text.isdigit()) or len(text) > len(str(MAX_POINTS)):
            return None
        points = int(text)
    else:
        return None
    return points if 0 < points <= MAX_POINTS else None


class WithdrawalManager:
    _instance = None

    @classmethod
    def instance(cls):
        """单例模式"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @staticmethod
    def _has_recent_pending(user_id, window_start):
        return Withdrawal.query.filter(
            Withdrawal.user_id == user_id,
            Withdrawal.status == 'pending',
            Withdrawal.requested_at >= window_start
        ).first() is not None

    def submit_withdrawal(self, user_id, payment_method, points_deducted, payment_details):
        """
        提交提现申请：按顺序校验，任一不通过直接拒绝
        :return: (是否成功, 拒绝原因, 成功时为Withdrawal，失败时为提示信息)
        """
        details = payment_details.strip() if isinstance(payment_details, str) else ""
        if not details:
            return False, WithdrawalRejection.EMPTY_DETAILS, "Please enter your payment details"

        if payment_method not in PAYMENT_METHODS:
            return False, WithdrawalRejection.INVALID_PAYMENT_METHOD, \
                f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}"

        points = parse_points(points_deducted)
        if points is None:
            return False, WithdrawalRejection.INVALID_AMOUNT, "Invalid points amount"

        # 防止连点/重试产生重复申请（尽力而为，不是唯一约束）
        cooldown_minutes = Config.get_int("withdrawal_cooldown_minutes")
        try:
            recent_pending = self._has_recent_pending(user_id, utc_now() - timedelta(minutes=cooldown_minutes))
        except SQLAlchemyError as e:
            db.session.rollback()
            WithdrawalException(f"读取待处理提现失败：user_id={user_id}，错误：{str(e)}")
            return False, WithdrawalRejection.STORE_ERROR, "Database error. Please try again."
        if recent_pending:
            return False, WithdrawalRejection.DUPLICATE_PENDING, \
                f"A pending withdrawal request is already in progress. " \
                f"Please wait {cooldown_minutes} minutes and try again."

        min_points = Config.get_int("min_withdrawal_points")
        if points < min_points:
            return False, WithdrawalRejection.BELOW_MINIMUM, f"Minimum withdrawal is {min_points} points"

        # 余额在提交时重新计算，不用页面加载时的旧值
        available = PointManager.instance().get_balance(user_id, fresh=True)["available"]
        if points > available:
            print(f"【提现】申请被拒绝：用户{user_id}申请{points}积分，可用仅{available}")
            return False, WithdrawalRejection.INSUFFICIENT_BALANCE, \
                f"Insufficient points available (only {available} available)"

        withdrawal = Withdrawal(
            user_id=user_id,
            amount=points_to_amount(points),
            points_deducted=points,
            payment_method=payment_method,
            payment_details=json.dumps({payment_method: details}),
            status='pending',
            requested_at=utc_now()
        )
        try:
            db.session.add(withdrawal)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            WithdrawalException(f"提现申请写入失败：user_id={user_id}，错误：{str(e)}")
            return False, WithdrawalRejection.STORE_ERROR, "Database error. Please try again."

        PointManager.instance().refresh_stats(user_id)
        print(f"【提现】申请成功：用户{user_id}，{points}积分，金额{withdrawal.amount}")
        return True, None, withdrawal

    def update_withdrawal_status(self, auth_context, withdrawal_id, new_status, reason=None):
        """
        管理员修改提现状态
        先读库里的当前状态再校验流转，写入时带上当前状态做比较（防止并发覆盖）
        :return: (是否成功, 失败类型, 提示信息)
        """
        ok, auth_error, auth_msg = AuthManager.instance().verify_admin(auth_context)
        if not ok:
            return False, auth_error, auth_msg

        if new_status not in WITHDRAWAL_STATUSES:
            return False, StatusUpdateError.INVALID_STATUS, f"Invalid status: {new_status}"

        try:
            withdrawal = db.session.get(Withdrawal, withdrawal_id, populate_existing=True)
        except SQLAlchemyError as e:
            WithdrawalException(f"读取提现申请失败：withdrawal_id={withdrawal_id}，错误：{str(e)}")
            return False, StatusUpdateError.STORE_ERROR, "Failed to update status"
        if withdrawal is None:
            return False, StatusUpdateError.NOT_FOUND, "Withdrawal not found"

        current_status = withdrawal.status
        if not can_transition(current_status, new_status):
            return False, StatusUpdateError.INVALID_TRANSITION, \
                f"Cannot change status from {current_status} to {new_status}"

        values = {"status": new_status, "processed_by": auth_context.user_id}
        if new_status == 'completed':
            values["processed_at"] = utc_now()
        elif new_status == 'rejected':
            values["rejection_reason"] = reason or None

        try:
            result = db.session.execute(
                update(Withdrawal)
                .where(Withdrawal.id == withdrawal.id, Withdrawal.status == current_status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                db.session.rollback()
                return False, StatusUpdateError.CONFLICT, \
                    "Withdrawal status was changed by another request, please reload"
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            WithdrawalException(f"修改提现状态失败：withdrawal_id={withdrawal_id}，错误：{str(e)}")
            return False, StatusUpdateError.STORE_ERROR, "Failed to update status"

        db.session.refresh(withdrawal)
        PointManager.instance().refresh_stats(withdrawal.user_id)
        print(f"【提现】状态已更新：withdrawal_id={withdrawal_id}，{current_status} -> {new_status}")
        return True, None, "Withdrawal status updated"

    def get_user_withdrawals(self, user_id, limit=None):
        query = Withdrawal.query.filter_by(user_id=user_id).order_by(Withdrawal.requested_at.desc(),
                                                                     Withdrawal.id.desc())
        if limit:
            query = query.limit(limit)
        return [w.to_dict() for w in query.all()]

    def list_withdrawals(self, status=None):
        """管理端提现列表（带用户名），读取失败返回空列表"""
        try:
            query = Withdrawal.query
            if status:
                query = query.filter(Withdrawal.status == status)
            withdrawals = query.order_by(Withdrawal.requested_at.desc(), Withdrawal.id.desc()).all()
            if not withdrawals:
                return []

            user_ids = list({w.user_id for w in withdrawals})
            profiles = Profile.query.filter(Profile.id.in_(user_ids)).all()
            names = {p.id: p.display_name for p in profiles}
        except SQLAlchemyError as e:
            WithdrawalException(f"读取提现列表失败：{str(e)}")
            return []

        result = []
        for w in withdrawals:
            item = w.to_dict()
            item["user_name"] = names.get(w.user_id) or "Unknown User"
            result.append(item)
        return result
