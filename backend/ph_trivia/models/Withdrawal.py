import json

from ph_trivia.models.database import db, utc_now

WITHDRAWAL_STATUSES = ('pending', 'approved', 'rejected', 'completed')
# 计入已用积分的状态，rejected的申请不占用余额
COUNTED_STATUSES = ('pending', 'approved', 'completed')
PAYMENT_METHODS = ('gcash', 'paypal', 'crypto')


class Withdrawal(db.Model):
    __tablename__ = 'withdrawals'  # 提现申请表

    id = db.Column(db.Integer, primary_key=True, autoincrement=True, comment='主键，自增 ID')
    user_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False, comment='用户ID')
    amount = db.Column(db.Numeric(12, 2), nullable=False, comment='提现金额（PHP，积分/100）')
    points_deducted = db.Column(db.Integer, nullable=False, comment='扣除积分')
    payment_method = db.Column(db.String(20), nullable=False, comment='收款方式 gcash/paypal/crypto')
    payment_details = db.Column(db.Text, nullable=False, comment='收款信息（JSON格式）')
    status = db.Column(db.String(20), default='pending', nullable=False, comment='状态')
    rejection_reason = db.Column(db.String(500), nullable=True, comment='拒绝原因')
    processed_by = db.Column(db.String(36), nullable=True, comment='处理管理员ID')
    requested_at = db.Column(db.DateTime, default=utc_now, nullable=False, comment='申请时间')
    processed_at = db.Column(db.DateTime, nullable=True, comment='完成时间')

    __table_args__ = (
        db.Index('idx_withdrawal_user_status', 'user_id', 'status'),
        db.Index('idx_withdrawal_requested_at', 'requested_at'),
    )

    def get_payment_details(self):
        try:
            details = json.loads(self.payment_details) if self.payment_details else {}
            return details if isinstance(details, dict) else {}
        except json.JSONDecodeError as e:
            print(f"【收款信息JSON解析失败】提现ID：{self.id}，错误：{str(e)}")
            return {}

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": float(self.amount or 0),
            "points_deducted": int(self.points_deducted or 0),
            "payment_method": self.payment_method,
            "payment_details": self.get_payment_details(),
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "requested_at": self.requested_at.strftime("%Y-%m-%d %H:%M:%S") if self.requested_at else "",
            "processed_at": self.processed_at.strftime("%Y-%m-%d %H:%M:%S") if self.processed_at else ""
        }
