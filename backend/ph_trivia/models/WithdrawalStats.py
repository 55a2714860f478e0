from ph_trivia.models.database import db, utc_now


class WithdrawalStats(db.Model):
    """
    用户积分/提现汇总表，由PointManager.refresh_stats维护
    以 game_attempts / withdrawals 为准，这里只是预计算结果
    """
    __tablename__ = 'user_withdrawal_stats'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True, comment='主键ID')
    user_id = db.Column(db.String(36), unique=True, nullable=False, comment='用户ID')
    total_points_earned = db.Column(db.Integer, default=0, nullable=False, comment='累计获得积分')
    total_points_used = db.Column(db.Integer, default=0, nullable=False, comment='已占用积分')
    available_points = db.Column(db.Integer, nullable=True, comment='可用积分')
    total_amount_withdrawn = db.Column(db.Numeric(12, 2), default=0, nullable=False, comment='已到账金额')
    total_withdrawals_completed = db.Column(db.Integer, default=0, nullable=False, comment='已完成提现次数')
    refreshed_at = db.Column(db.DateTime, default=utc_now, nullable=False, comment='刷新时间')
