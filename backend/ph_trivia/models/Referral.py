from ph_trivia.models.database import db, utc_now


class Referral(db.Model):
    __tablename__ = 'referrals'  # 邀请记录表

    id = db.Column(db.Integer, primary_key=True, autoincrement=True, comment='主键ID')
    referrer_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False, comment='邀请人ID')
    referred_user_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), unique=True, nullable=False,
                                 comment='被邀请人ID')
    referral_code = db.Column(db.String(16), nullable=False, comment='使用的邀请码')
    is_rewarded = db.Column(db.Boolean, default=False, nullable=False, comment='是否已发放奖励')
    bonus_points_awarded = db.Column(db.Integer, default=100, nullable=False, comment='奖励积分')
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    rewarded_at = db.Column(db.DateTime, nullable=True, comment='发放时间')

    __table_args__ = (
        db.Index('idx_referral_referrer', 'referrer_id'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "referrer_id": self.referrer_id,
            "referred_user_id": self.referred_user_id,
            "referral_code": self.referral_code,
            "is_rewarded": self.is_rewarded,
            "bonus_points_awarded": self.bonus_points_awarded or 0,
            "created_at": self.created_at.strftime("%Y-%m-%d %H:%M:%S") if self.created_at else "",
            "rewarded_at": self.rewarded_at.strftime("%Y-%m-%d %H:%M:%S") if self.rewarded_at else ""
        }
