import uuid

from ph_trivia.models.database import db, utc_now


class Profile(db.Model):
    __tablename__ = 'profiles'
    __table_args__ = {
        'comment': '用户资料表（玩家/管理员）'
    }

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()), comment='用户ID（UUID）')
    email = db.Column(db.String(255), unique=True, nullable=False, comment='登录邮箱')
    password_hash = db.Column(db.String(255), nullable=True, comment='密码哈希')
    first_name = db.Column(db.String(100), nullable=True, comment='名')
    last_name = db.Column(db.String(100), nullable=True, comment='姓')
    role = db.Column(db.String(20), default='player', nullable=False, comment='角色 player/admin')
    referral_code = db.Column(db.String(16), unique=True, nullable=True, comment='本人的邀请码')
    referred_by_code = db.Column(db.String(16), nullable=True, comment='注册时填写的邀请码')
    referral_bonus_points = db.Column(db.Integer, default=0, nullable=False, comment='邀请奖励积分')
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False, comment='注册时间')

    @property
    def is_admin(self):
        return self.role == 'admin'

    @property
    def display_name(self):
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        if name:
            return name
        return (self.email or '').split('@')[0]

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "name": self.display_name,
            "role": self.role,
            "referral_code": self.referral_code,
            "referral_bonus_points": self.referral_bonus_points or 0,
            "created_at": self.created_at.strftime("%Y-%m-%d %H:%M:%S") if self.created_at else ""
        }
