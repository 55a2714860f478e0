from ph_trivia.models.database import db, utc_now


class GameSession(db.Model):
    __tablename__ = 'game_sessions'  # 游戏会话表

    id = db.Column(db.Integer, primary_key=True, autoincrement=True, comment='会话ID')
    user_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False, comment='用户ID')
    category_id = db.Column(db.Integer, nullable=True, comment='分类ID（为空表示全部分类）')
    is_active = db.Column(db.Boolean, default=True, nullable=False, comment='是否进行中')
    started_at = db.Column(db.DateTime, default=utc_now, nullable=False, comment='开始时间')
    ended_at = db.Column(db.DateTime, nullable=True, comment='结束时间')

    __table_args__ = (
        db.Index('idx_session_user_active', 'user_id', 'is_active'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "category_id": self.category_id,
            "is_active": self.is_active,
            "started_at": self.started_at.strftime("%Y-%m-%d %H:%M:%S") if self.started_at else "",
            "ended_at": self.ended_at.strftime("%Y-%m-%d %H:%M:%S") if self.ended_at else ""
        }
