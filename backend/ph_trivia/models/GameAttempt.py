from ph_trivia.models.database import db, utc_now


class GameAttempt(db.Model):
    """答题记录，只增不改"""
    __tablename__ = 'game_attempts'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True, comment='主键ID')
    user_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=False, comment='用户ID')
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id'), nullable=False, comment='题目ID')
    selected_option_id = db.Column(db.Integer, nullable=False, comment='所选选项ID')
    is_correct = db.Column(db.Boolean, nullable=False, comment='是否答对')
    points_earned = db.Column(db.Integer, default=0, nullable=False, comment='本题得分（答错为0）')
    session_id = db.Column(db.Integer, nullable=True, comment='游戏会话ID')
    attempted_at = db.Column(db.DateTime, default=utc_now, nullable=False, comment='答题时间')

    __table_args__ = (
        db.Index('idx_attempt_user', 'user_id'),
        db.Index('idx_attempt_time', 'attempted_at'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "question_id": self.question_id,
            "selected_option_id": self.selected_option_id,
            "is_correct": self.is_correct,
            "points_earned": self.points_earned or 0,
            "attempted_at": self.attempted_at.strftime("%Y-%m-%d %H:%M:%S") if self.attempted_at else ""
        }
