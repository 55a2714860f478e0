from ph_trivia.models.database import db, utc_now


class Question(db.Model):
    __tablename__ = 'questions'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True, comment='题目ID')
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'), nullable=True, comment='分类ID')
    question_text = db.Column(db.Text, nullable=False, comment='题目内容')
    difficulty = db.Column(db.String(20), default='medium', nullable=False, comment='难度 easy/medium/hard')
    points = db.Column(db.Integer, default=10, nullable=False, comment='答对得分')
    is_active = db.Column(db.Boolean, default=True, nullable=False, comment='是否上架')
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    options = db.relationship('QuestionOption', backref='question', lazy=True,
                              order_by='QuestionOption.display_order',
                              cascade='all, delete-orphan')

    __table_args__ = (
        db.Index('idx_question_category', 'category_id'),
    )

    def to_dict(self, with_answer=False):
        """with_answer只给管理端用，玩家端永远不能带is_correct"""
        return {
            "id": self.id,
            "category_id": self.category_id,
            "question_text": self.question_text,
            "difficulty": self.difficulty,
            "points": self.points,
            "is_active": self.is_active,
            "options": [option.to_dict(with_answer) for option in self.options]
        }
