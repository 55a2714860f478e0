from ph_trivia.models.database import db


class QuestionOption(db.Model):
    __tablename__ = 'question_options'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True, comment='选项ID')
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id'), nullable=False, comment='题目ID')
    option_text = db.Column(db.String(500), nullable=False, comment='选项内容')
    is_correct = db.Column(db.Boolean, default=False, nullable=False, comment='是否正确答案')
    display_order = db.Column(db.Integer, default=0, nullable=False, comment='展示顺序')

    __table_args__ = (
        db.Index('idx_option_question', 'question_id'),
    )

    def to_dict(self, with_answer=False):
        data = {
            "id": self.id,
            "option_text": self.option_text,
            "display_order": self.display_order
        }
        if with_answer:
            data["is_correct"] = self.is_correct
        return data
