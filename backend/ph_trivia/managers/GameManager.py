from collections import Counter

from sqlalchemy.exc import SQLAlchemyError

from ph_trivia.managers.PointManager import PointManager
from ph_trivia.models.Category import Category
from ph_trivia.models.GameAttempt import GameAttempt
from ph_trivia.models.GameSession import GameSession
from ph_trivia.models.Question import Question
from ph_trivia.models.QuestionOption import QuestionOption
from ph_trivia.models.database import db, utc_now
from ph_trivia.models.typings import DatabaseOperationException


MAX_ID = 2 ** 63 - 1


def parse_id(raw_id):
    """请求里的ID只接受正整数或纯数字字符串，否则返回None"""
    if isinstance(raw_id, bool):
        return None
    if isinstance(raw_id, str):
        text = raw_id.strip()
        if not (text.isascii() and text.isdigit()) or len(text) > 18:
            return None
        raw_id = int(text)
    if not isinstance(raw_id, int) or not 0 < raw_id <= MAX_ID:
        return None
    return raw_id


class GameManager:
    _instance = None
    TOP_CATEGORY_SCAN = 100   # 统计常玩分类时只看最近100条答题记录
    TOP_CATEGORY_NUM = 3

    @classmethod
    def instance(cls):
        """单例模式"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_questions(self, category_id=None):
        """玩家端题目列表（不带正确答案）"""
        query = Question.query.filter(Question.is_active.is_(True))
        if category_id:
            query = query.filter(Question.category_id == category_id)
        return [q.to_dict() for q in query.order_by(Question.created_at, Question.id).all()]

    def get_categories(self):
        categories = Category.query.filter(Category.is_active.is_(True)).order_by(Category.name).all()
        return [c.to_dict() for c in categories]

    def validate_answer(self, user_id, question_id, option_id, session_id=None):
        """
        判题并记录答题结果
        :return: (是否成功, 失败类型, 判题结果或提示信息)
        """
        if not question_id or not option_id:
            return False, "invalid_input", "Missing required fields: questionId and optionId"
        question_id, option_id = parse_id(question_id), parse_id(option_id)
        if question_id is None or option_id is None:
            return False, "invalid_input", "questionId and optionId must be positive integers"
        if session_id:
            session_id = parse_id(session_id)
            if session_id is None:
                return False, "invalid_input", "sessionId must be a positive integer"

        option = QuestionOption.query.filter_by(id=option_id, question_id=question_id).first()
        if option is None:
            return False, "invalid_option", "Invalid answer option"

        question = db.session.get(Question, question_id)
        if question is None:
            return False, "not_found", "Question not found"

        points = int(question.points) if option.is_correct else 0
        attempt = GameAttempt(
            user_id=user_id,
            question_id=question.id,
            selected_option_id=option.id,
            is_correct=option.is_correct,
            points_earned=points,
            session_id=session_id or None,
            attempted_at=utc_now()
        )
        # 答题记录写入失败不影响判题结果，只记日志
        try:
            db.session.add(attempt)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            DatabaseOperationException(f"答题记录写入失败：user_id={user_id}，question_id={question_id}，错误：{str(e)}")
        else:
            PointManager.instance().refresh_stats(user_id)

        correct_option = QuestionOption.query.filter_by(question_id=question.id, is_correct=True).first()
        return True, None, {
            "is_correct": option.is_correct,
            "points": points,
            "correct_option_id": correct_option.id if correct_option else None
        }

    def start_session(self, user_id, category_id=None):
        """开始新一局，同时关闭该用户之前未结束的会话"""
        now = utc_now()
        GameSession.query.filter_by(user_id=user_id, is_active=True).update(
            {"is_active": False, "ended_at": now}, synchronize_session=False)
        session = GameSession(user_id=user_id, category_id=category_id, is_active=True, started_at=now)
        db.session.add(session)
        db.session.commit()
        return session

    def end_session(self, user_id, session_id):
        session = GameSession.query.filter_by(id=session_id, user_id=user_id).first()
        if session is None:
            return False, "Game session not found"
        if session.is_active:
            session.is_active = False
            session.ended_at = utc_now()
            db.session.commit()
        return True, "Game session ended"

    def get_active_session(self, user_id):
        return GameSession.query.filter_by(user_id=user_id, is_active=True).order_by(
            GameSession.started_at.desc()).first()

    def get_player_stats(self, user_id):
        attempts = GameAttempt.query.filter_by(user_id=user_id).all()
        correct = len([a for a in attempts if a.is_correct])
        return {
            "total_attempts": len(attempts),
            "correct_answers": correct,
            "accuracy": f"{correct / len(attempts) * 100:.1f}" if attempts else "0",
            "total_points": sum(a.points_earned or 0 for a in attempts)
        }

    def get_top_categories(self, user_id):
        """最常答的三个分类"""
        rows = db.session.query(
            Category.id, Category.name, Category.icon_emoji, Category.color_code
        ).select_from(GameAttempt).join(
            Question, Question.id == GameAttempt.question_id
        ).join(
            Category, Category.id == Question.category_id
        ).filter(
            GameAttempt.user_id == user_id
        ).order_by(GameAttempt.attempted_at.desc()).limit(self.TOP_CATEGORY_SCAN).all()

        counts = Counter(row.id for row in rows)
        info = {row.id: row for row in rows}
        return [
            {
                "name": info[category_id].name,
                "icon_emoji": info[category_id].icon_emoji,
                "color_code": info[category_id].color_code,
                "count": count
            }
            for category_id, count in counts.most_common(self.TOP_CATEGORY_NUM)
        ]
