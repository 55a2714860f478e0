from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError

from ph_trivia.models.GameAttempt import GameAttempt
from ph_trivia.models.Profile import Profile
from ph_trivia.models.Question import Question
from ph_trivia.models.database import db
from ph_trivia.models.typings import DatabaseOperationException


class RankingManager:
    _instance = None

    @classmethod
    def instance(cls):
        """单例模式，避免重复初始化"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_leaderboard(self, limit=10):
        """答题积分排行榜：用户 + 累计积分 + 答题数 + 答对数，读取失败返回空列表"""
        try:
            ranking_data = db.session.query(
                GameAttempt.user_id,
                func.sum(GameAttempt.points_earned).label('total_points'),
                func.count(GameAttempt.id).label('total_attempts'),
                func.sum(case((GameAttempt.is_correct.is_(True), 1), else_=0)).label('correct_answers')
            ).group_by(GameAttempt.user_id).order_by(
                func.sum(GameAttempt.points_earned).desc()
            ).limit(limit).all()

            user_ids = [item.user_id for item in ranking_data]
            profiles = {}
            if user_ids:
                profiles = {p.id: p for p in Profile.query.filter(Profile.id.in_(user_ids)).all()}
        except SQLAlchemyError as e:
            DatabaseOperationException(f"查询排行榜失败：{str(e)}")
            return []

        return [
            {
                "rank": index + 1,
                "user_id": item.user_id,
                "name": profiles[item.user_id].display_name if item.user_id in profiles else "Unknown User",
                "total_points": int(item.total_points or 0),
                "total_attempts": int(item.total_attempts or 0),
                "correct_answers": int(item.correct_answers or 0)
            }
            for index, item in enumerate(ranking_data)
        ]

    def get_recent_activity(self, limit=10):
        rows = db.session.query(GameAttempt, Question.question_text).join(
            Question, Question.id == GameAttempt.question_id
        ).order_by(GameAttempt.attempted_at.desc(), GameAttempt.id.desc()).limit(limit).all()
        result = []
        for attempt, question_text in rows:
            item = attempt.to_dict()
            item["user_id"] = attempt.user_id
            item["question_text"] = question_text
            result.append(item)
        return result

    def get_admin_stats(self):
        """管理端总览：答题总数、玩家数、总体正确率、每题正确率"""
        total_attempts = GameAttempt.query.count()
        total_correct = GameAttempt.query.filter(GameAttempt.is_correct.is_(True)).count()
        total_players = Profile.query.filter_by(role='player').count()

        rows = db.session.query(
            GameAttempt.question_id,
            func.count(GameAttempt.id).label('total_attempts'),
            func.sum(case((GameAttempt.is_correct.is_(True), 1), else_=0)).label('correct_answers')
        ).group_by(GameAttempt.question_id).all()
        per_question = {row.question_id: row for row in rows}

        question_stats = []
        for q in Question.query.order_by(Question.id).all():
            row = per_question.get(q.id)
            attempts = int(row.total_attempts) if row else 0
            correct = int(row.correct_answers or 0) if row else 0
            question_stats.append({
                "question_id": q.id,
                "question": q.question_text,
                "total_attempts": attempts,
                "correct_answers": correct,
                "accuracy": f"{correct / attempts * 100:.1f}" if attempts else "0"
            })

        return {
            "total_attempts": total_attempts,
            "total_players": total_players,
            "overall_accuracy": f"{total_correct / total_attempts * 100:.1f}" if total_attempts else "0",
            "question_stats": question_stats,
            "recent_activity": self.get_recent_activity(limit=10)
        }
