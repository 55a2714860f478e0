from datetime import timedelta

from ph_trivia.managers.PointManager import PointManager
from ph_trivia.models.GameSession import GameSession
from ph_trivia.models.database import db, utc_now


class DaemonTask:
    SESSION_IDLE_HOURS = 6  # 超过6小时没结束的游戏会话自动关闭

    @classmethod
    def refresh_withdrawal_stats(cls, app):
        """全量重建 user_withdrawal_stats，修正写入时漏刷新的汇总行"""
        with app.app_context():  # 确保在 Flask 应用上下文中操作数据库
            refreshed, total = PointManager.instance().refresh_all_stats()
            if refreshed != total:
                print(f"{utc_now()}: 积分汇总刷新部分失败 {refreshed}/{total}")
            else:
                print(f"{utc_now()}: 成功刷新 {total} 个用户的积分汇总")
            return refreshed

    @classmethod
    def close_idle_sessions(cls, app):
        with app.app_context():
            deadline = utc_now() - timedelta(hours=cls.SESSION_IDLE_HOURS)
            closed = GameSession.query.filter(
                GameSession.is_active.is_(True),
                GameSession.started_at <= deadline
            ).update({"is_active": False, "ended_at": utc_now()}, synchronize_session=False)
            db.session.commit()
            if closed:
                print(f"{utc_now()}: 自动关闭 {closed} 个超时游戏会话")
            return closed

    @classmethod
    def start_daemon_task(cls, app):
        # 启动时先跑一遍，避免汇总表为空
        cls.refresh_withdrawal_stats(app)
        cls.close_idle_sessions(app)
