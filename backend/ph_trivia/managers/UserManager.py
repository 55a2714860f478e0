import re

from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from ph_trivia.managers.AuthManager import AuthManager
from ph_trivia.managers.PointManager import PointManager
from ph_trivia.managers.ReferralManager import ReferralManager
from ph_trivia.managers.WithdrawalManager import WithdrawalManager
from ph_trivia.models.GameAttempt import GameAttempt
from ph_trivia.models.Profile import Profile
from ph_trivia.models.database import db
from ph_trivia.models.typings import DatabaseOperationException

UUID_PATTERN = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$', re.IGNORECASE)
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
ROLES = ('player', 'admin')


class UserManager:

    @classmethod
    def register(cls, email, password, first_name=None, last_name=None, referral_code=None):
        """
        玩家注册，填写了有效邀请码时记录邀请关系
        :return: (是否成功, Profile或提示信息)
        """
        email = (email or "").strip().lower()
        if not EMAIL_PATTERN.match(email):
            return False, "A valid email is required"
        if not password or len(password) < 6:
            return False, "Password must be at least 6 characters"
        if Profile.query.filter_by(email=email).first():
            return False, "Email is already registered"

        referrer = None
        if referral_code:
            referrer = ReferralManager.instance().get_referrer_by_code(referral_code)
            if referrer is None:
                print(f"【注册】邀请码无效：{referral_code}")

        try:
            profile = Profile(
                email=email,
                password_hash=generate_password_hash(password),
                first_name=(first_name or "").strip() or None,
                last_name=(last_name or "").strip() or None,
                role='player',
                referral_code=ReferralManager.instance().generate_referral_code(),
                referred_by_code=referrer.referral_code if referrer else None,
                referral_bonus_points=0
            )
            db.session.add(profile)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            DatabaseOperationException(f"注册写入失败：email={email}，错误：{str(e)}")
            return False, "Failed to create profile"

        if referrer is not None:
            ReferralManager.instance().create_referral_record(referrer.id, profile.id, referrer.referral_code)
        PointManager.instance().refresh_stats(profile.id)
        return True, profile

    @classmethod
    def login(cls, email, password):
        """
        :return: (是否成功, token, Profile或提示信息)
        """
        email = (email or "").strip().lower()
        if not email or not password:
            return False, "", "email and password required"
        profile = Profile.query.filter_by(email=email).first()
        if not profile or not profile.password_hash or not check_password_hash(profile.password_hash, password):
            return False, "", "invalid credentials"
        return True, AuthManager.instance().issue_token(profile), profile

    @classmethod
    def get_profile(cls, user_id):
        return db.session.get(Profile, user_id)

    @classmethod
    def update_profile(cls, auth_context, user_id, changes):
        """
        管理员修改用户资料（角色、邀请奖励积分、姓名）
        :return: (是否成功, 失败类型, Profile或提示信息)
        """
        ok, auth_error, auth_msg = AuthManager.instance().verify_admin(auth_context)
        if not ok:
            return False, auth_error, auth_msg

        profile = db.session.get(Profile, user_id)
        if profile is None:
            return False, "not_found", "User not found"

        if "role" in changes:
            if changes["role"] not in ROLES:
                return False, "invalid_input", f"Role must be one of: {', '.join(ROLES)}"
            profile.role = changes["role"]
        if "referral_bonus_points" in changes:
            try:
                bonus = int(changes["referral_bonus_points"])
            except (TypeError, ValueError):
                return False, "invalid_input", "referral_bonus_points must be an integer"
            if bonus < 0:
                return False, "invalid_input", "referral_bonus_points cannot be negative"
            profile.referral_bonus_points = bonus
        for field in ("first_name", "last_name"):
            if field in changes:
                setattr(profile, field, (changes[field] or "").strip() or None)

        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            DatabaseOperationException(f"修改用户资料失败：user_id={user_id}，错误：{str(e)}")
            return False, "store_error", "Failed to update user"

        PointManager.instance().refresh_stats(profile.id)
        return True, None, profile

    @classmethod
    def list_players(cls):
        """管理端玩家列表，每个玩家带可用积分和已到账金额"""
        profiles = Profile.query.filter_by(role='player').order_by(Profile.created_at.desc()).all()
        point_manager = PointManager.instance()
        users = []
        for p in profiles:
            balance = point_manager.get_balance(p.id, referral_bonus=p.referral_bonus_points or 0)
            total_withdrawn, _ = point_manager.get_withdrawal_stats(p.id)
            users.append({
                "id": p.id,
                "name": p.display_name,
                "email": p.email,
                "created_at": p.created_at.strftime("%Y-%m-%d %H:%M:%S") if p.created_at else "",
                "total_points": balance["available"],
                "total_withdrawn": total_withdrawn
            })
        return users

    @classmethod
    def _game_stats(cls, user_id):
        """答题统计，读取失败返回全零"""
        try:
            games_played = GameAttempt.query.filter_by(user_id=user_id).count()
            wins = GameAttempt.query.filter_by(user_id=user_id, is_correct=True).count()
        except SQLAlchemyError as e:
            DatabaseOperationException(f"读取答题统计失败：user_id={user_id}，错误：{str(e)}")
            games_played, wins = 0, 0
        return {
            "games_played": games_played,
            "wins": wins,
            "losses": games_played - wins,
            "win_rate": wins / games_played if games_played else 0
        }

    @classmethod
    def _points_history(cls, user_id):
        try:
            attempts = GameAttempt.query.filter_by(user_id=user_id).order_by(
                GameAttempt.attempted_at.desc(), GameAttempt.id.desc()).all()
        except SQLAlchemyError as e:
            DatabaseOperationException(f"读取答题记录失败：user_id={user_id}，错误：{str(e)}")
            return []
        return [
            {
                "question_id": a.question_id,
                "points_earned": a.points_earned or 0,
                "is_correct": a.is_correct,
                "attempted_at": a.attempted_at.strftime("%Y-%m-%d %H:%M:%S") if a.attempted_at else ""
            }
            for a in attempts
        ]

    @classmethod
    def get_user_detail(cls, user_id):
        """
        管理端用户详情：积分、答题统计、最近提现、最近答题
        :return: (是否成功, 失败类型, 数据或提示信息)
        """
        user_id = (user_id or "").strip()
        if not UUID_PATTERN.match(user_id):
            return False, "invalid_input", "Invalid user ID"

        profile = db.session.get(Profile, user_id)
        if profile is None:
            return False, "not_found", "User not found"

        point_manager = PointManager.instance()
        balance = point_manager.get_balance(user_id, referral_bonus=profile.referral_bonus_points or 0)
        total_withdrawn, completed_count = point_manager.get_withdrawal_stats(user_id)

        try:
            recent_withdrawals = WithdrawalManager.instance().get_user_withdrawals(user_id, limit=10)
        except SQLAlchemyError as e:
            DatabaseOperationException(f"读取最近提现失败：user_id={user_id}，错误：{str(e)}")
            recent_withdrawals = []
        for w in recent_withdrawals:
            w["user_name"] = profile.display_name

        points_history = cls._points_history(user_id)
        payload = {
            "id": profile.id,
            "name": profile.display_name,
            "email": profile.email,
            "created_at": profile.created_at.strftime("%Y-%m-%d %H:%M:%S") if profile.created_at else "",
            "total_points": balance["available"],
            "total_points_earned": balance["earned"],
            "total_points_used": balance["used"],
            "available_points": balance["available"],
            "referral_bonus_points": profile.referral_bonus_points or 0,
            "total_withdrawn": total_withdrawn,
            "total_withdrawals_completed": completed_count,
            "recent_withdrawals": recent_withdrawals,
            "recent_attempts": points_history[:10],
            "points_history": points_history
        }
        payload.update(cls._game_stats(user_id))
        return True, None, payload
