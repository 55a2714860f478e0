import secrets
import string
from collections import Counter

from sqlalchemy.exc import SQLAlchemyError

from ph_trivia.managers.AuthManager import AuthManager
from ph_trivia.managers.Config import Config
from ph_trivia.managers.PointManager import PointManager
from ph_trivia.models.Profile import Profile
from ph_trivia.models.Referral import Referral
from ph_trivia.models.database import db, utc_now
from ph_trivia.models.typings import DatabaseOperationException


class ReferralManager:
    _instance = None
    CODE_CHARS = string.ascii_uppercase + string.digits
    CODE_LENGTH = 8
    MAX_CODE_ATTEMPTS = 10

    @classmethod
    def instance(cls):
        """单例模式"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def generate_referral_code(self):
        """生成8位唯一邀请码，最多尝试10次"""
        for _ in range(self.MAX_CODE_ATTEMPTS):
            code = "".join(secrets.choice(self.CODE_CHARS) for _ in range(self.CODE_LENGTH))
            if not Profile.query.filter_by(referral_code=code).first():
                return code
        raise DatabaseOperationException("Failed to generate unique referral code after multiple attempts")

    @staticmethod
    def get_referrer_by_code(code):
        if not code:
            return None
        return Profile.query.filter_by(referral_code=code.strip().upper()).first()

    def create_referral_record(self, referrer_id, referred_user_id, referral_code):
        """注册时记录邀请关系，奖励由管理员审核后发放"""
        if referrer_id == referred_user_id:
            return False
        if Referral.query.filter_by(referred_user_id=referred_user_id).first():
            return False
        record = Referral(
            referrer_id=referrer_id,
            referred_user_id=referred_user_id,
            referral_code=referral_code,
            is_rewarded=False,
            bonus_points_awarded=Config.get_int("default_referral_bonus")
        )
        db.session.add(record)
        db.session.commit()
        return True

    def reward_referral(self, auth_context, referral_id, bonus_points=None):
        """
        管理员发放邀请奖励：给邀请人加 referral_bonus_points
        :return: (是否成功, 失败类型, 提示信息)
        """
        ok, auth_error, auth_msg = AuthManager.instance().verify_admin(auth_context)
        if not ok:
            return False, auth_error, auth_msg

        referral = db.session.get(Referral, referral_id)
        if referral is None:
            return False, "not_found", "Referral not found"
        if referral.is_rewarded:
            return False, "already_rewarded", "Referral has already been rewarded"

        if bonus_points is None:
            bonus_points = referral.bonus_points_awarded
        try:
            bonus_points = int(bonus_points)
        except (TypeError, ValueError):
            return False, "invalid_bonus", "Bonus points must be a positive integer"
        if bonus_points <= 0:
            return False, "invalid_bonus", "Bonus points must be a positive integer"

        referrer = db.session.get(Profile, referral.referrer_id)
        if referrer is None:
            return False, "not_found", "Referrer not found"

        try:
            referral.is_rewarded = True
            referral.bonus_points_awarded = bonus_points
            referral.rewarded_at = utc_now()
            referrer.referral_bonus_points = (referrer.referral_bonus_points or 0) + bonus_points
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            DatabaseOperationException(f"发放邀请奖励失败：referral_id={referral_id}，错误：{str(e)}")
            return False, "store_error", "Failed to reward referral"

        PointManager.instance().refresh_stats(referrer.id)
        print(f"【邀请】奖励已发放：referral_id={referral_id}，邀请人{referrer.id}，+{bonus_points}积分")
        return True, None, "Referral rewarded"

    def get_referral_summary(self, user_id):
        """玩家查看自己的邀请码和邀请记录"""
        profile = db.session.get(Profile, user_id)
        if profile is None:
            return None
        referrals = Referral.query.filter_by(referrer_id=user_id).order_by(Referral.created_at.desc()).all()
        referred_ids = [r.referred_user_id for r in referrals]
        names = {}
        if referred_ids:
            names = {p.id: p.display_name for p in Profile.query.filter(Profile.id.in_(referred_ids)).all()}

        referred_users = [
            {
                "user_id": r.referred_user_id,
                "name": names.get(r.referred_user_id, "Unknown User"),
                "bonus_points": r.bonus_points_awarded if r.is_rewarded else 0,
                "is_rewarded": r.is_rewarded,
                "joined_at": r.created_at.strftime("%Y-%m-%d %H:%M:%S") if r.created_at else ""
            }
            for r in referrals
        ]
        return {
            "referral_code": profile.referral_code,
            "total_referrals": len(referrals),
            "total_bonus_points": sum(u["bonus_points"] for u in referred_users),
            "referred_users": referred_users
        }

    def list_referrals(self):
        referrals = Referral.query.order_by(Referral.created_at.desc()).all()
        return [r.to_dict() for r in referrals]

    def get_referral_stats(self):
        """管理端邀请统计：总数/已奖励/待奖励/已发放积分/前五邀请人"""
        referrals = Referral.query.all()
        rewarded = [r for r in referrals if r.is_rewarded]
        counts = Counter(r.referrer_id for r in referrals)

        top_ids = [user_id for user_id, _ in counts.most_common(5)]
        names = {}
        if top_ids:
            names = {p.id: p.display_name for p in Profile.query.filter(Profile.id.in_(top_ids)).all()}

        return {
            "total_referrals": len(referrals),
            "rewarded_referrals": len(rewarded),
            "pending_referrals": len(referrals) - len(rewarded),
            "total_points_awarded": sum(r.bonus_points_awarded or 0 for r in rewarded),
            "top_referrers": [
                {"user_id": user_id, "name": names.get(user_id, "Unknown User"), "count": count}
                for user_id, count in counts.most_common(5)
            ]
        }
