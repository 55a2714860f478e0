from datetime import timedelta

import jwt

from ph_trivia.managers.Config import Config
from ph_trivia.models.JWTBlacklist import JWTBlacklist
from ph_trivia.models.Profile import Profile
from ph_trivia.models.database import db, utc_now


class AuthError:
    """鉴权失败类型，路由层据此返回401/403"""
    UNAUTHORIZED = "unauthorized"
    ACCESS_DENIED = "access_denied"


class AuthorizationContext:
    """
    单次请求的鉴权结果
    每个请求都从JWT和profiles表重新解析，不能跨请求缓存
    """

    def __init__(self, user_id, role, token=None):
        self.user_id = user_id
        self.role = role
        self.token = token

    @property
    def is_admin(self):
        return self.role == 'admin'

    def __repr__(self):
        return f"<AuthorizationContext user_id={self.user_id} role={self.role}>"


class AuthManager:
    _instance = None
    ALGORITHM = "HS256"

    @classmethod
    def instance(cls):
        """单例模式"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def issue_token(self, profile):
        """签发JWT，role只是给前端展示用的，服务端不信任它"""
        expire_hours = Config.get_int("jwt_expire_hours")
        payload = {
            "user_id": profile.id,
            "role": profile.role,
            "exp": utc_now() + timedelta(hours=expire_hours)
        }
        return jwt.encode(payload, Config.get_value("JWT_SECRET_KEY"), algorithm=self.ALGORITHM)

    @staticmethod
    def extract_bearer_token(auth_header):
        if auth_header and auth_header.startswith('Bearer '):
            token = auth_header[7:].strip()
            return token or None
        return None

    @staticmethod
    def is_token_blacklisted(token):
        """
        判断jwt是否已经失效
        :param token: jwt
        :return:
        """
        return JWTBlacklist.query.filter_by(token=token).first() is not None

    def resolve_context(self, auth_header):
        """
        从Authorization头解析出当前请求的鉴权上下文
        :return: (是否成功, AuthorizationContext或失败类型, 提示信息)
        """
        token = self.extract_bearer_token(auth_header)
        if not token:
            return False, AuthError.UNAUTHORIZED, "Token is missing!"

        try:
            decoded = jwt.decode(token, Config.get_value("JWT_SECRET_KEY"), algorithms=[self.ALGORITHM])
        except jwt.ExpiredSignatureError:
            return False, AuthError.UNAUTHORIZED, "Token has expired."
        except jwt.InvalidTokenError as e:
            return False, AuthError.UNAUTHORIZED, f"Invalid token: {str(e)}"

        if self.is_token_blacklisted(token):
            return False, AuthError.UNAUTHORIZED, "Token is blacklisted."

        user_id = decoded.get('user_id')
        # 角色以数据库为准，不用token里的role
        profile = db.session.get(Profile, user_id) if user_id else None
        if not profile:
            return False, AuthError.UNAUTHORIZED, "User no longer exists."

        return True, AuthorizationContext(profile.id, profile.role, token), "ok"

    def verify_admin(self, auth_context):
        """
        每次管理操作都重新查一次角色
        :return: (是否通过, 失败类型, 提示信息)
        """
        if auth_context is None or not auth_context.user_id:
            return False, AuthError.UNAUTHORIZED, "Unauthorized"

        profile = db.session.get(Profile, auth_context.user_id, populate_existing=True)
        if not profile:
            return False, AuthError.UNAUTHORIZED, "Unauthorized"
        if not profile.is_admin:
            print(f"【鉴权】管理员校验失败：user_id={auth_context.user_id}，role={profile.role}")
            return False, AuthError.ACCESS_DENIED, "Access denied: Admin role required"
        return True, None, "ok"

    def blacklist_token(self, token, user_id=None):
        invalidated_token = JWTBlacklist(user_id=user_id, token=token, invalidated_at=utc_now())
        db.session.add(invalidated_token)
        db.session.commit()
