from ph_trivia.models.database import db, utc_now


class JWTBlacklist(db.Model):
    """
    已登出的JWT，过期前都不能再用
    """
    __tablename__ = 'jwt_blacklist'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), nullable=True, comment='登出用户ID')
    token = db.Column(db.String(2048), nullable=False)
    invalidated_at = db.Column(db.DateTime, default=utc_now, comment='失效时间')

    __table_args__ = (
        db.Index('idx_jwt_blacklist_user', 'user_id'),
    )
