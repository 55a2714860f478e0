from ph_trivia.models.database import db, utc_now


class Category(db.Model):
    __tablename__ = 'categories'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True, comment='分类ID')
    name = db.Column(db.String(100), unique=True, nullable=False, comment='分类名称')
    description = db.Column(db.Text, nullable=True, comment='分类描述')
    icon_emoji = db.Column(db.String(16), nullable=True, comment='图标')
    color_code = db.Column(db.String(16), nullable=True, comment='颜色')
    is_active = db.Column(db.Boolean, default=True, nullable=False, comment='是否启用')
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon_emoji": self.icon_emoji,
            "color_code": self.color_code,
            "is_active": self.is_active
        }
